from datetime import time

from sqlalchemy import create_engine, inspect
from sqlalchemy.orm import Session

from clinic_scheduler.database import init_db
from clinic_scheduler.models import Clinic, Professional, SchedulingMode, Shift
from clinic_scheduler.seed import seed_demo_data
from clinic_scheduler.services.schedule import ScheduleService

from conftest import TOMORROW, fixed_clock


def test_init_db_creates_all_tables(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'fresh.db'}")
    init_db(bind=engine)

    tables = set(inspect(engine).get_table_names())
    assert {
        "clinics",
        "professionals",
        "professional_shifts",
        "blocked_times",
        "appointments",
        "notification_log",
    } <= tables
    engine.dispose()


def test_seed_is_idempotent(db):
    first = seed_demo_data(db)
    second = seed_demo_data(db)

    assert first.id == second.id
    assert db.query(Clinic).count() == 1
    assert db.query(Professional).count() == 2
    assert db.query(Shift).count() == 10


def test_seeded_professionals_resolve_availability(engine):
    with Session(engine) as db:
        clinic = seed_demo_data(db)
        professionals = {p.scheduling_mode: p for p in db.query(Professional).filter(Professional.clinic_id == clinic.id)}
        service = ScheduleService(db, clock=fixed_clock)

        fixed = service.get_day_schedule(professionals[SchedulingMode.FIXED_SLOT], TOMORROW)
        slots = {slot.time: slot.available for slot in fixed.slots}
        assert slots[time(11, 30)] is True
        assert slots[time(12, 0)] is False  # обед
        assert slots[time(13, 0)] is True

        shifts = service.get_shift_schedule(professionals[SchedulingMode.ARRIVAL_ORDER], TOMORROW)
        assert [item.shift.shift_name for item in shifts.shifts] == ["morning", "afternoon"]
        assert [item.available_count for item in shifts.shifts] == [10, 8]
