from datetime import date, datetime, time

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from clinic_scheduler.database import Base, build_engine, get_db
from clinic_scheduler.main import app
from clinic_scheduler.models import (
    Appointment,
    AppointmentStatus,
    Clinic,
    Professional,
    SchedulingMode,
    Shift,
)
from clinic_scheduler.services.schedule import get_clock

# Понедельник. Все тесты работают с зафиксированным "сейчас".
TODAY = date(2026, 3, 2)
TOMORROW = date(2026, 3, 3)
SUNDAY = date(2026, 3, 8)
NOW = datetime(2026, 3, 2, 10, 15)


def fixed_clock():
    return NOW


@pytest.fixture
def engine(tmp_path):
    # Файл, а не :memory: - потокам в тестах конкурентности нужны отдельные соединения
    engine = build_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clinic(db):
    clinic = Clinic(name="Clínica Teste", slug="clinica-teste")
    db.add(clinic)
    db.commit()
    return clinic


@pytest.fixture
def fixed_professional(db, clinic):
    professional = Professional(
        clinic_id=clinic.id,
        name="Dra. Ana",
        specialty="Clínica geral",
        scheduling_mode=SchedulingMode.FIXED_SLOT,
        duration=45,
        work_start_time=time(8, 0),
        work_end_time=time(12, 0),
        working_days="1,2,3,4,5",
        is_active=True,
    )
    db.add(professional)
    db.commit()
    return professional


@pytest.fixture
def queue_professional(db, clinic):
    professional = Professional(
        clinic_id=clinic.id,
        name="Dr. Paulo",
        specialty="Pediatria",
        scheduling_mode=SchedulingMode.ARRIVAL_ORDER,
        work_start_time=time(8, 0),
        work_end_time=time(18, 0),
        working_days="1,2,3,4,5",
        is_active=True,
    )
    db.add(professional)
    db.flush()
    for day in (1, 2):  # Пн и Вт
        db.add(Shift(
            professional_id=professional.id,
            day_of_week=day,
            shift_name="morning",
            start_time=time(8, 0),
            end_time=time(12, 0),
            max_slots=2,
        ))
        db.add(Shift(
            professional_id=professional.id,
            day_of_week=day,
            shift_name="afternoon",
            start_time=time(13, 0),
            end_time=time(17, 0),
            max_slots=5,
        ))
    db.commit()
    return professional


@pytest.fixture
def make_appointment(db):
    """Запись напрямую в базу, в обход сервиса записи"""
    counter = {"n": 0}

    def _make(professional, target_date, slot_time=None, shift_name=None,
              status=AppointmentStatus.SCHEDULED, queue_position=None):
        counter["n"] += 1
        appointment = Appointment(
            clinic_id=professional.clinic_id,
            professional_id=professional.id,
            date=target_date,
            time=slot_time,
            shift_name=shift_name,
            status=status,
            queue_position=queue_position,
            patient_name=f"Paciente {counter['n']}",
            patient_email=f"paciente{counter['n']}@example.com",
            patient_phone="11987654321",
            cancellation_token=f"token-{counter['n']}",
        )
        db.add(appointment)
        db.commit()
        return appointment

    return _make


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: fixed_clock
    yield TestClient(app)
    app.dependency_overrides.clear()
