"""
Демонстрационные данные: клиника, специалист с записью по времени
и специалист с приёмом по порядку прихода
"""
from datetime import datetime

from sqlalchemy.orm import Session

from .models.clinic import Clinic
from .models.professional import Professional, SchedulingMode
from .models.shift import Shift, ShiftName


DEMO_CLINIC = {
    "name": "Clínica Demo",
    "slug": "clinica-demo",
    "phone": "11999990000",
    "email": "contato@clinica-demo.test",
}

DEMO_PROFESSIONALS = [
    {
        "name": "Dra. Ana Souza",
        "specialty": "Clínica geral",
        "scheduling_mode": SchedulingMode.FIXED_SLOT,
        "duration": 30,
        "work_start_time": "08:00",
        "work_end_time": "18:00",
        "working_days": "1,2,3,4,5",
        "has_lunch_break": True,
        "lunch_start_time": "12:00",
        "lunch_end_time": "13:00",
    },
    {
        "name": "Dr. Paulo Lima",
        "specialty": "Pediatria",
        "scheduling_mode": SchedulingMode.ARRIVAL_ORDER,
        "duration": 30,
        "work_start_time": "08:00",
        "work_end_time": "18:00",
        "working_days": "1,2,3,4,5",
    },
]

# Смены для специалиста с приёмом по порядку прихода (Пн-Пт)
DEMO_SHIFTS = [
    {"shift_name": ShiftName.MORNING, "start_time": "08:00", "end_time": "12:00", "max_slots": 10},
    {"shift_name": ShiftName.AFTERNOON, "start_time": "13:00", "end_time": "17:00", "max_slots": 8},
]


def _time(value: str):
    return datetime.strptime(value, "%H:%M").time()


def seed_demo_data(db: Session) -> Clinic:
    """Создать демо-клинику, если её ещё нет"""
    clinic = db.query(Clinic).filter(Clinic.slug == DEMO_CLINIC["slug"]).first()
    if clinic:
        return clinic

    clinic = Clinic(**DEMO_CLINIC)
    db.add(clinic)
    db.flush()

    for data in DEMO_PROFESSIONALS:
        professional = Professional(clinic_id=clinic.id, **data)
        for field in ("work_start_time", "work_end_time", "lunch_start_time", "lunch_end_time"):
            if field in data:
                setattr(professional, field, _time(data[field]))
        db.add(professional)
        db.flush()

        if professional.scheduling_mode == SchedulingMode.ARRIVAL_ORDER:
            for day in range(1, 6):
                for shift in DEMO_SHIFTS:
                    db.add(Shift(
                        professional_id=professional.id,
                        day_of_week=day,
                        shift_name=shift["shift_name"].value,
                        start_time=_time(shift["start_time"]),
                        end_time=_time(shift["end_time"]),
                        max_slots=shift["max_slots"]
                    ))

    db.commit()
    db.refresh(clinic)
    return clinic
