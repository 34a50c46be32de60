"""
API роутер очереди (приём по порядку прихода)
"""
from typing import Optional, List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.clinic import Clinic
from ..services.errors import SchedulingError
from ..services.queue import QueueService, ShiftQueue, apply
from .appointments import AppointmentResponse, parse_date, to_http_error, to_response

router = APIRouter(prefix="/api", tags=["queue"])

# URL действия -> действие очереди
QUEUE_ACTIONS = {
    "arrive": "mark_arrived",
    "attend": "mark_attended",
    "undo-arrive": "undo_arrived",
    "undo-attend": "undo_attended",
}


# ==================== Pydantic Schemas ====================

class ShiftQueueResponse(BaseModel):
    shift_name: str
    waiting: List[AppointmentResponse]
    arrived: List[AppointmentResponse]
    completed: List[AppointmentResponse]


class PublicQueueEntry(BaseModel):
    patient_name: str
    queue_position: Optional[int]


class PublicShiftQueue(BaseModel):
    shift_name: str
    patients: List[PublicQueueEntry]


class PublicProfessionalQueue(BaseModel):
    professional_id: int
    professional_name: str
    specialty: Optional[str]
    shifts: List[PublicShiftQueue]


def to_queue_response(queue: ShiftQueue) -> ShiftQueueResponse:
    return ShiftQueueResponse(
        shift_name=queue.shift_name,
        waiting=[to_response(apt) for apt in queue.waiting],
        arrived=[to_response(apt) for apt in queue.arrived],
        completed=[to_response(apt) for apt in queue.completed]
    )


# ==================== API Endpoints ====================

@router.post("/queue/{appointment_id}/{action}", response_model=AppointmentResponse)
async def queue_action(appointment_id: int, action: str, db: Session = Depends(get_db)):
    """Действие администратора: пришёл, принят или отмена этих отметок"""
    if action not in QUEUE_ACTIONS:
        raise HTTPException(status_code=404, detail="Неизвестное действие")

    try:
        appointment = apply(db, QUEUE_ACTIONS[action], appointment_id)
    except SchedulingError as e:
        raise to_http_error(e)

    return to_response(appointment)


@router.get("/queue/{professional_id}/{date_str}/{shift_name}", response_model=ShiftQueueResponse)
async def get_shift_queue(professional_id: int, date_str: str, shift_name: str, db: Session = Depends(get_db)):
    """Очередь смены для стойки администратора"""
    target_date = parse_date(date_str)
    queue = QueueService(db).get_shift_queue(professional_id, target_date, shift_name)
    return to_queue_response(queue)


@router.get("/clinics/{slug}/queue/{date_str}", response_model=List[PublicProfessionalQueue])
async def get_clinic_queue(slug: str, date_str: str, db: Session = Depends(get_db)):
    """
    Публичное табло очереди клиники.
    В очереди только пришедшие пациенты; номер скрыт, если специалист так настроил.
    """
    target_date = parse_date(date_str)

    clinic = db.query(Clinic).filter(Clinic.slug == slug).first()
    if not clinic:
        raise HTTPException(status_code=404, detail="Клиника не найдена")

    result = []
    for professional, queues in QueueService(db).get_clinic_queue(clinic, target_date):
        result.append(PublicProfessionalQueue(
            professional_id=professional.id,
            professional_name=professional.name,
            specialty=professional.specialty,
            shifts=[
                PublicShiftQueue(
                    shift_name=queue.shift_name,
                    patients=[
                        PublicQueueEntry(
                            patient_name=apt.patient_name,
                            queue_position=apt.queue_position if professional.show_queue_position else None
                        )
                        for apt in queue.arrived
                    ]
                )
                for queue in queues
            ]
        ))

    return result
