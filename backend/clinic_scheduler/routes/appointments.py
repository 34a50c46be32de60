"""
API роутер для расписания и записей на приём
"""
import logging
import re
from datetime import date, datetime, time
from typing import Optional, List

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.appointment import Appointment
from ..models.shift import ShiftName
from ..services.booking import BookingService, PatientContact
from ..services.calendar_sync import fetch_external_busy
from ..services.errors import (
    ConflictError,
    InvalidTransition,
    NotFoundError,
    SchedulingError,
)
from ..services.notifications import appointment_payload, dispatch_booking_created, dispatch_booking_cancelled
from ..services.queue import QueueService
from ..services.schedule import Clock, ScheduleService, get_clock

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["appointments"])


# ==================== Pydantic Schemas ====================

class TimeSlotResponse(BaseModel):
    time: str  # "HH:MM"
    available: bool = True


class ScheduleResponse(BaseModel):
    date: str  # "YYYY-MM-DD"
    is_working_day: bool
    in_booking_window: bool = True
    working_hours: Optional[dict] = None  # {"start": "08:00", "end": "18:00"}
    slots: List[TimeSlotResponse]


class ShiftAvailabilityResponse(BaseModel):
    shift_name: str
    start_time: str
    end_time: str
    available_count: int
    total_count: int
    is_full: bool
    is_closed: bool
    bookable: bool


class ShiftScheduleResponse(BaseModel):
    date: str
    is_working_day: bool
    in_booking_window: bool = True
    shifts: List[ShiftAvailabilityResponse]


class AppointmentCreate(BaseModel):
    professional_id: int
    appointment_date: str = Field(..., pattern=r"^\d{4}-\d{2}-\d{2}$")  # YYYY-MM-DD
    appointment_time: Optional[str] = Field(None, pattern=r"^\d{2}:\d{2}$")  # HH:MM, fixed_slot
    shift_name: Optional[ShiftName] = None  # arrival_order
    patient_name: str = Field(..., min_length=2, max_length=100)
    patient_email: str = Field(..., max_length=100, pattern=r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
    patient_phone: str = Field(..., min_length=10, max_length=20)
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("patient_email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("patient_phone")
    @classmethod
    def validate_phone(cls, value: str) -> str:
        # Код города (2 цифры) + номер из 8-9 цифр
        digits = re.sub(r"\D", "", value)
        if not 10 <= len(digits) <= 11:
            raise ValueError("Телефон должен содержать код города и номер (10-11 цифр)")
        return digits


class AppointmentResponse(BaseModel):
    id: int
    clinic_id: int
    professional_id: int
    date: str
    time: Optional[str]
    shift_name: Optional[str]
    status: str
    queue_position: Optional[int]
    patient_name: str
    cancellation_token: Optional[str] = None


# ==================== Helpers ====================

def parse_date(date_str: str) -> date:
    try:
        return datetime.strptime(date_str, "%Y-%m-%d").date()
    except ValueError:
        raise HTTPException(status_code=400, detail="Неверный формат даты. Используйте YYYY-MM-DD")


def parse_time(time_str: str) -> time:
    try:
        return datetime.strptime(time_str, "%H:%M").time()
    except ValueError:
        raise HTTPException(status_code=400, detail="Неверный формат времени. Используйте HH:MM")


def to_http_error(error: SchedulingError) -> HTTPException:
    """Ошибка сервиса -> HTTP ответ с кодом ошибки"""
    if isinstance(error, NotFoundError):
        status_code = 404
    elif isinstance(error, (ConflictError, InvalidTransition)):
        status_code = 409
    else:
        status_code = 400
    return HTTPException(status_code=status_code, detail={"error": error.code, "message": error.message})


def to_response(appointment: Appointment, include_token: bool = False) -> AppointmentResponse:
    return AppointmentResponse(
        id=appointment.id,
        clinic_id=appointment.clinic_id,
        professional_id=appointment.professional_id,
        date=appointment.date.strftime("%Y-%m-%d"),
        time=appointment.time.strftime("%H:%M") if appointment.time else None,
        shift_name=appointment.shift_name,
        status=appointment.status.value,
        queue_position=appointment.queue_position,
        patient_name=appointment.patient_name,
        cancellation_token=appointment.cancellation_token if include_token else None
    )


# ==================== API Endpoints ====================

@router.get("/professionals/{professional_id}/schedule/{date_str}", response_model=ScheduleResponse)
async def get_schedule(
    professional_id: int,
    date_str: str,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    """Слоты специалиста (fixed_slot) на дату"""
    target_date = parse_date(date_str)

    try:
        professional = BookingService(db, clock).get_professional(professional_id)
    except SchedulingError as e:
        raise to_http_error(e)

    if professional.is_arrival_order:
        raise HTTPException(status_code=400, detail="Специалист принимает по порядку прихода, используйте смены")

    # Пока ждём календарь, транзакция в базе не должна оставаться открытой
    db.commit()
    busy = await fetch_external_busy(professional.clinic_id, professional.id, target_date)
    schedule = ScheduleService(db, clock=clock).get_day_schedule(professional, target_date, busy)

    working_hours = None
    if schedule.working_hours:
        working_hours = {
            "start": schedule.working_hours.start.strftime("%H:%M"),
            "end": schedule.working_hours.end.strftime("%H:%M")
        }

    return ScheduleResponse(
        date=date_str,
        is_working_day=schedule.is_working_day,
        in_booking_window=schedule.in_booking_window,
        working_hours=working_hours,
        slots=[
            TimeSlotResponse(time=slot.time.strftime("%H:%M"), available=slot.available)
            for slot in schedule.slots
        ]
    )


@router.get("/professionals/{professional_id}/shifts/{date_str}", response_model=ShiftScheduleResponse)
async def get_shifts(
    professional_id: int,
    date_str: str,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    """Свободные места по сменам специалиста (arrival_order) на дату"""
    target_date = parse_date(date_str)

    try:
        professional = BookingService(db, clock).get_professional(professional_id)
    except SchedulingError as e:
        raise to_http_error(e)

    if not professional.is_arrival_order:
        raise HTTPException(status_code=400, detail="Специалист принимает по времени, используйте слоты")

    schedule = ScheduleService(db, clock=clock).get_shift_schedule(professional, target_date)

    return ShiftScheduleResponse(
        date=date_str,
        is_working_day=schedule.is_working_day,
        in_booking_window=schedule.in_booking_window,
        shifts=[
            ShiftAvailabilityResponse(
                shift_name=item.shift.shift_name,
                start_time=item.shift.start_time.strftime("%H:%M"),
                end_time=item.shift.end_time.strftime("%H:%M"),
                available_count=item.available_count,
                total_count=item.total_count,
                is_full=item.is_full,
                is_closed=item.is_closed,
                bookable=item.bookable
            )
            for item in schedule.shifts
        ]
    )


@router.post("/appointments", response_model=AppointmentResponse, status_code=201)
async def create_appointment(
    data: AppointmentCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    """Создать новую запись на приём"""
    apt_date = parse_date(data.appointment_date)
    apt_time = parse_time(data.appointment_time) if data.appointment_time else None
    shift_name = data.shift_name.value if data.shift_name else None

    service = BookingService(db, clock)
    patient = PatientContact(
        name=data.patient_name.strip(),
        email=data.patient_email,
        phone=data.patient_phone,
        notes=data.notes
    )

    try:
        professional = service.get_professional(data.professional_id)
        appointment = service.create_appointment(
            professional,
            apt_date,
            patient,
            slot_time=apt_time,
            shift_name=shift_name
        )
    except SchedulingError as e:
        logger.info("Запись к специалисту %s отклонена: %s", data.professional_id, e.code)
        raise to_http_error(e)

    # Календарь и уведомления - после ответа, ошибки не влияют на запись
    background_tasks.add_task(dispatch_booking_created, appointment_payload(appointment), db.get_bind())

    return to_response(appointment, include_token=True)


@router.post("/appointments/{appointment_id}/cancel", response_model=AppointmentResponse)
async def cancel_appointment(
    appointment_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db)
):
    """Отменить запись (администратор)"""
    try:
        appointment = QueueService(db).cancel(appointment_id)
    except SchedulingError as e:
        raise to_http_error(e)

    background_tasks.add_task(dispatch_booking_cancelled, appointment_payload(appointment), db.get_bind())
    return to_response(appointment)


@router.post("/appointments/cancel/{token}", response_model=AppointmentResponse)
async def cancel_appointment_by_token(
    token: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db)
):
    """Отменить запись по ссылке из письма (пациент)"""
    try:
        appointment = QueueService(db).cancel_by_token(token)
    except SchedulingError as e:
        raise to_http_error(e)

    background_tasks.add_task(dispatch_booking_cancelled, appointment_payload(appointment), db.get_bind())
    return to_response(appointment)
