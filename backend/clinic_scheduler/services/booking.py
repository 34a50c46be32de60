"""
Сервис создания записей
Проверка доступности и вставка выполняются в одной транзакции
"""
import logging
import secrets
from dataclasses import dataclass
from datetime import date, time
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..database import begin_write
from ..models.appointment import Appointment, AppointmentStatus
from ..models.professional import Professional
from ..models.shift import Shift
from .errors import (
    BookingValidationError,
    ProfessionalNotFound,
    SchedulingError,
    ShiftClosed,
    ShiftFull,
    ShiftNotFound,
    SlotUnavailable,
)
from .schedule import Clock, ScheduleService, day_of_week

logger = logging.getLogger(__name__)


@dataclass
class PatientContact:
    """Контактные данные пациента (проверены до вызова сервиса)"""

    name: str
    email: str
    phone: str
    notes: Optional[str] = None


class BookingService:
    """Запись пациента на время или в смену"""

    def __init__(self, db: Session, clock: Clock = None):
        self.db = db
        self.schedule = ScheduleService(db, clock=clock)

    def get_professional(self, professional_id: int) -> Professional:
        professional = self.db.query(Professional).filter(
            Professional.id == professional_id,
            Professional.is_active == True  # noqa: E712
        ).first()
        if not professional:
            raise ProfessionalNotFound()
        return professional

    def create_appointment(
        self,
        professional: Professional,
        target_date: date,
        patient: PatientContact,
        slot_time: Optional[time] = None,
        shift_name: Optional[str] = None
    ) -> Appointment:
        """
        Создать запись со статусом scheduled.

        Для fixed_slot нужен slot_time, для arrival_order - shift_name.
        Ограничения проверяются повторно внутри транзакции; при конфликте
        выбрасывается SlotUnavailable, ShiftFull или ShiftClosed и ничего не сохраняется.
        """
        professional_id = professional.id
        arrival_order = professional.is_arrival_order

        try:
            begin_write(self.db)
            if arrival_order:
                appointment = self._book_shift(professional, target_date, shift_name, patient)
            else:
                appointment = self._book_fixed_slot(professional, target_date, slot_time, patient)

            self.db.add(appointment)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            if arrival_order:
                # Для смен уникальный индекс по времени не участвует
                logger.exception("Нарушение ограничения при записи в смену специалиста %s", professional_id)
                raise
            logger.info(
                "Конфликт при записи к специалисту %s на %s %s", professional_id, target_date, slot_time
            )
            raise SlotUnavailable()
        except SchedulingError:
            self.db.rollback()
            raise
        except Exception:
            self.db.rollback()
            logger.exception("Ошибка при создании записи к специалисту %s", professional_id)
            raise

        logger.info(
            "Создана запись #%s: специалист %s, %s %s",
            appointment.id, professional_id, target_date, appointment.time or appointment.shift_name
        )
        return appointment

    # ==================== fixed_slot ====================

    def _book_fixed_slot(
        self,
        professional: Professional,
        target_date: date,
        slot_time: Optional[time],
        patient: PatientContact
    ) -> Appointment:
        if slot_time is None:
            raise BookingValidationError("Для этого специалиста нужно указать время записи")

        self._check_booking_window(professional, target_date)

        if not professional.works_on(day_of_week(target_date)):
            raise SlotUnavailable("Специалист не работает в этот день")

        grid = self.schedule.generate_time_slots(professional.work_start_time, professional.work_end_time)
        if slot_time not in grid:
            raise SlotUnavailable("Выбранное время не входит в расписание специалиста")

        if self.schedule.is_past(target_date, slot_time):
            raise SlotUnavailable("Выбранное время уже прошло")

        blocked = self.schedule.list_blocked_times(professional, target_date)
        if any(interval.contains(slot_time) for interval in blocked):
            raise SlotUnavailable("Выбранное время заблокировано")

        taken = self.db.query(Appointment.id).filter(
            Appointment.professional_id == professional.id,
            Appointment.date == target_date,
            Appointment.time == slot_time,
            Appointment.status != AppointmentStatus.CANCELLED
        ).first()
        if taken:
            raise SlotUnavailable()

        return self._new_appointment(professional, target_date, patient, slot_time=slot_time)

    # ==================== arrival_order ====================

    def _book_shift(
        self,
        professional: Professional,
        target_date: date,
        shift_name: Optional[str],
        patient: PatientContact
    ) -> Appointment:
        if not shift_name:
            raise BookingValidationError("Для этого специалиста нужно указать смену")

        self._check_booking_window(professional, target_date)

        # Блокируем строку смены: параллельные записи в ту же смену ждут
        shift = self.db.query(Shift).filter(
            Shift.professional_id == professional.id,
            Shift.day_of_week == day_of_week(target_date),
            Shift.shift_name == shift_name,
            Shift.is_active == True  # noqa: E712
        ).with_for_update().first()
        if not shift:
            raise ShiftNotFound()

        if self.schedule.is_shift_closed(shift, target_date):
            raise ShiftClosed()

        booked = self.schedule.count_shift_bookings(professional.id, target_date, shift_name)
        if booked >= shift.max_slots:
            raise ShiftFull()

        return self._new_appointment(professional, target_date, patient, shift_name=shift_name)

    # ==================== Вспомогательное ====================

    def _check_booking_window(self, professional: Professional, target_date: date):
        if not self.schedule.is_in_booking_window(professional, target_date):
            raise BookingValidationError("Дата вне допустимого периода записи")

    def _new_appointment(
        self,
        professional: Professional,
        target_date: date,
        patient: PatientContact,
        slot_time: Optional[time] = None,
        shift_name: Optional[str] = None
    ) -> Appointment:
        return Appointment(
            clinic_id=professional.clinic_id,
            professional_id=professional.id,
            professional=professional,
            date=target_date,
            time=slot_time,
            shift_name=shift_name,
            status=AppointmentStatus.SCHEDULED,
            queue_position=None,
            patient_name=patient.name,
            patient_email=patient.email,
            patient_phone=patient.phone,
            notes=patient.notes,
            cancellation_token=secrets.token_urlsafe(24)
        )
