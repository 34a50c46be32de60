"""
Очередь приёма по порядку прихода (arrival_order)

    scheduled --mark_arrived--> confirmed --mark_attended--> completed
    scheduled <--undo_arrived-- confirmed <--undo_attended-- completed
    scheduled / confirmed --cancel--> cancelled

Номер в очереди выдаётся при приходе пациента, а не при записи.
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from ..config import get_settings
from ..database import begin_write
from ..models.appointment import Appointment, AppointmentStatus, QUEUED_STATUSES
from ..models.clinic import Clinic
from ..models.professional import Professional, SchedulingMode
from ..models.shift import Shift
from .errors import AppointmentNotFound, ConflictError, InvalidTransition, SchedulingError
from .schedule import day_of_week

settings = get_settings()
logger = logging.getLogger(__name__)

S = AppointmentStatus

# действие -> (допустимые исходные статусы, новый статус)
TRANSITIONS = {
    "mark_arrived": ((S.SCHEDULED,), S.CONFIRMED),
    "mark_attended": ((S.CONFIRMED,), S.COMPLETED),
    "undo_arrived": ((S.CONFIRMED,), S.SCHEDULED),
    "undo_attended": ((S.COMPLETED,), S.CONFIRMED),
    "cancel": ((S.SCHEDULED, S.CONFIRMED), S.CANCELLED),
}

# Действия, доступные только для записей в очередь
QUEUE_ACTIONS = ("mark_arrived", "mark_attended", "undo_arrived", "undo_attended")


def next_status(action: str, status: AppointmentStatus) -> AppointmentStatus:
    """Новый статус после действия или InvalidTransition"""
    allowed_from, target = TRANSITIONS[action]
    if status not in allowed_from:
        raise InvalidTransition(action, status)
    return target


def allowed_actions(status: AppointmentStatus) -> List[str]:
    return [action for action, (allowed_from, _) in TRANSITIONS.items() if status in allowed_from]


@dataclass
class ShiftQueue:
    """Очередь одной смены на дату"""

    shift_name: str
    waiting: List[Appointment] = field(default_factory=list)  # записаны, не пришли
    arrived: List[Appointment] = field(default_factory=list)  # в очереди, по номеру
    completed: List[Appointment] = field(default_factory=list)  # приняты, по номеру


class QueueService:
    """Переходы статусов записи и номера в очереди"""

    def __init__(self, db: Session, retries: int = None):
        self.db = db
        self.retries = retries or settings.QUEUE_POSITION_RETRIES

    # ==================== Переходы ====================

    def mark_arrived(self, appointment_id: int) -> Appointment:
        """
        Пациент пришёл: scheduled -> confirmed и номер в очереди.

        Номер = наибольший номер в смене (confirmed/completed) + 1. Чтение и запись
        идут под блокировкой строки смены; уникальный индекс по номеру страхует
        от гонки, при конфликте попытка повторяется.
        """
        for attempt in range(1, self.retries + 1):
            try:
                begin_write(self.db)
                appointment = self._load(appointment_id)
                self._ensure_queue_entry(appointment, "mark_arrived")
                status = next_status("mark_arrived", appointment.status)

                self._lock_shift(appointment)
                current_max = self.db.query(func.max(Appointment.queue_position)).filter(
                    Appointment.professional_id == appointment.professional_id,
                    Appointment.date == appointment.date,
                    Appointment.shift_name == appointment.shift_name,
                    Appointment.status.in_(QUEUED_STATUSES)
                ).scalar() or 0

                appointment.queue_position = current_max + 1
                appointment.status = status
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                logger.warning(
                    "Конфликт номера очереди для записи #%s (попытка %d из %d)",
                    appointment_id, attempt, self.retries
                )
                continue
            except SchedulingError:
                self.db.rollback()
                raise

            logger.info(
                "Запись #%s: пациент пришёл, номер в очереди %s", appointment.id, appointment.queue_position
            )
            return appointment

        raise ConflictError("Не удалось назначить номер в очереди, обновите очередь и повторите")

    def mark_attended(self, appointment_id: int) -> Appointment:
        """Пациент принят: confirmed -> completed, номер сохраняется"""
        return self._transition(appointment_id, "mark_attended")

    def undo_arrived(self, appointment_id: int) -> Appointment:
        """Отмена прихода: confirmed -> scheduled, номер освобождается без перенумерации"""
        return self._transition(appointment_id, "undo_arrived", clear_position=True)

    def undo_attended(self, appointment_id: int) -> Appointment:
        """Отмена приёма: completed -> confirmed, прежний номер остаётся"""
        return self._transition(appointment_id, "undo_attended")

    def cancel(self, appointment_id: int) -> Appointment:
        """Отмена записи (scheduled или confirmed). Отменённая запись не занимает номер"""
        return self._transition(appointment_id, "cancel", clear_position=True)

    def cancel_by_token(self, token: str) -> Appointment:
        """Отмена записи пациентом по ссылке из письма"""
        appointment = self.db.query(Appointment).filter(
            Appointment.cancellation_token == token
        ).first()
        if not appointment:
            raise AppointmentNotFound()
        return self.cancel(appointment.id)

    # ==================== Просмотр очереди ====================

    def get_shift_queue(self, professional_id: int, target_date: date, shift_name: str) -> ShiftQueue:
        appointments = self.db.query(Appointment).filter(
            Appointment.professional_id == professional_id,
            Appointment.date == target_date,
            Appointment.shift_name == shift_name,
            Appointment.status != S.CANCELLED
        ).order_by(Appointment.queue_position, Appointment.created_at, Appointment.id).all()

        queue = ShiftQueue(shift_name=shift_name)
        for appointment in appointments:
            if appointment.status == S.SCHEDULED:
                queue.waiting.append(appointment)
            elif appointment.status == S.CONFIRMED:
                queue.arrived.append(appointment)
            elif appointment.status == S.COMPLETED:
                queue.completed.append(appointment)
        return queue

    def get_clinic_queue(self, clinic: Clinic, target_date: date) -> List[Tuple[Professional, List[ShiftQueue]]]:
        """Очереди всех специалистов клиники (arrival_order) на дату"""
        professionals = self.db.query(Professional).filter(
            Professional.clinic_id == clinic.id,
            Professional.scheduling_mode == SchedulingMode.ARRIVAL_ORDER,
            Professional.is_active == True  # noqa: E712
        ).order_by(Professional.name).all()

        result = []
        for professional in professionals:
            shifts = self.db.query(Shift).filter(
                Shift.professional_id == professional.id,
                Shift.day_of_week == day_of_week(target_date),
                Shift.is_active == True  # noqa: E712
            ).order_by(Shift.start_time).all()
            queues = [self.get_shift_queue(professional.id, target_date, shift.shift_name) for shift in shifts]
            result.append((professional, queues))
        return result

    # ==================== Вспомогательное ====================

    def _load(self, appointment_id: int) -> Appointment:
        appointment = self.db.query(Appointment).filter(
            Appointment.id == appointment_id
        ).options(selectinload(Appointment.professional)).with_for_update().first()
        if not appointment:
            raise AppointmentNotFound()
        return appointment

    def _ensure_queue_entry(self, appointment: Appointment, action: str):
        if not appointment.shift_name:
            raise InvalidTransition(
                action,
                appointment.status,
                "Действие доступно только для записей в очередь по порядку прихода"
            )

    def _lock_shift(self, appointment: Appointment) -> Optional[Shift]:
        return self.db.query(Shift).filter(
            Shift.professional_id == appointment.professional_id,
            Shift.day_of_week == day_of_week(appointment.date),
            Shift.shift_name == appointment.shift_name
        ).with_for_update().first()

    def _transition(self, appointment_id: int, action: str, clear_position: bool = False) -> Appointment:
        try:
            begin_write(self.db)
            appointment = self._load(appointment_id)
            if action in QUEUE_ACTIONS:
                self._ensure_queue_entry(appointment, action)
            appointment.status = next_status(action, appointment.status)
            if clear_position:
                appointment.queue_position = None
            self.db.commit()
        except SchedulingError:
            self.db.rollback()
            raise

        logger.info("Запись #%s: %s -> %s", appointment.id, action, appointment.status.value)
        return appointment


def apply(db: Session, action: str, appointment_id: int) -> Appointment:
    """Выполнить действие очереди по имени (mark_arrived, undo_attended, ...)"""
    service = QueueService(db)
    handlers = {
        "mark_arrived": service.mark_arrived,
        "mark_attended": service.mark_attended,
        "undo_arrived": service.undo_arrived,
        "undo_attended": service.undo_attended,
        "cancel": service.cancel,
    }
    return handlers[action](appointment_id)
