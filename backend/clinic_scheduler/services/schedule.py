"""
Сервис для работы с расписанием: слоты (fixed_slot) и места в сменах (arrival_order)
"""
import logging
from dataclasses import dataclass, field
from datetime import date, time, datetime, timedelta
from typing import Callable, Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models.appointment import Appointment, AppointmentStatus
from ..models.blocked_time import BlockedTime
from ..models.professional import Professional
from ..models.shift import Shift
from ..config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def get_clock() -> Clock:
    """Dependency: источник текущего времени (в тестах подменяется)"""
    return datetime.now


def day_of_week(target_date: date) -> int:
    """Номер дня недели в формате расписания: 0=Вс, 1=Пн, ... 6=Сб"""
    return target_date.isoweekday() % 7


@dataclass(frozen=True)
class Interval:
    """Полуоткрытый интервал [start, end)"""

    start: time
    end: time

    def contains(self, moment: time) -> bool:
        return self.start <= moment < self.end


@dataclass
class TimeSlot:
    time: time
    available: bool


@dataclass
class DaySchedule:
    """Сетка слотов специалиста на дату"""

    date: date
    is_working_day: bool
    in_booking_window: bool = True
    working_hours: Optional[Interval] = None
    slots: List[TimeSlot] = field(default_factory=list)


@dataclass
class ShiftAvailability:
    shift: Shift
    available_count: int
    total_count: int
    is_closed: bool

    @property
    def is_full(self) -> bool:
        return self.available_count <= 0

    @property
    def bookable(self) -> bool:
        return not self.is_full and not self.is_closed


@dataclass
class ShiftSchedule:
    """Места в сменах специалиста на дату"""

    date: date
    is_working_day: bool
    in_booking_window: bool = True
    shifts: List[ShiftAvailability] = field(default_factory=list)


class ScheduleService:
    """Сервис расчёта доступности"""

    def __init__(self, db: Session, clock: Clock = None, slot_step: int = None):
        self.db = db
        self.clock = clock or datetime.now
        self.slot_step = slot_step or settings.SLOT_STEP_MINUTES

    # ==================== Источники ограничений ====================

    def list_appointments(self, professional: Professional, target_date: date) -> List[Appointment]:
        """Активные (не отменённые) записи специалиста на дату"""
        return self.db.query(Appointment).filter(
            Appointment.professional_id == professional.id,
            Appointment.date == target_date,
            Appointment.status != AppointmentStatus.CANCELLED
        ).all()

    def list_blocked_times(self, professional: Professional, target_date: date) -> List[Interval]:
        """
        Заблокированные интервалы на дату.
        Обеденный перерыв специалиста тоже считается блокировкой.
        """
        blocked = self.db.query(BlockedTime).filter(
            BlockedTime.professional_id == professional.id,
            BlockedTime.date == target_date
        ).all()

        intervals = [Interval(item.start_time, item.end_time) for item in blocked]

        if professional.has_lunch_break and professional.lunch_start_time and professional.lunch_end_time:
            intervals.append(Interval(professional.lunch_start_time, professional.lunch_end_time))

        return intervals

    def list_shifts(self, professional: Professional, weekday: int) -> List[Shift]:
        """Активные смены специалиста на день недели (0=Вс)"""
        return self.db.query(Shift).filter(
            Shift.professional_id == professional.id,
            Shift.day_of_week == weekday,
            Shift.is_active == True  # noqa: E712
        ).order_by(Shift.start_time).all()

    def count_shift_bookings(self, professional_id: int, target_date: date, shift_name: str) -> int:
        """Количество не отменённых записей в смене"""
        return self.db.query(func.count(Appointment.id)).filter(
            Appointment.professional_id == professional_id,
            Appointment.date == target_date,
            Appointment.shift_name == shift_name,
            Appointment.status != AppointmentStatus.CANCELLED
        ).scalar() or 0

    # ==================== Вспомогательное ====================

    def now(self) -> datetime:
        return self.clock()

    def is_in_booking_window(self, professional: Professional, target_date: date) -> bool:
        """Дата не в прошлом и не дальше горизонта записи специалиста"""
        today = self.now().date()
        if target_date < today:
            return False

        days_ahead = professional.max_advance_days
        if days_ahead is None:
            days_ahead = settings.BOOKING_DAYS_AHEAD
        return target_date <= today + timedelta(days=days_ahead)

    def is_past(self, target_date: date, moment: time) -> bool:
        """Момент уже наступил (сравнение по текущим часам)"""
        now = self.now()
        if target_date != now.date():
            return target_date < now.date()
        return moment <= now.time()

    def generate_time_slots(self, start: time, end: time, step_minutes: int = None) -> List[time]:
        """
        Генерация всех границ слотов между start и end.
        Шаг сетки не зависит от длительности приёма специалиста.
        """
        if step_minutes is None:
            step_minutes = self.slot_step

        slots = []
        anchor = date(2000, 1, 1)
        current = datetime.combine(anchor, start)
        end_dt = datetime.combine(anchor, end)

        while current + timedelta(minutes=step_minutes) <= end_dt:
            slots.append(current.time())
            current += timedelta(minutes=step_minutes)

        return slots

    # ==================== fixed_slot ====================

    def get_day_schedule(
        self,
        professional: Professional,
        target_date: date,
        busy_intervals: Iterable[Interval] = ()
    ) -> DaySchedule:
        """
        Слоты специалиста на дату.

        Граница недоступна, если она в прошлом, на неё уже есть запись,
        она попадает в заблокированный интервал или в занятое время
        внешнего календаря.
        """
        if not professional.works_on(day_of_week(target_date)):
            return DaySchedule(date=target_date, is_working_day=False)

        working_hours = Interval(professional.work_start_time, professional.work_end_time)

        if not self.is_in_booking_window(professional, target_date):
            return DaySchedule(
                date=target_date,
                is_working_day=True,
                in_booking_window=False,
                working_hours=working_hours
            )

        booked = {apt.time for apt in self.list_appointments(professional, target_date) if apt.time}
        blocked = self.list_blocked_times(professional, target_date)
        busy = list(busy_intervals)

        slots = []
        for boundary in self.generate_time_slots(working_hours.start, working_hours.end):
            available = not (
                self.is_past(target_date, boundary)
                or boundary in booked
                or any(interval.contains(boundary) for interval in blocked)
                or any(interval.contains(boundary) for interval in busy)
            )
            slots.append(TimeSlot(time=boundary, available=available))

        logger.debug(
            "Слоты специалиста %s на %s: всего %d, свободно %d",
            professional.id, target_date, len(slots), sum(1 for slot in slots if slot.available)
        )

        return DaySchedule(
            date=target_date,
            is_working_day=True,
            working_hours=working_hours,
            slots=slots
        )

    # ==================== arrival_order ====================

    def is_shift_closed(self, shift: Shift, target_date: date) -> bool:
        """Смена закончилась (сегодня после end_time или дата в прошлом)"""
        now = self.now()
        if target_date != now.date():
            return target_date < now.date()
        return now.time() >= shift.end_time

    def get_shift_availability(self, professional: Professional, shift: Shift, target_date: date) -> ShiftAvailability:
        booked = self.count_shift_bookings(professional.id, target_date, shift.shift_name)
        return ShiftAvailability(
            shift=shift,
            available_count=max(0, shift.max_slots - booked),
            total_count=shift.max_slots,
            is_closed=self.is_shift_closed(shift, target_date)
        )

    def get_shift_schedule(self, professional: Professional, target_date: date) -> ShiftSchedule:
        """Свободные места по сменам специалиста на дату"""
        shifts = self.list_shifts(professional, day_of_week(target_date))
        if not shifts:
            return ShiftSchedule(date=target_date, is_working_day=False)

        if not self.is_in_booking_window(professional, target_date):
            return ShiftSchedule(date=target_date, is_working_day=True, in_booking_window=False)

        return ShiftSchedule(
            date=target_date,
            is_working_day=True,
            shifts=[self.get_shift_availability(professional, shift, target_date) for shift in shifts]
        )
