"""
Модель специалиста
"""
from enum import Enum

from sqlalchemy import Column, Integer, ForeignKey, String, Time, Boolean, TIMESTAMP
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..database import Base


class SchedulingMode(str, Enum):
    """Режим записи к специалисту"""
    FIXED_SLOT = "fixed_slot"  # пациент выбирает точное время
    ARRIVAL_ORDER = "arrival_order"  # пациент выбирает смену, приём по очереди прихода


class Professional(Base):
    """
    Специалист клиники.
    Для fixed_slot важны рабочее окно и длительность приёма,
    для arrival_order расписание задаётся сменами (Shift).
    """

    __tablename__ = "professionals"

    id = Column(Integer, primary_key=True, index=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    specialty = Column(String(100), nullable=True)
    scheduling_mode = Column(
        SAEnum(
            SchedulingMode,
            native_enum=False,
            length=20,
            values_callable=lambda enum: [member.value for member in enum]
        ),
        nullable=False,
        default=SchedulingMode.FIXED_SLOT
    )
    duration = Column(Integer, nullable=False, default=30)  # минуты, только fixed_slot
    work_start_time = Column(Time, nullable=False)
    work_end_time = Column(Time, nullable=False)
    working_days = Column(String(20), nullable=False, default="1,2,3,4,5")  # 0=Вс, 6=Сб
    has_lunch_break = Column(Boolean, default=False)
    lunch_start_time = Column(Time, nullable=True)
    lunch_end_time = Column(Time, nullable=True)
    max_advance_days = Column(Integer, nullable=True)
    show_queue_position = Column(Boolean, default=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())

    clinic = relationship("Clinic", back_populates="professionals")
    shifts = relationship("Shift", back_populates="professional")

    @property
    def working_day_numbers(self) -> set:
        if not self.working_days:
            return set()
        return {int(day) for day in self.working_days.split(",") if day.strip()}

    def works_on(self, day_of_week: int) -> bool:
        """Работает ли специалист в указанный день недели (0=Вс)"""
        return day_of_week in self.working_day_numbers

    @property
    def is_arrival_order(self) -> bool:
        return self.scheduling_mode == SchedulingMode.ARRIVAL_ORDER

    def __repr__(self):
        return f"<Professional {self.name} ({self.scheduling_mode.value if self.scheduling_mode else None})>"
