"""
Модель смены специалиста (режим arrival_order)
"""
from enum import Enum

from sqlalchemy import Column, Integer, ForeignKey, String, Time, Boolean, UniqueConstraint
from sqlalchemy.orm import relationship
from ..database import Base


class ShiftName(str, Enum):
    """Названия смен"""
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"


class Shift(Base):
    """Смена: именованное окно приёма с ограниченным числом мест"""

    __tablename__ = "professional_shifts"

    id = Column(Integer, primary_key=True, index=True)
    professional_id = Column(Integer, ForeignKey("professionals.id", ondelete="CASCADE"), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)  # 0=Вс, 6=Сб
    shift_name = Column(String(20), nullable=False)  # morning, afternoon, evening
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    max_slots = Column(Integer, nullable=False)
    is_active = Column(Boolean, default=True)

    professional = relationship("Professional", back_populates="shifts")

    __table_args__ = (
        UniqueConstraint('professional_id', 'day_of_week', 'shift_name', name='unique_professional_shift'),
    )

    def __repr__(self):
        days = ["Вс", "Пн", "Вт", "Ср", "Чт", "Пт", "Сб"]
        return f"<Shift {days[self.day_of_week]} {self.shift_name} {self.start_time}-{self.end_time} ({self.max_slots})>"
