"""
Модель записи на приём
"""
from enum import Enum

from sqlalchemy import Column, Integer, ForeignKey, Date, Time, String, Text, TIMESTAMP, Index, text
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..database import Base


class AppointmentStatus(str, Enum):
    """Статусы записи"""
    SCHEDULED = "scheduled"  # записан, ещё не пришёл
    CONFIRMED = "confirmed"  # пришёл, стоит в очереди
    COMPLETED = "completed"  # принят
    CANCELLED = "cancelled"  # отменена (конечное состояние)


# Статусы, которые занимают время или место в смене
ACTIVE_STATUSES = (
    AppointmentStatus.SCHEDULED,
    AppointmentStatus.CONFIRMED,
    AppointmentStatus.COMPLETED,
)

# Статусы, у которых есть номер в очереди
QUEUED_STATUSES = (AppointmentStatus.CONFIRMED, AppointmentStatus.COMPLETED)


class Appointment(Base):
    """Запись на приём: либо на время (time), либо на смену (shift_name)"""

    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id", ondelete="CASCADE"), nullable=False, index=True)
    professional_id = Column(Integer, ForeignKey("professionals.id", ondelete="CASCADE"), nullable=False)
    date = Column(Date, nullable=False, index=True)
    time = Column(Time, nullable=True)  # только fixed_slot
    shift_name = Column(String(20), nullable=True)  # только arrival_order
    status = Column(
        SAEnum(
            AppointmentStatus,
            native_enum=False,
            length=20,
            values_callable=lambda enum: [member.value for member in enum]
        ),
        nullable=False,
        default=AppointmentStatus.SCHEDULED
    )
    queue_position = Column(Integer, nullable=True)
    patient_name = Column(String(100), nullable=False)
    patient_email = Column(String(100), nullable=False)
    patient_phone = Column(String(20), nullable=False)
    notes = Column(Text, nullable=True)
    cancellation_token = Column(String(64), unique=True, nullable=True, index=True)
    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())

    professional = relationship("Professional")

    __table_args__ = (
        # Не больше одной активной записи на одно время у специалиста
        Index(
            'unique_active_fixed_slot',
            'professional_id', 'date', 'time',
            unique=True,
            postgresql_where=text("status <> 'cancelled' AND time IS NOT NULL"),
            sqlite_where=text("status <> 'cancelled' AND time IS NOT NULL"),
        ),
        # Номер в очереди уникален в пределах смены
        Index(
            'unique_queue_position',
            'professional_id', 'date', 'shift_name', 'queue_position',
            unique=True,
            postgresql_where=text("queue_position IS NOT NULL"),
            sqlite_where=text("queue_position IS NOT NULL"),
        ),
        Index('ix_appointments_professional_date', 'professional_id', 'date'),
    )

    def __repr__(self):
        slot = self.time or self.shift_name
        return f"<Appointment {self.date} {slot} (Status: {self.status}, Queue: {self.queue_position})>"
