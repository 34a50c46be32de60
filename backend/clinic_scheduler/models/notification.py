"""
Модель журнала уведомлений
"""
from sqlalchemy import Column, Integer, ForeignKey, String, Text, TIMESTAMP
from sqlalchemy.sql import func
from ..database import Base


class NotificationLog(Base):
    """Результат отправки во внешний сервис (календарь, Telegram, письмо пациенту)"""

    __tablename__ = "notification_log"

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, index=True)
    channel = Column(String(20), nullable=False)  # calendar, telegram, webhook
    event = Column(String(30), nullable=False)  # booking_created, booking_cancelled
    status = Column(String(20), default="sent")  # sent, failed, skipped
    detail = Column(Text, nullable=True)
    created_at = Column(TIMESTAMP, server_default=func.now())

    def __repr__(self):
        return f"<NotificationLog {self.channel}/{self.event} (Status: {self.status})>"
