"""
Модель заблокированного времени специалиста
"""
from sqlalchemy import Column, Integer, ForeignKey, Date, Time, String, TIMESTAMP, CheckConstraint
from sqlalchemy.sql import func
from ..database import Base


class BlockedTime(Base):
    """
    Заблокированный интервал [start_time, end_time) (обед, отпуск, личное время).
    Конец интервала не входит в блокировку.
    """

    __tablename__ = "blocked_times"

    id = Column(Integer, primary_key=True, index=True)
    professional_id = Column(Integer, ForeignKey("professionals.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    reason = Column(String(200), nullable=True)
    created_at = Column(TIMESTAMP, server_default=func.now())

    __table_args__ = (
        CheckConstraint('start_time < end_time', name='blocked_time_valid_interval'),
    )

    def __repr__(self):
        return f"<BlockedTime {self.date} {self.start_time}-{self.end_time} - {self.reason}>"
