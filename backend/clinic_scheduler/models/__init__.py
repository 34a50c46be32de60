"""
SQLAlchemy модели для базы данных
"""
from .clinic import Clinic
from .professional import Professional, SchedulingMode
from .shift import Shift, ShiftName
from .blocked_time import BlockedTime
from .appointment import Appointment, AppointmentStatus
from .notification import NotificationLog

__all__ = [
    "Clinic",
    "Professional",
    "SchedulingMode",
    "Shift",
    "ShiftName",
    "BlockedTime",
    "Appointment",
    "AppointmentStatus",
    "NotificationLog"
]
