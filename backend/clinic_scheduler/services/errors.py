"""
Ошибки движка расписания
"""


class SchedulingError(Exception):
    """Базовая ошибка движка расписания"""

    code = "scheduling_error"

    def __init__(self, message: str = None):
        super().__init__(message or self.__doc__)
        self.message = message or self.__doc__


# ==================== Не найдено ====================

class NotFoundError(SchedulingError):
    """Объект не найден"""
    code = "not_found"


class ProfessionalNotFound(NotFoundError):
    """Специалист не найден или неактивен"""
    code = "professional_not_found"


class AppointmentNotFound(NotFoundError):
    """Запись не найдена"""
    code = "appointment_not_found"


class ShiftNotFound(NotFoundError):
    """Смена не настроена на эту дату"""
    code = "shift_not_found"


# ==================== Валидация ====================

class BookingValidationError(SchedulingError):
    """Некорректные параметры записи"""
    code = "validation_error"


# ==================== Конфликты (нужно обновить доступность) ====================

class ConflictError(SchedulingError):
    """Выбранное время или смена больше недоступны"""
    code = "conflict"


class SlotUnavailable(ConflictError):
    """Выбранное время недоступно"""
    code = "slot_unavailable"


class ShiftFull(ConflictError):
    """В смене не осталось мест"""
    code = "shift_full"


class ShiftClosed(ConflictError):
    """Смена уже закончилась"""
    code = "shift_closed"


# ==================== Состояние очереди ====================

class InvalidTransition(SchedulingError):
    """Недопустимый переход статуса записи"""

    code = "invalid_transition"

    def __init__(self, action: str, status, message: str = None):
        self.action = action
        self.status = status
        status_value = getattr(status, "value", status)
        super().__init__(message or f"Действие '{action}' недопустимо для статуса '{status_value}'")
