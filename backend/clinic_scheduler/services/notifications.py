"""
Сервис для отправки уведомлений о записях
Отправка выполняется после фиксации записи: ошибка отправки не отменяет запись
"""
import logging
from typing import Optional, List, Tuple
from enum import Enum

import httpx
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from ..config import get_settings
from ..models.appointment import Appointment
from ..models.notification import NotificationLog
from .calendar_sync import sync_appointment

settings = get_settings()
logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    """Типы уведомлений"""
    BOOKING_CREATED = "booking_created"
    BOOKING_CANCELLED = "booking_cancelled"


def appointment_payload(appointment: Appointment) -> dict:
    """Полная запись в виде словаря для внешних сервисов"""
    professional = appointment.professional
    return {
        "id": appointment.id,
        "clinic_id": appointment.clinic_id,
        "professional_id": appointment.professional_id,
        "professional_name": professional.name if professional else None,
        "date": appointment.date.isoformat(),
        "time": appointment.time.strftime("%H:%M") if appointment.time else None,
        "shift_name": appointment.shift_name,
        "status": appointment.status.value,
        "queue_position": appointment.queue_position,
        "patient_name": appointment.patient_name,
        "patient_email": appointment.patient_email,
        "patient_phone": appointment.patient_phone,
        "notes": appointment.notes,
        "cancellation_token": appointment.cancellation_token,
    }


class NotificationService:
    """Сервис для отправки уведомлений в Telegram клиники и пациенту"""

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self.bot_token = settings.TELEGRAM_BOT_TOKEN
        self.clinic_chat_id = settings.TELEGRAM_CLINIC_CHAT_ID
        self.webhook_url = settings.NOTIFICATION_WEBHOOK_URL
        self.api_url = f"https://api.telegram.org/bot{self.bot_token}"
        self.client = client

    async def _post(self, url: str, body: dict) -> httpx.Response:
        if self.client is not None:
            return await self.client.post(url, json=body, timeout=settings.NOTIFICATION_TIMEOUT_SECONDS)
        async with httpx.AsyncClient() as client:
            return await client.post(url, json=body, timeout=settings.NOTIFICATION_TIMEOUT_SECONDS)

    async def send_telegram_message(self, chat_id: str, text: str, parse_mode: str = "HTML") -> str:
        """
        Отправить сообщение в Telegram

        Returns:
            str: sent, failed или skipped (если Telegram не настроен)
        """
        if not chat_id or not self.bot_token:
            logger.debug("Telegram не настроен, пропускаем отправку")
            return "skipped"

        try:
            response = await self._post(
                f"{self.api_url}/sendMessage",
                {"chat_id": chat_id, "text": text, "parse_mode": parse_mode}
            )
        except httpx.HTTPError as e:
            logger.warning(f"Исключение при отправке в Telegram: {e}")
            return "failed"

        if response.status_code == 200:
            logger.info(f"Уведомление отправлено в чат {chat_id}")
            return "sent"

        logger.warning(f"Ошибка отправки в Telegram: {response.status_code} {response.text[:200]}")
        return "failed"

    async def notify_clinic(self, notification_type: NotificationType, appointment: dict) -> str:
        """Уведомление клинике о новой или отменённой записи"""
        titles = {
            NotificationType.BOOKING_CREATED: "🔔 <b>НОВАЯ ЗАПИСЬ</b>",
            NotificationType.BOOKING_CANCELLED: "❌ <b>ЗАПИСЬ ОТМЕНЕНА</b>",
        }
        slot = appointment["time"] or f"смена {appointment['shift_name']}"

        message = (
            f"{titles[notification_type]}\n\n"
            f"👤 Пациент: {appointment['patient_name']}\n"
            f"📞 Телефон: {appointment['patient_phone']}\n"
            f"🩺 Специалист: {appointment['professional_name'] or '—'}\n"
            f"📅 Дата: {appointment['date']}\n"
            f"🕐 Время: {slot}\n\n"
            f"ID #{appointment['id']}"
        )
        return await self.send_telegram_message(self.clinic_chat_id, message)

    async def notify_patient(self, notification_type: NotificationType, appointment: dict) -> str:
        """
        Передать запись сервису рассылки писем пациенту.
        Шаблон письма формируется на стороне сервиса.
        """
        if not self.webhook_url:
            return "skipped"

        body = {
            "event": notification_type.value,
            "appointmentId": appointment["id"],
            "appointment": appointment,
            "cancelUrl": f"{settings.SITE_URL}/cancel/{appointment['cancellation_token']}"
        }

        try:
            response = await self._post(self.webhook_url, body)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Не удалось отправить подтверждение пациенту по записи #{appointment['id']}: {e}")
            return "failed"

        return "sent"


def record_notifications(
    bind: Engine,
    appointment_id: int,
    notification_type: NotificationType,
    results: List[Tuple[str, str]]
):
    """Записать результаты отправки в журнал уведомлений"""
    db = Session(bind=bind)
    try:
        for channel, status in results:
            db.add(NotificationLog(
                appointment_id=appointment_id,
                channel=channel,
                event=notification_type.value,
                status=status
            ))
        db.commit()
    except Exception:
        db.rollback()
        logger.exception(f"Не удалось сохранить журнал уведомлений по записи #{appointment_id}")
    finally:
        db.close()


async def _dispatch(
    notification_type: NotificationType,
    calendar_action: str,
    appointment: dict,
    bind: Optional[Engine] = None,
    service: Optional[NotificationService] = None
) -> List[Tuple[str, str]]:
    service = service or NotificationService()
    steps = [
        ("calendar", lambda: sync_appointment(calendar_action, appointment)),
        ("telegram", lambda: service.notify_clinic(notification_type, appointment)),
        ("webhook", lambda: service.notify_patient(notification_type, appointment)),
    ]

    results = []
    for channel, send in steps:
        try:
            status = await send()
        except Exception:
            # Внешние сервисы не должны влиять на уже сохранённую запись
            logger.exception(f"Ошибка канала {channel} по записи #{appointment['id']}")
            status = "failed"
        results.append((channel, status))

    if bind is not None:
        record_notifications(bind, appointment["id"], notification_type, results)

    return results


async def dispatch_booking_created(appointment: dict, bind: Optional[Engine] = None, service: Optional[NotificationService] = None):
    """Календарь + уведомления после успешной записи"""
    return await _dispatch(NotificationType.BOOKING_CREATED, "create-event", appointment, bind, service)


async def dispatch_booking_cancelled(appointment: dict, bind: Optional[Engine] = None, service: Optional[NotificationService] = None):
    """Календарь + уведомления после отмены записи"""
    return await _dispatch(NotificationType.BOOKING_CANCELLED, "delete-event", appointment, bind, service)
