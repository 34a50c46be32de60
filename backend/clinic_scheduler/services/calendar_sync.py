"""
Интеграция с внешним календарём специалиста
Занятое время читается при каждом расчёте слотов и нигде не сохраняется.
"""
import logging
from datetime import date, datetime, time
from typing import List, Optional

import httpx

from ..config import get_settings
from .schedule import Interval

settings = get_settings()
logger = logging.getLogger(__name__)


def _parse_busy_times(payload: dict) -> List[Interval]:
    """Разобрать ответ сервиса календаря: {"busyTimes": [{"start": "HH:MM", "end": "HH:MM"}]}"""
    intervals = []
    for item in payload.get("busyTimes") or []:
        start = datetime.strptime(item["start"], "%H:%M").time()
        end = datetime.strptime(item["end"], "%H:%M").time()
        if end == time.min and start > time.min:
            # Событие до полуночи занимает остаток дня
            end = time.max
        if start >= end:
            continue
        intervals.append(Interval(start, end))
    return intervals


async def _post(client: httpx.AsyncClient, body: dict) -> httpx.Response:
    response = await client.post(
        settings.CALENDAR_SYNC_URL,
        json=body,
        timeout=settings.CALENDAR_TIMEOUT_SECONDS
    )
    response.raise_for_status()
    return response


async def fetch_external_busy(
    clinic_id: int,
    professional_id: int,
    target_date: date,
    client: Optional[httpx.AsyncClient] = None
) -> List[Interval]:
    """
    Получить занятое время специалиста из внешнего календаря.

    Если календарь не настроен, не ответил за CALENDAR_TIMEOUT_SECONDS
    или вернул ошибку, возвращается пустой список: внешних ограничений нет.
    """
    if not settings.CALENDAR_SYNC_URL:
        return []

    body = {
        "action": "get-busy-times",
        "clinicId": clinic_id,
        "professionalId": professional_id,
        "date": target_date.isoformat()
    }

    try:
        if client is None:
            async with httpx.AsyncClient() as own_client:
                response = await _post(own_client, body)
        else:
            response = await _post(client, body)
        return _parse_busy_times(response.json())
    except httpx.TimeoutException:
        logger.warning(
            "Календарь не ответил за %s с (специалист %s, %s), считаем что внешних ограничений нет",
            settings.CALENDAR_TIMEOUT_SECONDS, professional_id, target_date
        )
    except httpx.HTTPError as e:
        logger.warning("Ошибка запроса к календарю (специалист %s, %s): %s", professional_id, target_date, e)
    except (ValueError, KeyError, TypeError) as e:
        logger.warning("Некорректный ответ календаря (специалист %s, %s): %s", professional_id, target_date, e)

    return []


async def sync_appointment(action: str, appointment: dict, client: Optional[httpx.AsyncClient] = None) -> str:
    """
    Отправить запись в календарь (action: create-event или delete-event).
    Возвращает статус для журнала: sent, skipped или failed.
    """
    if not settings.CALENDAR_SYNC_URL:
        return "skipped"

    body = {
        "action": action,
        "clinicId": appointment["clinic_id"],
        "appointment": appointment
    }

    try:
        if client is None:
            async with httpx.AsyncClient() as own_client:
                await _post(own_client, body)
        else:
            await _post(client, body)
    except httpx.HTTPError as e:
        logger.warning("Синхронизация записи #%s с календарём не удалась: %s", appointment["id"], e)
        return "failed"

    logger.info("Запись #%s синхронизирована с календарём (%s)", appointment["id"], action)
    return "sent"
