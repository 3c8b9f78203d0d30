from __future__ import annotations

from datetime import datetime, timezone


def getDurationMs(startMonotonic: float, endMonotonic: float) -> int:
    """
    Назначение:
        Считает длительность в миллисекундах по monotonic timestamps.
    """
    return int((endMonotonic - startMonotonic) * 1000)


def toUnixSeconds(value: datetime | None) -> int | None:
    """
    Назначение:
        Переводит datetime в unix-секунды для query-параметров API.

    Контракт:
        - None -> None (параметр не отправляется).
        - naive datetime трактуется как UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp())

