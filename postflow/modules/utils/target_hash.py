"""Хеши наборов целевых страниц и расчёт давности анализа."""

from __future__ import annotations

import hashlib
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Sequence, TypeVar

T = TypeVar("T")

# Полгода считаем как 6 * 30 дней, без календарных месяцев.
STALE_ANALYSIS_DAYS = 6 * 30


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _resolve_now(now: Optional[datetime]) -> datetime:
    return _as_utc(now) if now is not None else datetime.now(timezone.utc)


def hash_array(values: Optional[Sequence[str]]) -> str:
    """Возвращает MD5 от отсортированного набора строк.

    Порядок элементов не влияет на результат, повторы не схлопываются:
    ``["a", "a"]`` и ``["a"]`` дают разные хеши.
    """
    if not values:
        return ""
    payload = "|".join(sorted(values))
    return hashlib.md5(payload.encode("utf-8"), usedforsecurity=False).hexdigest()


def is_analysis_stale(
    analyzed_at: Optional[datetime],
    now: Optional[datetime] = None,
    stale_days: int = STALE_ANALYSIS_DAYS,
) -> bool:
    """Проверяет, устарел ли анализ; отсутствие анализа считается устаревшим."""
    if analyzed_at is None:
        return True
    return _resolve_now(now) - _as_utc(analyzed_at) > timedelta(days=stale_days)


def has_target_urls_changed(
    existing: Optional[Sequence[str]],
    incoming: Optional[Sequence[str]],
) -> bool:
    """Сравнивает наборы целевых страниц без учёта порядка."""
    return hash_array(existing or []) != hash_array(incoming or [])


def merge_target_page_ids(existing: Iterable[T], incoming: Iterable[T]) -> List[T]:
    """Объединяет идентификаторы, сохраняя порядок первого появления."""
    merged: List[T] = []
    seen = set()
    for item in list(existing) + list(incoming):
        if item in seen:
            continue
        seen.add(item)
        merged.append(item)
    return merged


def get_analysis_age_days(analyzed_at: Optional[datetime], now: Optional[datetime] = None) -> Optional[int]:
    """Возвращает число полных дней с момента анализа."""
    if analyzed_at is None:
        return None
    return (_resolve_now(now) - _as_utc(analyzed_at)) // timedelta(days=1)
