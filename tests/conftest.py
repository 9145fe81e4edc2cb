"""Общие фикстуры для тестов."""

from datetime import datetime, timezone
from typing import Iterator

import pytest

from postflow.config import get_settings

FIXED_NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def default_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Заполняет переменные окружения значениями по умолчанию и сбрасывает кэш настроек."""
    monkeypatch.setenv("POSTGRES_HOST", "localhost")
    monkeypatch.setenv("POSTGRES_DB", "postflow_test")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.delenv("ANALYSIS_STALE_DAYS", raising=False)
    monkeypatch.delenv("ANALYSIS_BATCH_SIZE", raising=False)
    monkeypatch.delenv("AHREFS_POSITION_RANGE", raising=False)
    monkeypatch.delenv("AHREFS_COUNTRY", raising=False)
    get_settings.cache_clear()  # type: ignore[attr-defined]
    yield
    get_settings.cache_clear()  # type: ignore[attr-defined]


@pytest.fixture
def fixed_now() -> datetime:
    """Фиксированный момент времени для расчётов давности."""
    return FIXED_NOW
