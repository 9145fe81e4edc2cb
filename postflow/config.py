"""Загрузка конфигурации приложения из переменных окружения."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from postflow.modules.utils.target_hash import STALE_ANALYSIS_DAYS


@dataclass(frozen=True)
class DatabaseSettings:
    """Параметры подключения к базе данных."""

    host: str
    port: int
    user: str
    password: str
    name: str

    def sync_dsn(self) -> str:
        """Формирует DSN для синхронного движка SQLAlchemy."""
        return (
            f"postgresql+psycopg://{self.user}:{self.password}"
            f"@{self.host}:{self.port}/{self.name}"
        )


@dataclass(frozen=True)
class AnalysisSettings:
    """Параметры повторного анализа доменов."""

    stale_days: int
    batch_size: int


@dataclass(frozen=True)
class AhrefsSettings:
    """Параметры ссылок на отчёты Ahrefs."""

    position_range: str
    country: str


@dataclass(frozen=True)
class Settings:
    """Глобальные настройки приложения."""

    log_level: str
    database: DatabaseSettings
    analysis: AnalysisSettings
    ahrefs: AhrefsSettings


def _env(key: str, default: str = "") -> str:
    """Возвращает значение переменной окружения или значение по умолчанию."""
    return os.getenv(key, default).strip()


def _env_int(key: str, default: int) -> int:
    value = _env(key)
    if not value:
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"Переменная {key} должна быть целым числом, получено {value!r}") from exc


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Загружает настройки один раз и кэширует их для повторного использования."""
    db = DatabaseSettings(
        host=_env("POSTGRES_HOST", "db"),
        port=_env_int("POSTGRES_PORT", 5432),
        user=_env("POSTGRES_USER", "postflow"),
        password=_env("POSTGRES_PASSWORD", "postflow_password"),
        name=_env("POSTGRES_DB", "postflow"),
    )

    analysis = AnalysisSettings(
        stale_days=max(_env_int("ANALYSIS_STALE_DAYS", STALE_ANALYSIS_DAYS), 1),
        batch_size=max(_env_int("ANALYSIS_BATCH_SIZE", 500), 1),
    )

    ahrefs = AhrefsSettings(
        position_range=_env("AHREFS_POSITION_RANGE", "1-50"),
        country=_env("AHREFS_COUNTRY", "us").lower(),
    )

    return Settings(
        log_level=_env("LOG_LEVEL", "INFO").upper(),
        database=db,
        analysis=analysis,
        ahrefs=ahrefs,
    )
