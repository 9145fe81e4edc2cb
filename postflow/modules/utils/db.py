"""Подключение к базе данных и применение SQL-миграций."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.orm import Session, sessionmaker

from postflow.config import DatabaseSettings, get_settings

LOGGER = logging.getLogger("postflow.db")
DEFAULT_MIGRATIONS_PATH = Path(__file__).resolve().parents[3] / "migrations"

CREATE_MIGRATIONS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    id SERIAL PRIMARY KEY,
    filename TEXT UNIQUE NOT NULL,
    applied_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
"""


def create_engine_from_settings(db_settings: DatabaseSettings | None = None) -> Engine:
    """Создаёт SQLAlchemy Engine по настройкам окружения."""
    settings = db_settings or get_settings().database
    LOGGER.debug("Создание движка SQLAlchemy для %s:%s/%s", settings.host, settings.port, settings.name)
    return create_engine(settings.sync_dsn(), pool_pre_ping=True)


def get_session_factory(engine: Engine | None = None) -> sessionmaker[Session]:
    """Возвращает фабрику сессий без автофлаша."""
    return sessionmaker(bind=engine or create_engine_from_settings(), autoflush=False)


@contextmanager
def session_scope(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    """Открывает сессию: commit при успехе, rollback и повторный raise при ошибке."""
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:  # noqa: BLE001
        session.rollback()
        raise
    finally:
        session.close()


def _migration_files(path: Path) -> List[Path]:
    if not path.exists():
        raise FileNotFoundError(f"Каталог миграций не найден: {path}")
    return sorted(f for f in path.glob("*.sql") if f.is_file())


def _is_applied(connection: Connection, filename: str) -> bool:
    return bool(
        connection.execute(
            text("SELECT 1 FROM schema_migrations WHERE filename = :filename"),
            {"filename": filename},
        ).scalar()
    )


def run_sql_migrations(
    engine: Engine | None = None,
    migrations_path: Path | None = None,
    *,
    dry_run: bool = False,
) -> List[str]:
    """Применяет недостающие SQL-миграции по порядку имён файлов.

    При ``dry_run`` только возвращает список файлов, которые были бы применены.
    """
    eng = engine or create_engine_from_settings()
    sql_files = _migration_files(migrations_path or DEFAULT_MIGRATIONS_PATH)
    LOGGER.info("Найдено %d миграций", len(sql_files))

    with eng.begin() as connection:
        connection.exec_driver_sql(CREATE_MIGRATIONS_TABLE_SQL)

    pending: List[str] = []
    with eng.begin() as connection:
        for sql_file in sql_files:
            if _is_applied(connection, sql_file.name):
                LOGGER.debug("Миграция %s уже применена, пропускаем.", sql_file.name)
                continue
            pending.append(sql_file.name)
            if dry_run:
                continue
            LOGGER.info("Применяем миграцию %s", sql_file.name)
            connection.exec_driver_sql(sql_file.read_text(encoding="utf-8"))
            connection.execute(
                text("INSERT INTO schema_migrations (filename) VALUES (:filename)"),
                {"filename": sql_file.name},
            )

    return pending
