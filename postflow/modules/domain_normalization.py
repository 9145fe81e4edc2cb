"""Массовая нормализация доменов сайтов в базе."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from sqlalchemy import text
from sqlalchemy.orm import Session, sessionmaker

from postflow.modules.utils.db import get_session_factory, session_scope
from postflow.modules.utils.normalize import DomainNormalizationError, normalize_domain

LOGGER = logging.getLogger("postflow.domain_normalization")

SELECT_WEBSITES_SQL = """
SELECT id, domain
FROM websites
ORDER BY created_at, id
"""

UPDATE_WEBSITE_DOMAIN_SQL = """
UPDATE websites
SET domain = :domain,
    updated_at = NOW()
WHERE id = :id
"""


class NormalizationConflictError(RuntimeError):
    """Нормализация приведёт к дублированию доменов."""

    def __init__(self, conflicts: List["DomainConflict"]) -> None:
        super().__init__(f"Найдено конфликтов нормализации: {len(conflicts)}")
        self.conflicts = conflicts


@dataclass
class NormalizationStats:
    """Статистика нормализации доменов."""

    total: int = 0
    needs_normalization: int = 0
    conflicts: int = 0
    normalized: int = 0
    errors: int = 0


@dataclass
class DomainChange:
    website_id: str
    original_domain: str
    normalized_domain: str


@dataclass
class DomainConflict:
    """Домен после нормализации уже занят другой записью."""

    normalized_domain: str
    conflicting_id: str
    conflicting_domain: str
    existing_id: str
    existing_domain: str


@dataclass
class NormalizationPreview:
    stats: NormalizationStats
    changes: List[DomainChange] = field(default_factory=list)
    conflicts: List[DomainConflict] = field(default_factory=list)


class DomainNormalizationService:
    """Приводит домены таблицы websites к каноническому виду."""

    def __init__(self, session_factory: Optional[sessionmaker[Session]] = None) -> None:
        self.session_factory = session_factory or get_session_factory()

    def preview(self, session: Optional[Session] = None) -> NormalizationPreview:
        """Показывает, какие домены изменятся и где возникнут конфликты."""
        if session is not None:
            return self._build_preview(session)

        with session_scope(self.session_factory) as scoped_session:
            preview = self._build_preview(scoped_session)
        return preview

    def execute(self, session: Optional[Session] = None) -> NormalizationStats:
        """Обновляет домены; при наличии конфликтов ничего не меняет."""
        if session is not None:
            return self._execute_with_session(session)

        with session_scope(self.session_factory) as scoped_session:
            stats = self._execute_with_session(scoped_session)
        return stats

    def _execute_with_session(self, session: Session) -> NormalizationStats:
        preview = self._build_preview(session)
        if preview.conflicts:
            raise NormalizationConflictError(preview.conflicts)

        for change in preview.changes:
            session.execute(
                text(UPDATE_WEBSITE_DOMAIN_SQL),
                {"id": change.website_id, "domain": change.normalized_domain},
            )
        preview.stats.normalized = len(preview.changes)
        if preview.stats.normalized:
            LOGGER.info("Нормализовано доменов: %s", preview.stats.normalized)
        return preview.stats

    def _build_preview(self, session: Session) -> NormalizationPreview:
        rows = list(session.execute(text(SELECT_WEBSITES_SQL)).mappings())
        stats = NormalizationStats(total=len(rows))

        pending: List[Tuple[str, str, str]] = []
        claimed: Dict[str, Tuple[str, str]] = {}
        for row in rows:
            website_id = str(row["id"])
            original = row["domain"] or ""
            try:
                normalized = normalize_domain(original).domain
            except DomainNormalizationError as exc:
                LOGGER.warning("Не удалось нормализовать домен %r (id=%s): %s", original, website_id, exc)
                stats.errors += 1
                continue
            if normalized == original:
                claimed[normalized] = (website_id, original)
            else:
                pending.append((website_id, original, normalized))

        preview = NormalizationPreview(stats=stats)
        for website_id, original, normalized in pending:
            stats.needs_normalization += 1
            owner = claimed.get(normalized)
            if owner is not None:
                preview.conflicts.append(
                    DomainConflict(
                        normalized_domain=normalized,
                        conflicting_id=website_id,
                        conflicting_domain=original,
                        existing_id=owner[0],
                        existing_domain=owner[1],
                    )
                )
                continue
            claimed[normalized] = (website_id, original)
            preview.changes.append(DomainChange(website_id, original, normalized))

        stats.conflicts = len(preview.conflicts)
        return preview
