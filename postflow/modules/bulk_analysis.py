"""Определение доменов bulk-анализа, которым нужен повторный анализ."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

from sqlalchemy import bindparam, text
from sqlalchemy.orm import Session, sessionmaker

from postflow.config import get_settings
from postflow.modules.utils.db import get_session_factory, session_scope
from postflow.modules.utils.target_hash import (
    get_analysis_age_days,
    hash_array,
    is_analysis_stale,
    merge_target_page_ids,
)

LOGGER = logging.getLogger("postflow.bulk_analysis")

SELECT_DOMAINS_SQL = text(
    """
    SELECT id, domain, target_page_ids, target_hash, analyzed_at
    FROM bulk_analysis_domains
    WHERE id IN :ids
    ORDER BY created_at, id
    """
).bindparams(bindparam("ids", expanding=True))

SELECT_DOMAIN_TARGETS_SQL = """
SELECT target_page_ids
FROM bulk_analysis_domains
WHERE id = :id
"""

UPDATE_DOMAIN_TARGETS_SQL = """
UPDATE bulk_analysis_domains
SET target_page_ids = CAST(:target_page_ids AS JSONB),
    target_hash = :target_hash,
    updated_at = NOW()
WHERE id = :id
"""

REASON_NEVER_ANALYZED = "never_analyzed"
REASON_STALE = "stale"
REASON_TARGETS_CHANGED = "targets_changed"
REASON_FRESH = "fresh"


class BulkDomainNotFound(LookupError):
    """Домен bulk-анализа не найден."""


@dataclass
class RefreshDecision:
    """Решение о повторном анализе домена."""

    domain_id: str
    domain: str
    needs_refresh: bool
    reason: str
    age_days: Optional[int]


class BulkAnalysisService:
    """Сравнивает сохранённые результаты анализа с новым набором целевых страниц."""

    def __init__(
        self,
        session_factory: Optional[sessionmaker[Session]] = None,
        *,
        stale_days: Optional[int] = None,
        batch_size: Optional[int] = None,
        now_func: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.session_factory = session_factory or get_session_factory()
        settings = get_settings().analysis
        self.stale_days = stale_days if stale_days is not None else settings.stale_days
        self.batch_size = max(batch_size if batch_size is not None else settings.batch_size, 1)
        self._now_func = now_func

    def plan_refresh(
        self,
        domain_ids: Sequence[str],
        target_page_ids: Sequence[str],
        session: Optional[Session] = None,
    ) -> List[RefreshDecision]:
        """Возвращает решения по каждому найденному домену."""
        if not domain_ids:
            return []
        if session is not None:
            return self._plan_with_session(session, domain_ids, target_page_ids)

        with session_scope(self.session_factory) as scoped_session:
            decisions = self._plan_with_session(scoped_session, domain_ids, target_page_ids)
        return decisions

    def apply_targets(
        self,
        domain_id: str,
        target_page_ids: Sequence[str],
        session: Optional[Session] = None,
    ) -> List[str]:
        """Добавляет целевые страницы к домену и пересчитывает target_hash."""
        if session is not None:
            return self._apply_with_session(session, domain_id, target_page_ids)

        with session_scope(self.session_factory) as scoped_session:
            merged = self._apply_with_session(scoped_session, domain_id, target_page_ids)
        return merged

    def _decide(self, row, target_page_ids: Sequence[str], now: datetime) -> RefreshDecision:
        analyzed_at = row["analyzed_at"]
        if analyzed_at is None:
            reason = REASON_NEVER_ANALYZED
        elif is_analysis_stale(analyzed_at, now=now, stale_days=self.stale_days):
            reason = REASON_STALE
        elif (row["target_hash"] or "") != hash_array(target_page_ids):
            reason = REASON_TARGETS_CHANGED
        else:
            reason = REASON_FRESH
        return RefreshDecision(
            domain_id=str(row["id"]),
            domain=row["domain"],
            needs_refresh=reason != REASON_FRESH,
            reason=reason,
            age_days=get_analysis_age_days(analyzed_at, now=now),
        )

    def _plan_with_session(
        self,
        session: Session,
        domain_ids: Sequence[str],
        target_page_ids: Sequence[str],
    ) -> List[RefreshDecision]:
        ids = list(domain_ids)
        now = self._now_func()
        decisions: List[RefreshDecision] = []
        for start in range(0, len(ids), self.batch_size):
            batch = ids[start:start + self.batch_size]
            rows = session.execute(SELECT_DOMAINS_SQL, {"ids": batch}).mappings()
            decisions.extend(self._decide(row, target_page_ids, now) for row in rows)
        refresh_count = sum(1 for decision in decisions if decision.needs_refresh)
        LOGGER.info("Доменов к повторному анализу: %s из %s", refresh_count, len(decisions))
        return decisions

    def _apply_with_session(self, session: Session, domain_id: str, target_page_ids: Sequence[str]) -> List[str]:
        existing = session.execute(text(SELECT_DOMAIN_TARGETS_SQL), {"id": domain_id}).mappings().first()
        if existing is None:
            raise BulkDomainNotFound(f"Домен bulk-анализа {domain_id} не найден")

        merged = merge_target_page_ids(existing["target_page_ids"] or [], target_page_ids)
        session.execute(
            text(UPDATE_DOMAIN_TARGETS_SQL),
            {
                "id": domain_id,
                "target_page_ids": json.dumps(merged),
                "target_hash": hash_array(merged),
            },
        )
        return merged
