"""Тесты определения доменов для повторного bulk-анализа."""

import json
from datetime import datetime, timedelta
from typing import Any, Dict, List

import pytest

from postflow.modules.bulk_analysis import BulkAnalysisService, BulkDomainNotFound
from postflow.modules.utils.target_hash import hash_array


class DummyMappingResult:
    def __init__(self, rows: List[Dict[str, Any]]) -> None:
        self._rows = rows

    def mappings(self):
        return self

    def first(self):
        return self._rows[0] if self._rows else None

    def __iter__(self):
        return iter(self._rows)


class DummySession:
    def __init__(self, rows: Dict[str, Dict[str, Any]]) -> None:
        self.rows = rows
        self.updates: List[Dict[str, Any]] = []
        self.selected_batches: List[List[str]] = []

    def execute(self, statement, params=None):  # noqa: ANN001
        sql = statement.text if hasattr(statement, "text") else str(statement)
        params = params or {}

        if "SELECT id, domain, target_page_ids, target_hash, analyzed_at" in sql:
            self.selected_batches.append(list(params["ids"]))
            selected = [dict(self.rows[key], id=key) for key in params["ids"] if key in self.rows]
            return DummyMappingResult(selected)

        if "SELECT target_page_ids" in sql:
            row = self.rows.get(params["id"])
            return DummyMappingResult([row] if row else [])

        if "UPDATE bulk_analysis_domains" in sql:
            self.updates.append(params)
            self.rows[params["id"]]["target_page_ids"] = json.loads(params["target_page_ids"])
            self.rows[params["id"]]["target_hash"] = params["target_hash"]
            return None

        raise AssertionError(f"Unexpected SQL executed: {sql}")

    def commit(self) -> None:  # noqa: D401
        pass

    def rollback(self) -> None:  # noqa: D401
        pass

    def close(self) -> None:  # noqa: D401
        pass


@pytest.fixture
def session(fixed_now: datetime) -> DummySession:
    def row(domain: str, target_page_ids: List[str], analyzed_at) -> Dict[str, Any]:
        return {
            "domain": domain,
            "target_page_ids": target_page_ids,
            "target_hash": hash_array(target_page_ids),
            "analyzed_at": analyzed_at,
        }

    return DummySession(
        {
            "d1": row("alpha.com", ["t1", "t2"], None),
            "d2": row("beta.com", ["t1", "t2"], fixed_now - timedelta(days=200)),
            "d3": row("gamma.com", ["t1"], fixed_now - timedelta(days=10)),
            "d4": row("delta.com", ["t2", "t1"], fixed_now - timedelta(days=5)),
        }
    )


def _service(session: DummySession, fixed_now: datetime, **kwargs) -> BulkAnalysisService:
    return BulkAnalysisService(
        session_factory=lambda: session,  # type: ignore[arg-type]
        now_func=lambda: fixed_now,
        **kwargs,
    )


def test_plan_refresh_reasons(session: DummySession, fixed_now: datetime) -> None:
    service = _service(session, fixed_now)

    decisions = service.plan_refresh(["d1", "d2", "d3", "d4"], ["t1", "t2"])

    assert [(d.domain, d.reason, d.needs_refresh) for d in decisions] == [
        ("alpha.com", "never_analyzed", True),
        ("beta.com", "stale", True),
        ("gamma.com", "targets_changed", True),
        ("delta.com", "fresh", False),
    ]
    assert [d.age_days for d in decisions] == [None, 200, 10, 5]


def test_plan_refresh_uses_configured_stale_days(monkeypatch, session: DummySession, fixed_now: datetime) -> None:
    monkeypatch.setenv("ANALYSIS_STALE_DAYS", "3")

    decisions = _service(session, fixed_now).plan_refresh(["d4"], ["t1", "t2"])

    assert decisions[0].reason == "stale"


def test_plan_refresh_without_ids_skips_database(session: DummySession, fixed_now: datetime) -> None:
    assert _service(session, fixed_now).plan_refresh([], ["t1"]) == []


def test_apply_targets_merges_and_rehashes(session: DummySession, fixed_now: datetime) -> None:
    service = _service(session, fixed_now)

    merged = service.apply_targets("d3", ["t2", "t1", "t3"])

    assert merged == ["t1", "t2", "t3"]
    assert session.updates[0]["target_hash"] == hash_array(["t1", "t2", "t3"])
    assert session.rows["d3"]["target_page_ids"] == ["t1", "t2", "t3"]


def test_apply_targets_unknown_domain(session: DummySession, fixed_now: datetime) -> None:
    with pytest.raises(BulkDomainNotFound):
        _service(session, fixed_now).apply_targets("missing", ["t1"])


def test_plan_refresh_compares_stored_target_hash(session: DummySession, fixed_now: datetime) -> None:
    session.rows["d4"]["target_hash"] = hash_array(["t9"])
    session.rows["d3"]["target_hash"] = hash_array(["t1", "t2"])

    decisions = _service(session, fixed_now).plan_refresh(["d3", "d4"], ["t1", "t2"])

    assert [(d.domain, d.reason) for d in decisions] == [
        ("gamma.com", "fresh"),
        ("delta.com", "targets_changed"),
    ]


def test_plan_refresh_queries_in_batches(session: DummySession, fixed_now: datetime) -> None:
    decisions = _service(session, fixed_now, batch_size=3).plan_refresh(["d1", "d2", "d3", "d4"], ["t1", "t2"])

    assert session.selected_batches == [["d1", "d2", "d3"], ["d4"]]
    assert [d.domain_id for d in decisions] == ["d1", "d2", "d3", "d4"]


def test_plan_refresh_batch_size_from_env(monkeypatch, session: DummySession, fixed_now: datetime) -> None:
    monkeypatch.setenv("ANALYSIS_BATCH_SIZE", "2")

    _service(session, fixed_now).plan_refresh(["d1", "d2", "d3"], ["t1", "t2"])

    assert session.selected_batches == [["d1", "d2"], ["d3"]]


def test_explicit_zero_stale_days_is_respected(session: DummySession, fixed_now: datetime) -> None:
    service = _service(session, fixed_now, stale_days=0)

    decisions = service.plan_refresh(["d4"], ["t1", "t2"])

    assert service.stale_days == 0
    assert decisions[0].reason == "stale"
