"""Тесты хешей целевых страниц и давности анализа."""

import hashlib
from datetime import datetime, timedelta

from postflow.modules.utils.target_hash import (
    STALE_ANALYSIS_DAYS,
    get_analysis_age_days,
    has_target_urls_changed,
    hash_array,
    is_analysis_stale,
    merge_target_page_ids,
)


def test_hash_array_is_order_independent() -> None:
    assert hash_array(["b", "a"]) == hash_array(["a", "b"])
    assert len(hash_array(["a", "b"])) == 32


def test_hash_array_keeps_duplicates() -> None:
    assert hash_array(["a", "a"]) != hash_array(["a"])
    assert hash_array(["a", "a", "b"]) != hash_array(["a", "b"])


def test_hash_array_empty_values() -> None:
    assert hash_array([]) == ""
    assert hash_array(None) == ""


def test_hash_array_digest_of_sorted_joined_values() -> None:
    expected = hashlib.md5(b"a|b|c").hexdigest()
    assert hash_array(["c", "a", "b"]) == expected


def test_is_analysis_stale(fixed_now: datetime) -> None:
    assert is_analysis_stale(None) is True
    assert is_analysis_stale(fixed_now - timedelta(days=30), now=fixed_now) is False
    assert is_analysis_stale(fixed_now - timedelta(days=210), now=fixed_now) is True
    assert is_analysis_stale(fixed_now - timedelta(days=STALE_ANALYSIS_DAYS), now=fixed_now) is False
    assert is_analysis_stale(fixed_now - timedelta(days=STALE_ANALYSIS_DAYS, seconds=1), now=fixed_now) is True


def test_is_analysis_stale_accepts_naive_datetime(fixed_now: datetime) -> None:
    naive = (fixed_now - timedelta(days=10)).replace(tzinfo=None)
    assert is_analysis_stale(naive, now=fixed_now) is False


def test_is_analysis_stale_custom_threshold(fixed_now: datetime) -> None:
    assert is_analysis_stale(fixed_now - timedelta(days=31), now=fixed_now, stale_days=30) is True


def test_has_target_urls_changed() -> None:
    assert has_target_urls_changed(["a", "b"], ["b", "a"]) is False
    assert has_target_urls_changed([], ["a"]) is True
    assert has_target_urls_changed(None, []) is False
    assert has_target_urls_changed(["a"], None) is True


def test_merge_target_page_ids() -> None:
    assert merge_target_page_ids(["a", "b"], ["b", "c"]) == ["a", "b", "c"]
    assert merge_target_page_ids(["a", "a"], []) == ["a"]
    assert merge_target_page_ids([], ["c", "c", "d"]) == ["c", "d"]


def test_get_analysis_age_days(fixed_now: datetime) -> None:
    assert get_analysis_age_days(None) is None
    assert get_analysis_age_days(fixed_now, now=fixed_now) == 0
    assert get_analysis_age_days(fixed_now - timedelta(days=3), now=fixed_now) == 3
    assert get_analysis_age_days(fixed_now - timedelta(days=3, hours=23), now=fixed_now) == 3
