"""Unit tests for learned pattern selection, feedback and upload purge."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any

import pytest

from adforge.core.exceptions import PatternNotFoundError
from adforge.services.pattern_library import (
    PatternLibrary,
    score_pattern,
    select_relevant_patterns,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _pattern(**overrides: Any) -> SimpleNamespace:
    values = {
        "id": "pat-1",
        "category": "product_showcase",
        "platform": "general",
        "industry": None,
        "engagement_tier": "unverified",
        "last_used_at": None,
        "usage_count": 0,
        "is_active": True,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


class _FakeRepository:
    def __init__(self) -> None:
        self.patterns: list[SimpleNamespace] = []
        self.applications: list[SimpleNamespace] = []
        self.uploads: list[SimpleNamespace] = []
        self.usage_calls: list[list[str]] = []

    async def list_active_patterns(self, user_id: str, *, limit: int = 200) -> list[SimpleNamespace]:
        return [p for p in self.patterns if p.is_active][:limit]

    async def increment_usage(self, pattern_ids) -> int:
        self.usage_calls.append(list(pattern_ids))
        return len(pattern_ids)

    async def record_applications(self, *, user_id: str, pattern_ids, **fields: Any) -> list[SimpleNamespace]:
        rows = []
        for pattern_id in dict.fromkeys(pattern_ids):
            row = SimpleNamespace(
                id=f"app-{len(self.applications) + 1}",
                user_id=user_id,
                pattern_id=pattern_id,
                feedback_at=None,
                user_rating=None,
                **fields,
            )
            self.applications.append(row)
            rows.append(row)
        return rows

    async def latest_application(self, user_id: str, pattern_id: str) -> SimpleNamespace | None:
        matches = [a for a in self.applications if a.user_id == user_id and a.pattern_id == pattern_id]
        return matches[-1] if matches else None

    async def attach_feedback(self, application_id: str, *, rating: int, was_used, feedback) -> datetime | None:
        row = next(a for a in self.applications if a.id == application_id)
        if row.feedback_at is not None:
            return None
        row.user_rating = rating
        row.feedback_at = NOW
        return NOW

    async def list_expired_uploads(self, *, now: datetime, limit: int) -> list[SimpleNamespace]:
        return [u for u in self.uploads if u.expires_at <= now][:limit]

    async def delete_uploads(self, upload_ids) -> int:
        before = len(self.uploads)
        self.uploads = [u for u in self.uploads if u.id not in set(upload_ids)]
        return before - len(self.uploads)


class _FakeObjectStore:
    def __init__(self, failing: set[str] | None = None) -> None:
        self.failing = failing or set()
        self.deleted: list[str] = []

    def delete_object(self, object_key: str) -> None:
        if object_key in self.failing:
            raise RuntimeError("delete failed")
        self.deleted.append(object_key)


def test_score_combines_match_tier_recency_and_usage() -> None:
    pattern = _pattern(
        category="testimonial",
        platform="linkedin",
        industry="SaaS",
        engagement_tier="top-5",
        last_used_at=NOW - timedelta(days=2),
        usage_count=6,
    )

    score = score_pattern(pattern, category="testimonial", platform="linkedin", industry="saas", now=NOW)

    assert score == 25 + 20 + 15 + 12 + 10 + 3


def test_general_platform_gets_partial_credit() -> None:
    general = _pattern(platform="general")
    other = _pattern(platform="instagram")

    assert score_pattern(general, category=None, platform="linkedin", industry=None, now=NOW) == 5
    assert score_pattern(other, category=None, platform="linkedin", industry=None, now=NOW) == 0


def test_naive_last_used_is_treated_as_utc() -> None:
    pattern = _pattern(last_used_at=(NOW - timedelta(days=10)).replace(tzinfo=None))

    assert score_pattern(pattern, category=None, platform=None, industry=None, now=NOW) == 5 + 5


def test_selection_orders_by_score_and_keeps_input_order_on_ties() -> None:
    first = _pattern(id="a")
    second = _pattern(id="b")
    best = _pattern(id="c", category="comparison")
    inactive = _pattern(id="d", category="comparison", is_active=False)

    selected = select_relevant_patterns(
        [first, second, best, inactive],
        category="comparison",
        platform=None,
        industry=None,
        limit=3,
        now=NOW,
    )

    assert [p.id for p in selected] == ["c", "a", "b"]


def test_selection_with_zero_limit_is_empty() -> None:
    assert select_relevant_patterns([_pattern()], category=None, platform=None, industry=None, limit=0) == []


@pytest.mark.asyncio
async def test_feedback_attaches_to_latest_application_once() -> None:
    repository = _FakeRepository()
    library = PatternLibrary(repository)
    await library.record_applications(
        user_id="user-1", pattern_ids=["pat-1"], generation_id="gen-1", prompt_used="p1"
    )
    await library.record_applications(
        user_id="user-1", pattern_ids=["pat-1", "pat-1"], generation_id="gen-2", prompt_used="p2"
    )

    response = await library.record_feedback(user_id="user-1", pattern_id="pat-1", rating=4)

    assert response.application_id == "app-2"
    assert response.generation_id == "gen-2"
    assert repository.applications[0].user_rating is None
    assert len(repository.applications) == 2

    with pytest.raises(ValueError):
        await library.record_feedback(user_id="user-1", pattern_id="pat-1", rating=5)


@pytest.mark.asyncio
async def test_feedback_without_history_is_not_found() -> None:
    library = PatternLibrary(_FakeRepository())

    with pytest.raises(PatternNotFoundError):
        await library.record_feedback(user_id="user-1", pattern_id="pat-9", rating=3)


@pytest.mark.asyncio
async def test_record_usage_skips_empty_lists() -> None:
    repository = _FakeRepository()
    library = PatternLibrary(repository)

    await library.record_usage([])
    await library.record_usage(["pat-1", "pat-2"])

    assert repository.usage_calls == [["pat-1", "pat-2"]]


@pytest.mark.asyncio
async def test_purge_deletes_expired_rows_even_when_object_delete_fails() -> None:
    repository = _FakeRepository()
    repository.uploads = [
        SimpleNamespace(id="up-1", storage_key="uploads/1.png", expires_at=NOW - timedelta(hours=1)),
        SimpleNamespace(id="up-2", storage_key="uploads/2.png", expires_at=NOW - timedelta(hours=2)),
        SimpleNamespace(id="up-3", storage_key="uploads/3.png", expires_at=NOW + timedelta(hours=5)),
    ]
    store = _FakeObjectStore(failing={"uploads/2.png"})
    library = PatternLibrary(repository, object_store=store)

    purged = await library.purge_expired_uploads(batch_size=10, now=NOW)

    assert purged == 2
    assert store.deleted == ["uploads/1.png"]
    assert [u.id for u in repository.uploads] == ["up-3"]
    assert await library.purge_expired_uploads(batch_size=10, now=NOW) == 0
