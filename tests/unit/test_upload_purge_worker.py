"""Unit tests for the expired upload purge worker loop."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from adforge.workers import upload_purge_worker


class _FakeLibrary:
    def __init__(self, batches: list[int], stop_event: asyncio.Event) -> None:
        self.batches = batches
        self.stop_event = stop_event
        self.calls: list[int] = []

    async def purge_expired_uploads(self, *, batch_size: int) -> int:
        self.calls.append(batch_size)
        if not self.batches:
            self.stop_event.set()
            return 0
        return self.batches.pop(0)


@pytest.mark.asyncio
async def test_worker_drains_full_batches_then_stops(monkeypatch: Any) -> None:
    closed: list[bool] = []

    async def _fake_close_db() -> None:
        closed.append(True)

    monkeypatch.setattr(upload_purge_worker, "close_db", _fake_close_db)
    stop_event = asyncio.Event()
    library = _FakeLibrary([50, 50, 3], stop_event)

    await asyncio.wait_for(
        upload_purge_worker.run_worker(
            batch_size=50,
            poll_interval=0.1,
            library=library,
            stop_event=stop_event,
        ),
        timeout=5,
    )

    assert library.calls == [50, 50, 50, 50]
    assert closed == [True]


@pytest.mark.asyncio
async def test_worker_waits_between_empty_polls(monkeypatch: Any) -> None:
    async def _fake_close_db() -> None:
        return None

    monkeypatch.setattr(upload_purge_worker, "close_db", _fake_close_db)
    stop_event = asyncio.Event()
    library = _FakeLibrary([0, 0], stop_event)

    await asyncio.wait_for(
        upload_purge_worker.run_worker(
            batch_size=0,
            poll_interval=0.1,
            library=library,
            stop_event=stop_event,
        ),
        timeout=5,
    )

    assert library.calls == [1, 1, 1]
