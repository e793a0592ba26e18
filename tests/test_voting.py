"""
Tests for the voting ledger's optimistic update and rollback.
"""

import asyncio

import pytest

from services.errors import BackendError
from services.report_store import ReportStore
from services.voting import VoteState, VotingLedger


def make_ledger(confirm=None):
    store = ReportStore(include_demo=True)
    confirmed = []

    async def default_confirm(report_id):
        confirmed.append(report_id)

    ledger = VotingLedger(store.get, confirm or default_confirm)
    return store, ledger, confirmed


def test_vote_increments_and_confirms():
    store, ledger, confirmed = make_ledger()
    before = store.get("RPT-002").votes

    state = asyncio.run(ledger.vote("RPT-002"))

    assert state == VoteState.voted
    assert store.get("RPT-002").votes == before + 1
    assert ledger.voted_ids == {"RPT-002"}
    assert confirmed == ["RPT-002"]


def test_second_vote_is_noop():
    store, ledger, confirmed = make_ledger()
    asyncio.run(ledger.vote("RPT-002"))
    after_first = store.get("RPT-002").votes

    state = asyncio.run(ledger.vote("RPT-002"))

    assert state == VoteState.voted
    assert store.get("RPT-002").votes == after_first
    assert ledger.voted_ids == {"RPT-002"}
    assert confirmed == ["RPT-002"]


def test_failed_confirmation_rolls_back():
    async def refuse(report_id):
        raise BackendError("network down")

    store, ledger, _ = make_ledger(confirm=refuse)
    before = store.get("RPT-004").votes

    with pytest.raises(BackendError):
        asyncio.run(ledger.vote("RPT-004"))

    assert store.get("RPT-004").votes == before
    assert "RPT-004" not in ledger.voted_ids
    assert ledger.state("RPT-004") == VoteState.not_voted


def test_vote_after_rollback_can_succeed():
    attempts = []

    async def flaky(report_id):
        attempts.append(report_id)
        if len(attempts) == 1:
            raise BackendError("timeout")

    store, ledger, _ = make_ledger(confirm=flaky)
    before = store.get("RPT-001").votes
    with pytest.raises(BackendError):
        asyncio.run(ledger.vote("RPT-001"))
    asyncio.run(ledger.vote("RPT-001"))
    assert store.get("RPT-001").votes == before + 1
    assert ledger.state("RPT-001") == VoteState.voted


def test_vote_while_in_flight_is_noop():
    release = None
    calls = []

    async def slow_confirm(report_id):
        calls.append(report_id)
        await release.wait()

    store, ledger, _ = make_ledger(confirm=slow_confirm)
    before = store.get("RPT-003").votes

    async def scenario():
        nonlocal release
        release = asyncio.Event()
        first = asyncio.ensure_future(ledger.vote("RPT-003"))
        await asyncio.sleep(0)
        assert ledger.state("RPT-003") == VoteState.optimistically_voted
        assert store.get("RPT-003").votes == before + 1
        second = await ledger.vote("RPT-003")
        release.set()
        return second, await first

    second, first = asyncio.run(scenario())
    assert second == VoteState.optimistically_voted
    assert first == VoteState.voted
    assert store.get("RPT-003").votes == before + 1
    assert calls == ["RPT-003"]


def test_unknown_report():
    _, ledger, confirmed = make_ledger()
    with pytest.raises(KeyError):
        asyncio.run(ledger.vote("nope"))
    assert confirmed == []
    assert ledger.voted_ids == set()


def test_refresh_during_failed_vote_keeps_fetched_count():
    rows = [{"id": "db-1", "title": "Fetched", "votes": 4, "created_at": "2025-03-01T00:00:00Z"}]

    async def fetch():
        return [dict(row) for row in rows]

    store = ReportStore(fetch, include_demo=False)
    asyncio.run(store.refresh())
    original = store.get("db-1")

    async def refresh_then_fail(report_id):
        await store.refresh()
        raise BackendError("network down")

    ledger = VotingLedger(store.get, refresh_then_fail)
    with pytest.raises(BackendError):
        asyncio.run(ledger.vote("db-1"))

    assert store.get("db-1") is not original
    assert store.get("db-1").votes == 4
    assert original.votes == 4
    assert ledger.state("db-1") == VoteState.not_voted
