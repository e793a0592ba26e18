"""
Tests for the per-client session bundle and its registry.
"""

import asyncio

from conftest import FakeBackend, make_settings
from schemas import ReportDraft
from services.client_session import SessionRegistry
from services.composer import ReportIdFactory
from services.errors import BackendError


def make_draft():
    return ReportDraft(title="Broken light", description="Out since Monday.", location="5 Oak Ave")


def test_sessions_get_distinct_ids_within_same_millisecond():
    registry = SessionRegistry(FakeBackend(), make_settings(), id_factory=ReportIdFactory(clock=lambda: 1000.0))

    first = asyncio.run(registry.get("alice").composer.submit(make_draft()))
    second = asyncio.run(registry.get("bob").composer.submit(make_draft()))

    assert first.id == "RPT-1000000"
    assert second.id == "RPT-1000001"


def test_registry_reuses_sessions():
    registry = SessionRegistry(FakeBackend(), make_settings())
    assert registry.get("alice") is registry.get("alice")
    assert registry.get("alice") is not registry.get("bob")
    assert len(registry) == 2


def test_persisted_report_is_voted_through_backend():
    backend = FakeBackend()
    session = SessionRegistry(backend, make_settings(persist_reports=True)).get("alice")

    report = asyncio.run(session.composer.submit(make_draft()))
    assert session.store.is_stored(report.id)

    asyncio.run(session.ledger.vote(report.id))
    assert backend.voted == [report.id]


def test_failed_persist_keeps_vote_local(monkeypatch):
    backend = FakeBackend()

    async def refuse(row, access_token=None):
        raise BackendError("insert failed")

    monkeypatch.setattr(backend, "create_problem", refuse)
    session = SessionRegistry(backend, make_settings(persist_reports=True)).get("alice")

    report = asyncio.run(session.composer.submit(make_draft()))
    assert session.store.get(report.id) is report
    assert not session.store.is_stored(report.id)

    asyncio.run(session.ledger.vote(report.id))
    assert report.votes == 1
    assert "increment_votes" not in backend.calls
