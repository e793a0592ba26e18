"""
Tests for report ordering, filtering and refresh.
"""

import asyncio
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError as SchemaError

from schemas import Report, ReportFilter
from services.errors import BackendError
from services.report_store import ReportStore, demo_reports, filter_reports, report_from_row, report_to_row


def make_report(report_id, title="Local report", **overrides):
    values = dict(
        id=report_id,
        title=title,
        description="Something is broken",
        category="Other",
        priority="Low",
        location="Somewhere",
        reporter="Tester",
        date=datetime(2025, 2, 1, tzinfo=timezone.utc),
    )
    values.update(overrides)
    return Report(**values)


def test_search_pothole_over_fixture():
    result = filter_reports(demo_reports(), ReportFilter(search_term="pothole", status="All", category="All"))
    assert [r.title for r in result] == ["Large pothole on Main Street"]


def test_search_is_case_insensitive_across_fields():
    fixture = demo_reports()
    assert [r.id for r in filter_reports(fixture, ReportFilter(search_term="POTHOLE"))] == ["RPT-001"]
    # reporter
    assert [r.id for r in filter_reports(fixture, ReportFilter(search_term="sarah"))] == ["RPT-002"]
    # location
    assert [r.id for r in filter_reports(fixture, ReportFilter(search_term="broadway"))] == ["RPT-005"]


def test_status_filter_exact_match():
    result = filter_reports(demo_reports(), ReportFilter(status="Fixed"))
    assert [r.id for r in result] == ["RPT-003", "RPT-005"]


def test_category_filter_exact_match():
    result = filter_reports(demo_reports(), ReportFilter(category="Road Sign"))
    assert [r.id for r in result] == ["RPT-004"]


def test_combined_filters():
    criteria = ReportFilter(search_term="traffic", status="Fixed", category="All")
    assert [r.id for r in filter_reports(demo_reports(), criteria)] == ["RPT-005"]


def test_local_reports_newest_first_before_external():
    store = ReportStore(include_demo=True)
    store.add_local(make_report("RPT-10"))
    store.add_local(make_report("RPT-11"))
    ids = [r.id for r in store.list()]
    assert ids[:2] == ["RPT-11", "RPT-10"]
    assert ids[2:] == ["RPT-001", "RPT-002", "RPT-003", "RPT-004", "RPT-005"]


def test_refresh_replaces_external_portion():
    rows = [{"id": "db-1", "title": "Fetched", "description": "d", "category": "Pothole",
             "location": "Main", "priority": "High", "status": "Reported", "user_id": "u1",
             "user_name": "Ann", "votes": 4, "created_at": "2025-03-01T00:00:00Z"}]

    async def fetch():
        return rows

    store = ReportStore(fetch, include_demo=False)
    store.add_local(make_report("RPT-10"))
    asyncio.run(store.refresh())
    assert [r.id for r in store.list()] == ["RPT-10", "db-1"]

    rows = []
    asyncio.run(store.refresh())
    assert [r.id for r in store.list()] == ["RPT-10"]


def test_refresh_keeps_demo_fixture_after_fetched():
    async def fetch():
        return [{"id": "db-1", "title": "Fetched", "created_at": "2025-03-01T00:00:00Z"}]

    store = ReportStore(fetch, include_demo=True)
    merged = asyncio.run(store.refresh())
    assert [r.id for r in merged] == ["db-1", "RPT-001", "RPT-002", "RPT-003", "RPT-004", "RPT-005"]


def test_refresh_failure_leaves_store_unchanged():
    async def fetch():
        raise BackendError("connection refused")

    store = ReportStore(fetch, include_demo=True)
    before = [r.id for r in store.list()]
    with pytest.raises(BackendError):
        asyncio.run(store.refresh())
    assert [r.id for r in store.list()] == before
    assert store.refreshing is False


def test_get_by_id():
    store = ReportStore(include_demo=True)
    assert store.get("RPT-003").title == "Overflowing trash bins"
    assert store.get("missing") is None


def test_row_mapping_round_trip_fields():
    report = make_report("RPT-20", lat=1.0, lng=2.0, user_id="u9")
    row = report_to_row(report)
    assert row["user_name"] == "Tester"
    assert row["category"] == "Other"
    again = report_from_row(dict(row, votes=3))
    assert again.reporter == "Tester"
    assert again.user_id == "u9"
    assert again.votes == 3
    assert again.date == report.date


def test_votes_cannot_be_assigned_negative():
    report = make_report("RPT-30")
    report.votes += 2
    assert report.votes == 2
    with pytest.raises(SchemaError):
        report.votes = -1
    assert report.votes == 2
