"""
In-memory report store for one client session.

Locally submitted reports are kept newest first and always precede the
reports fetched from the backend. A refresh replaces the fetched portion
wholesale; there is no reconciliation by id.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from schemas import (
    ALL,
    ANONYMOUS_REPORTER,
    ANONYMOUS_USER_ID,
    Report,
    ReportFilter,
)

logger = logging.getLogger(__name__)

Fetcher = Callable[[], Awaitable[List[Dict[str, Any]]]]

# Demo reports appended after fetched ones when demo data is enabled
DEMO_REPORTS: List[Dict[str, Any]] = [
    {
        "id": "RPT-001",
        "title": "Large pothole on Main Street",
        "category": "Pothole",
        "location": "123 Main St, Downtown",
        "status": "In Progress",
        "date": "2025-01-15T10:30:00Z",
        "reporter": "John D.",
        "description": "Deep pothole causing damage to vehicles. Located near the traffic light intersection.",
        "priority": "High",
        "votes": 23,
        "response_time": "2 days",
    },
    {
        "id": "RPT-002",
        "title": "Broken street light",
        "category": "Street Light",
        "location": "456 Oak Ave, Residential",
        "status": "Reported",
        "date": "2025-01-14T08:15:00Z",
        "reporter": "Sarah M.",
        "description": "Street light has been flickering for weeks and now completely dark, making area unsafe.",
        "priority": "Medium",
        "votes": 8,
    },
    {
        "id": "RPT-003",
        "title": "Overflowing trash bins",
        "category": "Waste Management",
        "location": "Central Park Entrance",
        "status": "Fixed",
        "date": "2025-01-12T14:20:00Z",
        "reporter": "Mike R.",
        "description": "Multiple trash bins overflowing for days, attracting pests and creating unsanitary conditions.",
        "priority": "Medium",
        "votes": 15,
        "response_time": "1 day",
    },
    {
        "id": "RPT-004",
        "title": "Damaged stop sign",
        "category": "Road Sign",
        "location": "789 Pine St & 2nd Ave",
        "status": "In Progress",
        "date": "2025-01-13T11:45:00Z",
        "reporter": "Lisa K.",
        "description": "Stop sign is bent and partially obscured by tree branches, creating safety hazard.",
        "priority": "High",
        "votes": 31,
        "response_time": "3 days",
    },
    {
        "id": "RPT-005",
        "title": "Malfunctioning traffic signal",
        "category": "Traffic Signal",
        "location": "Intersection of 1st & Broadway",
        "status": "Fixed",
        "date": "2025-01-10T16:00:00Z",
        "reporter": "David L.",
        "description": "Traffic light stuck on red for northbound traffic, causing major delays.",
        "priority": "High",
        "votes": 42,
        "response_time": "4 hours",
    },
]


def demo_reports() -> List[Report]:
    """Fresh copies of the demo fixture."""
    return [Report(**row) for row in DEMO_REPORTS]


def report_from_row(row: Dict[str, Any]) -> Report:
    """
    Map a row of the backend 'problems' table onto a Report.

    Args:
        row: Table row (user_name / user_id / created_at naming)

    Returns:
        Report instance
    """
    return Report(
        id=str(row["id"]),
        title=row.get("title") or "",
        description=row.get("description") or "",
        category=row.get("category") or "Other",
        priority=row.get("priority") or "Medium",
        status=row.get("status") or "Reported",
        location=row.get("location") or "",
        lat=row.get("lat"),
        lng=row.get("lng"),
        reporter=row.get("user_name") or ANONYMOUS_REPORTER,
        user_id=row.get("user_id") or ANONYMOUS_USER_ID,
        votes=row.get("votes") or 0,
        date=row.get("created_at") or datetime.now(timezone.utc),
        image_url=row.get("image_url"),
        response_time=row.get("response_time"),
    )


def report_to_row(report: Report) -> Dict[str, Any]:
    """Inverse of report_from_row, for inserting into the 'problems' table."""
    return {
        "id": report.id,
        "title": report.title,
        "description": report.description,
        "category": report.category.value,
        "location": report.location,
        "priority": report.priority.value,
        "status": report.status.value,
        "image_url": report.image_url,
        "user_id": report.user_id,
        "user_name": report.reporter,
        "created_at": report.date.isoformat(),
        "lat": report.lat,
        "lng": report.lng,
    }


def matches(report: Report, criteria: ReportFilter) -> bool:
    """True when the report passes the search term, status and category filters."""
    term = criteria.search_term.lower()
    if term and not any(
        term in field.lower()
        for field in (report.title, report.location, report.description, report.reporter)
    ):
        return False
    if criteria.status != ALL and report.status.value != criteria.status:
        return False
    if criteria.category != ALL and report.category.value != criteria.category:
        return False
    return True


def filter_reports(reports: List[Report], criteria: Optional[ReportFilter] = None) -> List[Report]:
    if criteria is None:
        return list(reports)
    return [r for r in reports if matches(r, criteria)]


class ReportStore:
    """
    Ordered report list: local reports first, then fetched ones.

    Args:
        fetcher: Coroutine function returning 'problems' rows, newest first
        include_demo: Append the demo fixture after fetched reports
    """

    def __init__(self, fetcher: Optional[Fetcher] = None, include_demo: bool = True):
        self._fetcher = fetcher
        self.include_demo = include_demo
        self._local: List[Report] = []
        self._external: List[Report] = demo_reports() if include_demo else []
        self._stored_ids: Set[str] = set()
        self.refreshing = False

    def add_local(self, report: Report) -> None:
        self._local.insert(0, report)

    def mark_stored(self, report_id: str) -> None:
        """Record that the backend holds a row for this report."""
        self._stored_ids.add(report_id)

    def is_stored(self, report_id: str) -> bool:
        """True for fetched rows and for local reports that were persisted."""
        return report_id in self._stored_ids

    def all(self) -> List[Report]:
        return self._local + self._external

    def list(self, criteria: Optional[ReportFilter] = None) -> List[Report]:
        return filter_reports(self.all(), criteria)

    def get(self, report_id: str) -> Optional[Report]:
        for report in self.all():
            if report.id == report_id:
                return report
        return None

    async def refresh(self) -> List[Report]:
        """
        Re-fetch the external portion and replace it.

        Returns:
            The merged list after the refresh

        Raises:
            BackendError: If the fetch fails; the store is left unchanged
        """
        self.refreshing = True
        try:
            rows = await self._fetcher() if self._fetcher else []
            external = [report_from_row(row) for row in rows]
        finally:
            self.refreshing = False

        local_ids = {r.id for r in self._local}
        self._stored_ids = {r.id for r in external} | (self._stored_ids & local_ids)

        if self.include_demo:
            external.extend(demo_reports())
        self._external = external
        logger.info("Report list refreshed: %d local, %d external", len(self._local), len(external))
        return self.all()
