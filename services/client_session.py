"""
Per-client bundle of session-scoped state and its registry.

A ClientSession wires one SessionManager, ReportComposer, ReportStore and
VotingLedger around the shared backend client.
"""

import logging
from typing import Callable, Dict, Optional

from database import Settings
from schemas import Identity, Report
from services.composer import ReportComposer, ReportIdFactory
from services.errors import BackendError
from services.rate_limit import SubmitRateLimiter
from services.report_store import ReportStore, report_to_row
from services.session import SIGNED_OUT, SessionManager
from services.statistics import REPORT_POINTS
from services.voting import VotingLedger

logger = logging.getLogger(__name__)


class ClientSession:
    """
    State owned by one client.

    Args:
        backend: Shared backend client
        settings: Runtime settings
        id_factory: Report id generator shared by all sessions
    """

    def __init__(self, backend, settings: Settings, id_factory: Optional[Callable[[], str]] = None):
        self.backend = backend
        self.settings = settings

        self.auth = SessionManager(
            backend,
            rate_limiter=SubmitRateLimiter(settings.submit_interval),
            password_reset_redirect=settings.password_reset_redirect,
        )
        self.store = ReportStore(self._fetch_problems, include_demo=settings.demo_data)
        self.composer = ReportComposer(
            lambda: self.auth.identity,
            rate_limiter=SubmitRateLimiter(settings.submit_interval),
            submit_delay=settings.submit_delay,
            reset_delay=settings.reset_delay,
            geolocation_timeout=settings.geolocation_timeout,
            id_factory=id_factory,
        )
        self.ledger = VotingLedger(self.store.get, self._confirm_vote)

        self.composer.on_submitted(self.store.add_local)
        if settings.persist_reports:
            self.composer.on_submitted(self._persist_report)
        self.composer.on_submitted(self._award_points)
        self.auth.subscribe(self._on_auth_event)

    async def _fetch_problems(self):
        return await self.backend.get_problems(limit=self.settings.fetch_limit)

    async def _confirm_vote(self, report_id: str) -> None:
        # Demo reports and unpersisted local ones have no backend row; the count stays local.
        if not self.store.is_stored(report_id):
            logger.info("Vote on %s kept local; report is not stored in the backend", report_id)
            return
        await self.backend.increment_votes(report_id, access_token=self.auth.access_token)

    async def _persist_report(self, report: Report) -> None:
        try:
            await self.backend.create_problem(report_to_row(report), access_token=self.auth.access_token)
        except BackendError as e:
            logger.error("Failed to store report %s: %s", report.id, e.message)
        else:
            self.store.mark_stored(report.id)

    async def _award_points(self, report: Report) -> None:
        identity = self.auth.identity
        if identity is None:
            return
        try:
            await self.backend.add_user_points(identity.id, REPORT_POINTS, access_token=self.auth.access_token)
        except BackendError as e:
            logger.error("Failed to award points to %s: %s", identity.id, e.message)

    def _on_auth_event(self, event: str, identity: Optional[Identity]) -> None:
        if event == SIGNED_OUT:
            self.composer.clear()


class SessionRegistry:
    """Creates ClientSessions lazily, one per session id; report ids come from one factory."""

    def __init__(self, backend, settings: Settings, id_factory: Optional[Callable[[], str]] = None):
        self.backend = backend
        self.settings = settings
        self.id_factory = id_factory or ReportIdFactory()
        self._sessions: Dict[str, ClientSession] = {}

    def get(self, session_id: str) -> ClientSession:
        session = self._sessions.get(session_id)
        if session is None:
            session = ClientSession(self.backend, self.settings, id_factory=self.id_factory)
            self._sessions[session_id] = session
            logger.info("New client session: %s", session_id)
        return session

    def __len__(self) -> int:
        return len(self._sessions)
