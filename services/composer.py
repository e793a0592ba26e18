"""
Report composer: collects a draft, validates it and turns it into a Report.

Submission is paced by a fixed artificial delay and debounced by a
SubmitRateLimiter; listeners registered with on_submitted receive every
new report (the report store, optional persistence, points).
"""

import asyncio
import inspect
import logging
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional

from schemas import (
    ANONYMOUS_REPORTER,
    ANONYMOUS_USER_ID,
    AnalysisResult,
    ComposerState,
    GeoFix,
    Identity,
    Priority,
    Report,
    ReportDraft,
    ReportStatus,
)
from services.errors import GeolocationError, SubmissionInProgressError, ValidationError
from services.rate_limit import SubmitRateLimiter

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 500

SubmitListener = Callable[[Report], Optional[Awaitable[None]]]
Locator = Callable[[], Awaitable[GeoFix]]


class ReportIdFactory:
    """Timestamp-derived ids ("RPT-<millis>"), strictly increasing per instance."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._last = 0

    def __call__(self) -> str:
        millis = int(self._clock() * 1000)
        if millis <= self._last:
            millis = self._last + 1
        self._last = millis
        return f"RPT-{millis}"


def reporter_name(identity: Optional[Identity]) -> str:
    """Display name: full name, then e-mail local part, then anonymous."""
    if identity is None:
        return ANONYMOUS_REPORTER
    if identity.full_name:
        return identity.full_name
    if identity.email:
        return identity.email.split("@")[0]
    return ANONYMOUS_REPORTER


def format_fix(fix: GeoFix) -> str:
    return f"{fix.latitude:.6f}, {fix.longitude:.6f}"


class ReportComposer:
    """
    Owns one draft and its submission lifecycle.

    Args:
        identity: Callable returning the signed-in identity (or None)
        rate_limiter: Debounce for consecutive submissions
        submit_delay: Artificial delay before a submission completes
        reset_delay: Delay before the draft is cleared after success
        geolocation_timeout: Bounded wait for a location fix
        id_factory: Report id generator
    """

    def __init__(
        self,
        identity: Callable[[], Optional[Identity]],
        rate_limiter: Optional[SubmitRateLimiter] = None,
        submit_delay: float = 2.0,
        reset_delay: float = 3.0,
        geolocation_timeout: float = 10.0,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        self._identity = identity
        self.rate_limiter = rate_limiter or SubmitRateLimiter()
        self.submit_delay = submit_delay
        self.reset_delay = reset_delay
        self.geolocation_timeout = geolocation_timeout
        self._new_id = id_factory or ReportIdFactory()
        self._listeners: List[SubmitListener] = []
        self._reset_handle: Optional[asyncio.TimerHandle] = None
        self._location_attempted = False

        self.draft = ReportDraft()
        self.location_fix: Optional[GeoFix] = None
        self.submitting = False
        self.submit_status = "idle"

    def on_submitted(self, listener: SubmitListener) -> None:
        self._listeners.append(listener)

    def state(self) -> ComposerState:
        return ComposerState(
            draft=self.draft,
            location_fix=self.location_fix,
            location_attempted=self._location_attempted,
            submitting=self.submitting,
            submit_status=self.submit_status,
        )

    # ============== Draft ==============

    def apply_analysis(self, result: AnalysisResult) -> None:
        """Seed category and priority from a manual category selection."""
        updates = {"category": result.category}
        if result.severity in {p.value for p in Priority}:
            updates["priority"] = result.severity
        self.draft = ReportDraft(**{**self.draft.model_dump(), **updates})

    def attach_image(self, image_url: str) -> None:
        self.draft = self.draft.model_copy(update={"image_url": image_url})

    def clear(self) -> None:
        """Reset the form; a location fix survives."""
        self.draft = ReportDraft()
        self.submit_status = "idle"
        self._reset_handle = None

    # ============== Location ==============

    async def acquire_location(self, locator: Locator) -> Optional[GeoFix]:
        """
        Best-effort, single attempt to obtain a geolocation fix.

        Denial or timeout leaves the composer without a fix, in which case a
        typed address is required. Later calls return the first outcome.
        """
        if self._location_attempted:
            return self.location_fix
        self._location_attempted = True
        try:
            self.location_fix = await asyncio.wait_for(locator(), timeout=self.geolocation_timeout)
        except asyncio.TimeoutError:
            logger.info("Location request timed out after %ss", self.geolocation_timeout)
        except GeolocationError as e:
            logger.info("Location access denied: %s", e.message)
        return self.location_fix

    def clear_location_fix(self) -> None:
        self.location_fix = None

    # ============== Submission ==============

    def validate(self, draft: ReportDraft) -> None:
        """
        Check a draft; the first failing rule wins.

        Raises:
            ValidationError: Describing the first failure
        """
        if not draft.title.strip():
            raise ValidationError("Problem title is required")
        if not draft.description.strip():
            raise ValidationError("Problem description is required")
        if not draft.location.strip() and self.location_fix is None:
            raise ValidationError("Please enter a location or allow location access")
        if len(draft.title) > TITLE_MAX_LENGTH:
            raise ValidationError(f"Title must be at most {TITLE_MAX_LENGTH} characters")
        if len(draft.description) > DESCRIPTION_MAX_LENGTH:
            raise ValidationError(f"Description must be at most {DESCRIPTION_MAX_LENGTH} characters")

    def _build_report(self, draft: ReportDraft) -> Report:
        identity = self._identity()
        fix = self.location_fix
        return Report(
            id=self._new_id(),
            title=draft.title.strip(),
            description=draft.description.strip(),
            category=draft.category,
            priority=draft.priority,
            status=ReportStatus.reported,
            location=format_fix(fix) if fix else draft.location.strip(),
            lat=fix.latitude if fix else None,
            lng=fix.longitude if fix else None,
            reporter=reporter_name(identity),
            user_id=identity.id if identity else ANONYMOUS_USER_ID,
            votes=0,
            date=datetime.now(timezone.utc),
            image_url=draft.image_url,
        )

    async def submit(self, draft: Optional[ReportDraft] = None) -> Report:
        """
        Validate and submit a draft.

        Args:
            draft: Form contents; the composer's current draft when omitted

        Returns:
            The newly created Report

        Raises:
            SubmissionInProgressError: If a submission is still running
            RateLimitedError: If called again within the minimum interval
            ValidationError: If the draft is incomplete
        """
        if self.submitting:
            raise SubmissionInProgressError()
        self.rate_limiter.acquire()

        if draft is not None:
            if draft.image_url is None and self.draft.image_url:
                draft = draft.model_copy(update={"image_url": self.draft.image_url})
            self.draft = draft
        self.validate(self.draft)

        if self._reset_handle is not None:
            self._reset_handle.cancel()
            self._reset_handle = None

        self.submitting = True
        self.submit_status = "idle"
        try:
            report = self._build_report(self.draft)
            await asyncio.sleep(self.submit_delay)
            for listener in self._listeners:
                result = listener(report)
                if inspect.isawaitable(result):
                    await result
        except Exception:
            self.submit_status = "error"
            logger.exception("Report submission failed")
            raise
        finally:
            self.submitting = False

        self.submit_status = "success"
        logger.info("Report %s submitted by %s", report.id, report.reporter)
        self._schedule_reset()
        return report

    def _schedule_reset(self) -> None:
        if self.reset_delay <= 0:
            self.clear()
            return
        loop = asyncio.get_running_loop()
        self._reset_handle = loop.call_later(self.reset_delay, self.clear)
