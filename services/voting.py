"""
Per-session voting ledger with optimistic updates.

Each report moves through NotVoted -> OptimisticallyVoted -> Voted, or back
to NotVoted when the backend refuses the vote. Voted is terminal for the
session.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional, Set

from schemas import Report

logger = logging.getLogger(__name__)

Confirmer = Callable[[str], Awaitable[None]]
ReportLookup = Callable[[str], Optional[Report]]


class VoteState(str, Enum):
    not_voted = "NotVoted"
    optimistically_voted = "OptimisticallyVoted"
    voted = "Voted"


@dataclass
class VoteTransaction:
    """One in-flight vote: what was applied, so it can be undone."""
    report: Report
    previous_votes: int
    increment: int = 1

    @property
    def report_id(self) -> str:
        return self.report.id


class VotingLedger:
    """
    Tracks which reports the session has up-voted.

    Args:
        lookup: Finds a report by id in the session's store
        confirm: Coroutine function confirming the vote with the backend
    """

    def __init__(self, lookup: ReportLookup, confirm: Confirmer):
        self._lookup = lookup
        self._confirm = confirm
        self._states: Dict[str, VoteState] = {}
        self._in_flight: Dict[str, VoteTransaction] = {}

    @property
    def voted_ids(self) -> Set[str]:
        """The voted-set: optimistic and confirmed votes."""
        return {rid for rid, state in self._states.items() if state != VoteState.not_voted}

    def state(self, report_id: str) -> VoteState:
        return self._states.get(report_id, VoteState.not_voted)

    def has_voted(self, report_id: str) -> bool:
        return report_id in self.voted_ids

    async def vote(self, report_id: str) -> VoteState:
        """
        Up-vote a report once per session.

        Args:
            report_id: Report to vote on

        Returns:
            The report's vote state afterwards

        Raises:
            KeyError: If the report is not in the store
            Exception: Whatever the confirmation raised, after rolling back
        """
        if self.has_voted(report_id):
            return self.state(report_id)

        report = self._lookup(report_id)
        if report is None:
            raise KeyError(report_id)

        tx = VoteTransaction(report=report, previous_votes=report.votes)
        report.votes += tx.increment
        self._states[report_id] = VoteState.optimistically_voted
        self._in_flight[report_id] = tx

        try:
            await self._confirm(report_id)
        except Exception:
            self._rollback(tx)
            raise
        finally:
            self._in_flight.pop(report_id, None)

        self._states[report_id] = VoteState.voted
        logger.info("Vote confirmed for %s", report_id)
        return VoteState.voted

    def _rollback(self, tx: VoteTransaction) -> None:
        # Only the object that was incremented is restored; a refreshed copy keeps the server count.
        tx.report.votes = tx.previous_votes
        self._states.pop(tx.report_id, None)
        logger.warning("Vote for %s failed; reverted to %d votes", tx.report_id, tx.previous_votes)
