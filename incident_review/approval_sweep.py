"""
Background sweep that persists approved candidates the webhook path missed.

The webhook persists right after a street is chosen. This sweep catches the
rest: inserts that failed and were rolled back, or streets selected while a
previous attempt was in flight.
"""

import asyncio

from incident_review.loops import run_periodically
from incident_review.persistence import IncidentPersistError, IncidentRepository, persist_candidate
from incident_review.store import CandidateStore
from util.logging_util import setup_logger

logger = setup_logger(__name__)


class ApprovalSweep:

    def __init__(self, store: CandidateStore, repository: IncidentRepository, poll_interval_seconds: float):
        self._store = store
        self._repository = repository
        self._poll_interval_seconds = poll_interval_seconds

    async def sweep_once(self) -> int:
        """Persist every ready candidate. Returns how many were inserted by this sweep."""
        persisted = 0
        for view in self._store.snapshot():
            if not view.ready_to_persist:
                continue

            candidate_id = view.candidate.id
            try:
                inserted = await persist_candidate(self._store, self._repository, candidate_id)
            except IncidentPersistError as e:
                logger.error(f"Failed to persist approved incident {candidate_id}: {e.__cause__ or e}")
                continue

            if inserted is not None:
                persisted += 1

        if persisted > 0:
            logger.info(f"Sweep persisted {persisted} approved incident(s)")
        return persisted

    async def run(self, stop_event: asyncio.Event) -> None:
        await run_periodically("approval sweep", self.sweep_once, self._poll_interval_seconds, stop_event)
