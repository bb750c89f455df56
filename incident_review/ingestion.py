"""
Periodic ingestion of feed candidates into the review store.
"""

import asyncio
from typing import Callable, List, Optional, Protocol

from incident_review.loops import run_periodically
from incident_review.models import Candidate
from incident_review.store import CandidateStore
from util.logging_util import setup_logger

logger = setup_logger(__name__)


class CandidateNotifier(Protocol):
    async def send_candidate(self, candidate: Candidate, callback_token: str) -> Optional[int]:
        ...


class IngestionLoop:
    """
    Registers fetched candidates and sends the new ones for review.

    Feeds redeliver old items all the time; registering by id is what
    filters them out.

    Args:
        store: Shared candidate store.
        fetch_candidates: Blocking callable returning the current feed candidates.
        notifier: Sends a candidate and returns the Telegram message id.
        poll_interval_seconds: Delay between polls.
    """

    def __init__(
        self,
        store: CandidateStore,
        fetch_candidates: Callable[[], List[Candidate]],
        notifier: CandidateNotifier,
        poll_interval_seconds: float,
    ):
        self._store = store
        self._fetch_candidates = fetch_candidates
        self._notifier = notifier
        self._poll_interval_seconds = poll_interval_seconds

    async def poll_once(self) -> int:
        """Fetch once and register what is new. Returns the number of new candidates."""
        candidates = await asyncio.to_thread(self._fetch_candidates)

        added = 0
        for candidate in candidates:
            if not self._store.register(candidate):
                logger.debug(f"Candidate already known: {candidate.id}")
                continue
            added += 1

            token = self._store.resolve_token(candidate.id)
            message_id = await self._notifier.send_candidate(candidate, token)
            if message_id is not None:
                self._store.mark_notified(candidate.id, message_id)
            else:
                logger.warning(f"Candidate {candidate.id} registered but not delivered for review")

        if added > 0:
            logger.info(f"Added {added} RSS candidates.")
        return added

    async def run(self, stop_event: asyncio.Event) -> None:
        await run_periodically("RSS ingestion", self.poll_once, self._poll_interval_seconds, stop_event)
