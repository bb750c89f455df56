"""
The one way an approved candidate gets written to the repository.

Both the webhook fast path and the background sweep call persist_candidate.
They may race on the same candidate; the store's persistence gate lets
exactly one of them insert.
"""

import asyncio
from typing import Optional, Protocol

from incident_review.models import Candidate, FireIncident
from incident_review.store import CandidateStore
from util.logging_util import setup_logger

logger = setup_logger(__name__)


class IncidentRepository(Protocol):
    def insert(self, candidate: Candidate, street: str) -> FireIncident:
        ...


class IncidentPersistError(Exception):
    """The repository insert failed. The candidate has been made retryable."""

    def __init__(self, candidate_id: str, message: str):
        super().__init__(f"Failed to persist {candidate_id}: {message}")
        self.candidate_id = candidate_id


async def persist_candidate(
    store: CandidateStore, repository: IncidentRepository, candidate_id: str
) -> Optional[FireIncident]:
    """Insert the candidate with its selected street, at most once.

    Returns:
        The inserted incident, or None if another attempt holds the gate
        or already finished.

    Raises:
        IncidentPersistError: the insert failed; the gate has been released.
    """
    if not store.begin_persisting(candidate_id):
        logger.debug(f"Persistence of {candidate_id} already in flight or done")
        return None

    try:
        view = store.get(candidate_id)
        if view is None or not view.selected_street or not view.selected_street.strip():
            raise ValueError("no street selected")
        inserted = await asyncio.to_thread(repository.insert, view.candidate, view.selected_street)
    except Exception as e:
        store.cancel_persisting(candidate_id)
        raise IncidentPersistError(candidate_id, str(e)) from e

    store.mark_persisted(candidate_id)
    logger.info(f"Candidate {candidate_id} persisted")
    return inserted
