"""
In-memory registry of candidates under review.

The store owns every PendingCandidate and the token map, and is the only
thing that mutates them. It is created once at startup and handed to the
ingestion loop, the approval sweep and the webhook dispatcher.

Locking is two-level: a short registry lock guards dictionary membership,
and each candidate carries its own lock for its transitions. Nothing here
blocks on I/O, so none of these calls should be made while awaiting.

State is not persisted. Candidates that were pending when the process
stopped are gone after a restart, and their buttons resolve as expired.
"""

import threading
from typing import Dict, Iterable, List, Optional

from incident_review.models import Candidate, Decision, PendingCandidateView
from incident_review.pending import PendingCandidate
from incident_review.tokens import TokenMap, normalize_candidate_id
from util.logging_util import setup_logger

logger = setup_logger(__name__)


class CandidateStore:

    def __init__(self, token_map: Optional[TokenMap] = None):
        self._candidates: Dict[str, PendingCandidate] = {}
        self._tokens = token_map if token_map is not None else TokenMap()
        self._registry_lock = threading.Lock()
        # chat id -> candidate id, for reviewers asked to type a street
        self._manual_requests: Dict[str, str] = {}
        self._manual_lock = threading.Lock()

    def _get(self, candidate_id: str) -> Optional[PendingCandidate]:
        if not candidate_id:
            return None
        with self._registry_lock:
            return self._candidates.get(normalize_candidate_id(candidate_id))

    def register(self, candidate: Candidate) -> bool:
        """Add a new candidate and mint its callback token.

        Returns False if the id (compared case-insensitively) is already
        known, or if no collision-free token could be minted. In the latter
        case the candidate is removed again before the lock is released.
        """
        if not candidate.id or not candidate.id.strip():
            return False

        key = normalize_candidate_id(candidate.id)
        with self._registry_lock:
            if key in self._candidates:
                return False
            self._candidates[key] = PendingCandidate(candidate)

            token = self._tokens.mint(candidate.id)
            if token is None:
                del self._candidates[key]
                self._tokens.discard(candidate.id)
                logger.error(f"Could not mint a unique callback token for {candidate.id}")
                return False

        return True

    def get(self, candidate_id: str) -> Optional[PendingCandidateView]:
        pending = self._get(candidate_id)
        return pending.view() if pending is not None else None

    def mark_notified(self, candidate_id: str, message_id: int) -> bool:
        pending = self._get(candidate_id)
        return pending is not None and pending.try_mark_notified(message_id)

    def set_decision(self, candidate_id: str, decision: Decision) -> bool:
        pending = self._get(candidate_id)
        return pending is not None and pending.try_set_decision(decision)

    def set_street_options(self, candidate_id: str, options: Iterable[str]) -> bool:
        pending = self._get(candidate_id)
        return pending is not None and pending.try_set_street_options(options)

    def select_street(self, candidate_id: str, street: str) -> bool:
        pending = self._get(candidate_id)
        if pending is None or not pending.try_select_street(street):
            return False
        self._drop_manual_requests_for(candidate_id)
        return True

    def begin_manual_street(self, candidate_id: str, chat_id: Optional[str] = None) -> bool:
        """Start waiting for a typed street.

        When chat_id is given, free text from that chat is routed to this
        candidate until the request is cleared. A chat waits for one typed
        street at a time: this fails while the chat still owes a street to
        another candidate.
        """
        pending = self._get(candidate_id)
        if pending is None:
            return False
        if not chat_id:
            return pending.try_begin_manual_street()

        with self._manual_lock:
            if self._owes_other_street(str(chat_id), candidate_id):
                return False
            if not pending.try_begin_manual_street():
                return False
            self._manual_requests[str(chat_id)] = candidate_id
        return True

    def _owes_other_street(self, chat_id: str, candidate_id: str) -> bool:
        """Caller holds _manual_lock."""
        current = self._manual_requests.get(chat_id)
        if current is None or normalize_candidate_id(current) == normalize_candidate_id(candidate_id):
            return False
        other = self._get(current)
        return other is not None and other.view().awaiting_manual_street

    def select_manual_street(self, candidate_id: str, street: str) -> bool:
        pending = self._get(candidate_id)
        return pending is not None and pending.try_select_manual_street(street)

    def cancel_manual_street(self, candidate_id: str) -> None:
        pending = self._get(candidate_id)
        if pending is None:
            return
        pending.cancel_manual_street()
        if not pending.view().awaiting_manual_street:
            self._drop_manual_requests_for(candidate_id)

    def manual_street_request(self, chat_id: str) -> Optional[str]:
        if not chat_id:
            return None
        with self._manual_lock:
            return self._manual_requests.get(str(chat_id))

    def clear_manual_street_request(self, chat_id: str, candidate_id: str) -> None:
        """Remove the chat's request if it still points at this candidate."""
        with self._manual_lock:
            current = self._manual_requests.get(str(chat_id))
            if current is not None and normalize_candidate_id(current) == normalize_candidate_id(candidate_id):
                del self._manual_requests[str(chat_id)]

    def _drop_manual_requests_for(self, candidate_id: str) -> None:
        key = normalize_candidate_id(candidate_id)
        with self._manual_lock:
            stale = [chat for chat, cid in self._manual_requests.items() if normalize_candidate_id(cid) == key]
            for chat in stale:
                del self._manual_requests[chat]

    def begin_persisting(self, candidate_id: str) -> bool:
        """Take the per-candidate persistence gate. At most one holder at a time."""
        pending = self._get(candidate_id)
        return pending is not None and pending.try_begin_persisting()

    def mark_persisted(self, candidate_id: str) -> bool:
        pending = self._get(candidate_id)
        return pending is not None and pending.try_mark_persisted()

    def cancel_persisting(self, candidate_id: str) -> None:
        pending = self._get(candidate_id)
        if pending is not None:
            pending.cancel_persisting()

    def resolve_candidate_id(self, token: str) -> Optional[str]:
        return self._tokens.resolve_candidate_id(token)

    def resolve_token(self, candidate_id: str) -> Optional[str]:
        return self._tokens.resolve_token(candidate_id)

    def snapshot(self) -> List[PendingCandidateView]:
        """Copy of every candidate's state.

        Each view is consistent on its own; views of different candidates
        may be taken at slightly different moments.
        """
        with self._registry_lock:
            pendings = list(self._candidates.values())
        return [p.view() for p in pendings]

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._candidates)
