"""
Workflow state for one candidate under review.

Every transition is a compare-and-set under the candidate's own lock and
reports whether it changed anything. Losing a race, or repeating a step that
already happened, is a normal False result rather than an error.
"""

import threading
from typing import Iterable, Optional, Tuple

from incident_review.models import Candidate, Decision, PendingCandidateView, PersistState


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


class PendingCandidate:
    """A candidate plus its review state. Only CandidateStore mutates these."""

    def __init__(self, candidate: Candidate):
        self.candidate = candidate
        self._lock = threading.Lock()
        self._decision = Decision.PENDING
        self._notified_message_id: Optional[int] = None
        self._street_options: Tuple[str, ...] = ()
        self._selected_street: Optional[str] = None
        self._awaiting_manual_street = False
        self._persist_state = PersistState.NOT_PERSISTED

    def view(self) -> PendingCandidateView:
        with self._lock:
            return PendingCandidateView(
                candidate=self.candidate,
                decision=self._decision,
                notified_message_id=self._notified_message_id,
                street_options=self._street_options,
                selected_street=self._selected_street,
                awaiting_manual_street=self._awaiting_manual_street,
                persist_state=self._persist_state,
            )

    def try_mark_notified(self, message_id: int) -> bool:
        with self._lock:
            if self._notified_message_id is not None:
                return False
            self._notified_message_id = message_id
            return True

    def try_set_decision(self, decision: Decision) -> bool:
        """Single-fire: a second call fails even with the same decision."""
        if decision == Decision.PENDING:
            return False
        with self._lock:
            if self._decision != Decision.PENDING:
                return False
            self._decision = decision
            return True

    def try_set_street_options(self, options: Iterable[str]) -> bool:
        cleaned = tuple(o for o in (options or ()) if not _is_blank(o))
        if not cleaned:
            return False
        with self._lock:
            if self._street_options:
                return False
            self._street_options = cleaned
            return True

    def _select_street_locked(self, street: str) -> bool:
        if self._decision != Decision.APPROVED:
            return False
        if _is_blank(street):
            return False
        if not _is_blank(self._selected_street):
            return False
        self._selected_street = street
        self._awaiting_manual_street = False
        return True

    def try_select_street(self, street: str) -> bool:
        with self._lock:
            return self._select_street_locked(street)

    def try_begin_manual_street(self) -> bool:
        with self._lock:
            if self._decision != Decision.APPROVED:
                return False
            if self._awaiting_manual_street or not _is_blank(self._selected_street):
                return False
            self._awaiting_manual_street = True
            return True

    def try_select_manual_street(self, street: str) -> bool:
        with self._lock:
            if not self._awaiting_manual_street:
                return False
            if self._select_street_locked(street):
                return True
            # A street arrived some other way; the prompt is stale either way.
            if not _is_blank(self._selected_street):
                self._awaiting_manual_street = False
            return False

    def cancel_manual_street(self) -> None:
        with self._lock:
            if _is_blank(self._selected_street):
                self._awaiting_manual_street = False

    def try_begin_persisting(self) -> bool:
        with self._lock:
            if self._decision != Decision.APPROVED:
                return False
            if self._persist_state != PersistState.NOT_PERSISTED:
                return False
            self._persist_state = PersistState.PERSISTING
            return True

    def try_mark_persisted(self) -> bool:
        with self._lock:
            if self._persist_state == PersistState.PERSISTED:
                return False
            self._persist_state = PersistState.PERSISTED
            return True

    def cancel_persisting(self) -> None:
        with self._lock:
            if self._persist_state == PersistState.PERSISTING:
                self._persist_state = PersistState.NOT_PERSISTED
