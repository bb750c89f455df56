"""
Data models for the incident review system.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple


class Decision(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class PersistState(Enum):
    NOT_PERSISTED = "not_persisted"
    PERSISTING = "persisting"
    PERSISTED = "persisted"


@dataclass(frozen=True)
class Candidate:
    """One deduplicated feed item under review."""
    id: str
    title: str
    link: str
    published_at: Optional[datetime] = None
    summary: Optional[str] = None


@dataclass(frozen=True)
class PendingCandidateView:
    """Point-in-time copy of a pending candidate's workflow state."""
    candidate: Candidate
    decision: Decision
    notified_message_id: Optional[int]
    street_options: Tuple[str, ...]
    selected_street: Optional[str]
    awaiting_manual_street: bool
    persist_state: PersistState

    @property
    def is_persisted(self) -> bool:
        return self.persist_state == PersistState.PERSISTED

    @property
    def ready_to_persist(self) -> bool:
        """Approved, street chosen, and nobody has written it yet."""
        return (
            self.decision == Decision.APPROVED
            and self.persist_state == PersistState.NOT_PERSISTED
            and bool(self.selected_street and self.selected_street.strip())
        )


@dataclass(frozen=True)
class ArticleDetails:
    """What the article page tells us beyond the feed item."""
    photo_url: Optional[str] = None
    streets: List[str] = field(default_factory=list)

    @property
    def street(self) -> Optional[str]:
        return self.streets[0] if self.streets else None


EMPTY_ARTICLE_DETAILS = ArticleDetails()


@dataclass
class FireIncident:
    """A persisted incident record."""
    datetime: datetime
    photo_url: str
    street: str
    source_url: Optional[str] = None
    id: Optional[int] = None
