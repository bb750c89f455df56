"""
Database operations for the incident review system.

Uses SQLAlchemy ORM for database access. The public API uses dataclass models
from models.py, with conversion to/from ORM models handled internally.
"""

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select

from incident_review.article_details import ArticleDetailsFetcher
from incident_review.db_engine import get_engine, get_session
from incident_review.models import Candidate, FireIncident
from incident_review.orm_models import (
    Base,
    FireIncidentORM,
    incident_dataclass_to_orm,
    incident_orm_to_dataclass,
)
from util.logging_util import setup_logger

logger = setup_logger(__name__)


def init_db():
    """Initialize the database schema."""
    engine = get_engine()
    Base.metadata.create_all(engine)


def insert_incident(incident: FireIncident) -> FireIncident:
    """Insert an incident row.

    Returns the incident with its database id set.
    """
    orm = incident_dataclass_to_orm(incident)

    with get_session() as session:
        session.add(orm)
        session.flush()
        return incident_orm_to_dataclass(orm)


def get_incidents(limit: Optional[int] = None) -> List[FireIncident]:
    """Get incidents, newest first."""
    with get_session() as session:
        stmt = select(FireIncidentORM).order_by(FireIncidentORM.id.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        orms = session.execute(stmt).scalars().all()
        return [incident_orm_to_dataclass(orm) for orm in orms]


class SqlIncidentRepository:
    """Writes approved candidates to the fire_incidents table.

    Blocking; callers on the event loop run insert in a worker thread.
    """

    def __init__(
        self,
        details_fetcher: Optional[ArticleDetailsFetcher] = None,
        default_photo_url: Optional[str] = None,
    ):
        self._details_fetcher = details_fetcher
        self._default_photo_url = default_photo_url

    def _resolve_photo_url(self, candidate: Candidate) -> str:
        if self._details_fetcher is not None:
            details = self._details_fetcher.fetch(candidate)
            if details.photo_url:
                return details.photo_url
        if self._default_photo_url:
            return self._default_photo_url
        return candidate.link or ""

    def insert(self, candidate: Candidate, street: str) -> FireIncident:
        incident = FireIncident(
            datetime=candidate.published_at or datetime.now(timezone.utc),
            photo_url=self._resolve_photo_url(candidate),
            street=street,
            source_url=candidate.link or None,
        )
        inserted = insert_incident(incident)
        logger.info(f"Inserted incident {inserted.id} for {candidate.id} (street: {street})")
        return inserted
