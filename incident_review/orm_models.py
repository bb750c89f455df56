"""
SQLAlchemy ORM models for the incident review system.

These models are internal to the database layer. The public interface
uses the dataclass models from models.py.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, DateTime, Integer, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from incident_review.models import FireIncident


class Base(DeclarativeBase):
    pass


class FireIncidentORM(Base):
    """SQLAlchemy model for fire_incidents table."""

    __tablename__ = "fire_incidents"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    occurred_at: Mapped[datetime] = mapped_column("datetime", DateTime(timezone=True), nullable=False)
    photo_url: Mapped[str] = mapped_column(Text, nullable=False, default="")
    street: Mapped[str] = mapped_column(Text, nullable=False)
    source_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


def incident_orm_to_dataclass(orm: FireIncidentORM) -> FireIncident:
    return FireIncident(
        id=orm.id,
        datetime=orm.occurred_at,
        photo_url=orm.photo_url,
        street=orm.street,
        source_url=orm.source_url,
    )


def incident_dataclass_to_orm(incident: FireIncident) -> FireIncidentORM:
    return FireIncidentORM(
        occurred_at=incident.datetime,
        photo_url=incident.photo_url,
        street=incident.street,
        source_url=incident.source_url,
    )
