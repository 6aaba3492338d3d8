"""SQLAlchemy models for persistent storage.

This module defines the database schema for the reconciled catalog
snapshot: events, markets, tags, event/tag links and ingestion state.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests).
JsonType = JSON().with_variant(JSONB(), "postgresql")


def new_surrogate_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class EventModel(Base):
    """Upstream event (one game/fixture), keyed by its upstream numeric id."""

    __tablename__ = "events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_surrogate_id)
    polymarket_event_id: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)

    slug: Mapped[str | None] = mapped_column(String(255), nullable=True)
    title: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    active: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    closed: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    archived: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    featured: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    restricted: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    liquidity: Mapped[Decimal | None] = mapped_column(Numeric(30, 10), nullable=True)
    volume: Mapped[Decimal | None] = mapped_column(Numeric(30, 10), nullable=True)

    raw: Mapped[dict[str, Any] | None] = mapped_column(JsonType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    markets: Mapped[list[MarketModel]] = relationship(back_populates="event")

    __table_args__ = (
        Index("idx_events_start_date", "start_date"),
        Index("idx_events_slug", "slug"),
    )


class MarketModel(Base):
    """Upstream market belonging to exactly one event."""

    __tablename__ = "markets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_surrogate_id)
    polymarket_market_id: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)
    event_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("events.id", ondelete="SET NULL"), nullable=True
    )

    slug: Mapped[str | None] = mapped_column(String(255), nullable=True)
    question: Mapped[str | None] = mapped_column(Text, nullable=True)
    title: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str | None] = mapped_column(String(120), nullable=True)
    condition_id: Mapped[str | None] = mapped_column(String(80), nullable=True)
    market_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    format_type: Mapped[str | None] = mapped_column(String(64), nullable=True)

    active: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    closed: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    status: Mapped[str | None] = mapped_column(String(64), nullable=True)
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    resolve_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    liquidity: Mapped[Decimal | None] = mapped_column(Numeric(30, 10), nullable=True)
    volume: Mapped[Decimal | None] = mapped_column(Numeric(30, 10), nullable=True)
    volume_24hr: Mapped[Decimal | None] = mapped_column(Numeric(30, 10), nullable=True)

    outcome_prices: Mapped[list[Any] | None] = mapped_column(JsonType, nullable=True)
    outcomes: Mapped[list[Any] | None] = mapped_column(JsonType, nullable=True)
    # Index-aligned with ``outcomes``.
    clob_token_ids: Mapped[list[str] | None] = mapped_column(JsonType, nullable=True)

    raw: Mapped[dict[str, Any] | None] = mapped_column(JsonType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    event: Mapped[EventModel | None] = relationship(back_populates="markets")

    __table_args__ = (
        Index("idx_markets_event_id", "event_id"),
        Index("idx_markets_updated_at", "updated_at"),
        Index("idx_markets_end_date", "end_date"),
    )


class TagModel(Base):
    """Upstream tag; the primary key is the upstream tag id."""

    __tablename__ = "tags"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    label: Mapped[str | None] = mapped_column(String(255), nullable=True)
    slug: Mapped[str | None] = mapped_column(String(255), nullable=True)
    force_show: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    force_hide: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    is_carousel: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class EventTagModel(Base):
    """Event/tag association (insert-only)."""

    __tablename__ = "event_tags"

    event_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("events.id", ondelete="CASCADE"), primary_key=True
    )
    tag_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True
    )

    __table_args__ = (Index("idx_event_tags_tag_id", "tag_id"),)


class IngestionStateModel(Base):
    """Last-run bookkeeping for a pipeline, one row per key."""

    __tablename__ = "ingestion_state"

    key: Mapped[str] = mapped_column(String(120), primary_key=True)
    last_run_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    events_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    markets_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )
