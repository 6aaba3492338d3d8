"""Catalog snapshot: events, markets, tags, event/tag links, ingestion state.

Revision ID: 001_catalog
Revises:
Create Date: 2026-10-18 00:00:00.000000+00:00
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_catalog"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "events",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("polymarket_event_id", sa.BigInteger(), nullable=False),
        sa.Column("slug", sa.String(255), nullable=True),
        sa.Column("title", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=True),
        sa.Column("closed", sa.Boolean(), nullable=True),
        sa.Column("archived", sa.Boolean(), nullable=True),
        sa.Column("featured", sa.Boolean(), nullable=True),
        sa.Column("restricted", sa.Boolean(), nullable=True),
        sa.Column("liquidity", sa.Numeric(30, 10), nullable=True),
        sa.Column("volume", sa.Numeric(30, 10), nullable=True),
        sa.Column("raw", postgresql.JSONB(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("polymarket_event_id"),
    )
    op.create_index("idx_events_start_date", "events", ["start_date"])
    op.create_index("idx_events_slug", "events", ["slug"])

    op.create_table(
        "tags",
        sa.Column("id", sa.BigInteger(), autoincrement=False, nullable=False),
        sa.Column("label", sa.String(255), nullable=True),
        sa.Column("slug", sa.String(255), nullable=True),
        sa.Column("force_show", sa.Boolean(), nullable=True),
        sa.Column("force_hide", sa.Boolean(), nullable=True),
        sa.Column("is_carousel", sa.Boolean(), nullable=True),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "markets",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("polymarket_market_id", sa.BigInteger(), nullable=False),
        sa.Column("event_id", sa.String(36), nullable=True),
        sa.Column("slug", sa.String(255), nullable=True),
        sa.Column("question", sa.Text(), nullable=True),
        sa.Column("title", sa.Text(), nullable=True),
        sa.Column("category", sa.String(120), nullable=True),
        sa.Column("condition_id", sa.String(80), nullable=True),
        sa.Column("market_type", sa.String(64), nullable=True),
        sa.Column("format_type", sa.String(64), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=True),
        sa.Column("closed", sa.Boolean(), nullable=True),
        sa.Column("status", sa.String(64), nullable=True),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolve_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("liquidity", sa.Numeric(30, 10), nullable=True),
        sa.Column("volume", sa.Numeric(30, 10), nullable=True),
        sa.Column("volume_24hr", sa.Numeric(30, 10), nullable=True),
        sa.Column("outcome_prices", postgresql.JSONB(), nullable=True),
        sa.Column("outcomes", postgresql.JSONB(), nullable=True),
        sa.Column("clob_token_ids", postgresql.JSONB(), nullable=True),
        sa.Column("raw", postgresql.JSONB(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["event_id"], ["events.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("polymarket_market_id"),
    )
    op.create_index("idx_markets_event_id", "markets", ["event_id"])
    op.create_index("idx_markets_updated_at", "markets", ["updated_at"])
    op.create_index("idx_markets_end_date", "markets", ["end_date"])

    op.create_table(
        "event_tags",
        sa.Column("event_id", sa.String(36), nullable=False),
        sa.Column("tag_id", sa.BigInteger(), nullable=False),
        sa.ForeignKeyConstraint(["event_id"], ["events.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["tag_id"], ["tags.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("event_id", "tag_id"),
    )
    op.create_index("idx_event_tags_tag_id", "event_tags", ["tag_id"])

    op.create_table(
        "ingestion_state",
        sa.Column("key", sa.String(120), nullable=False),
        sa.Column("last_run_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("events_count", sa.Integer(), nullable=False),
        sa.Column("markets_count", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("key"),
    )


def downgrade() -> None:
    op.drop_table("ingestion_state")
    op.drop_index("idx_event_tags_tag_id", table_name="event_tags")
    op.drop_table("event_tags")
    op.drop_index("idx_markets_end_date", table_name="markets")
    op.drop_index("idx_markets_updated_at", table_name="markets")
    op.drop_index("idx_markets_event_id", table_name="markets")
    op.drop_table("markets")
    op.drop_table("tags")
    op.drop_index("idx_events_slug", table_name="events")
    op.drop_index("idx_events_start_date", table_name="events")
    op.drop_table("events")
