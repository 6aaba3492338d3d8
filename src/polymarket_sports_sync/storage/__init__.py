"""Storage layer - Database schemas and repositories."""

from polymarket_sports_sync.storage.database import (
    DatabaseManager,
    SessionScope,
    create_async_db_engine,
    create_async_session_factory,
    init_async_db,
    session_scope_for,
)
from polymarket_sports_sync.storage.models import (
    Base,
    EventModel,
    EventTagModel,
    IngestionStateModel,
    MarketModel,
    TagModel,
)
from polymarket_sports_sync.storage.repos import (
    EventDTO,
    EventRepository,
    EventTagRepository,
    IngestionStateDTO,
    IngestionStateRepository,
    MarketDTO,
    MarketRepository,
    TagRepository,
)

__all__ = [
    "Base",
    "DatabaseManager",
    "EventDTO",
    "EventModel",
    "EventRepository",
    "EventTagModel",
    "EventTagRepository",
    "IngestionStateDTO",
    "IngestionStateModel",
    "IngestionStateRepository",
    "MarketDTO",
    "MarketModel",
    "MarketRepository",
    "SessionScope",
    "TagModel",
    "TagRepository",
    "create_async_db_engine",
    "create_async_session_factory",
    "init_async_db",
    "session_scope_for",
]
