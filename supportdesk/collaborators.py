"""Wiring of stores, cache and event publisher for business operations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from supportdesk.cache.authority import AuthorityCache
from supportdesk.cache.backends import InMemoryCacheBackend, create_cache_backend
from supportdesk.config.settings import get_settings
from supportdesk.events import InProcessEventBus

if TYPE_CHECKING:
    from supportdesk.config.settings import Settings
    from supportdesk.events import EventPublisher
    from supportdesk.storage.repositories.conversations import ConversationRepository
    from supportdesk.storage.repositories.entities import EntityStore
    from supportdesk.storage.repositories.memberships import MembershipStore

logger = structlog.get_logger(__name__)


@dataclass
class Collaborators:
    entities: EntityStore
    memberships: MembershipStore
    conversations: ConversationRepository
    cache: AuthorityCache
    publisher: EventPublisher


def create_collaborators(settings: Settings | None = None) -> Collaborators:
    """Create the appropriate stores based on settings."""
    settings = settings or get_settings()
    cache = AuthorityCache(
        create_cache_backend(settings),
        ttl_seconds=settings.cache_ttl_seconds,
        versioned=settings.cache_versioned_keys,
    )
    publisher = InProcessEventBus()

    if settings.use_database:
        from supportdesk.storage.database import get_engine
        from supportdesk.storage.repositories.conversations import (
            DatabaseConversationRepository,
        )
        from supportdesk.storage.repositories.entities import DatabaseEntityRepository
        from supportdesk.storage.repositories.memberships import (
            DatabaseMembershipRepository,
        )

        engine = get_engine()
        logger.info("collaborators_created", storage="database")
        return Collaborators(
            entities=DatabaseEntityRepository(engine),
            memberships=DatabaseMembershipRepository(engine),
            conversations=DatabaseConversationRepository(engine),
            cache=cache,
            publisher=publisher,
        )

    logger.info("collaborators_created", storage="memory")
    return create_in_memory_collaborators(cache=cache, publisher=publisher)


def create_in_memory_collaborators(
    *,
    cache: AuthorityCache | None = None,
    publisher: EventPublisher | None = None,
) -> Collaborators:
    """In-memory stores for dev/testing without a database."""
    from supportdesk.storage.repositories.conversations import InMemoryConversationRepository
    from supportdesk.storage.repositories.entities import InMemoryEntityStore
    from supportdesk.storage.repositories.memberships import InMemoryMembershipStore

    entities = InMemoryEntityStore()
    return Collaborators(
        entities=entities,
        memberships=InMemoryMembershipStore(entities),
        conversations=InMemoryConversationRepository(),
        cache=cache or AuthorityCache(InMemoryCacheBackend()),
        publisher=publisher or InProcessEventBus(),
    )
