"""Exception hierarchy for SupportDesk."""

from __future__ import annotations


class SupportDeskError(Exception):
    """Base exception for all SupportDesk errors."""


class InvalidToken(SupportDeskError):
    """Raised when a bearer token cannot be verified."""


class EntityNotFound(SupportDeskError):
    """Raised when a declared identifier does not resolve.

    Also used when the entity exists but the caller has no visibility into
    it, so cross-tenant existence is never revealed.
    """

    def __init__(self, kind: str, entity_id: str) -> None:
        super().__init__(f"{kind} not found: {entity_id}")
        self.kind = kind
        self.entity_id = entity_id


class ScopeMismatch(SupportDeskError):
    """Raised when a declared parent id disagrees with the authoritative one."""

    def __init__(self, level: str, declared_id: str, actual_id: str) -> None:
        super().__init__(f"declared {level} {declared_id} does not contain the requested entity")
        self.level = level
        self.declared_id = declared_id
        self.actual_id = actual_id


class InsufficientPermissions(SupportDeskError):
    """Raised when the caller holds none of the required roles."""


class InvalidState(SupportDeskError):
    """Raised when a requested conversation state is not a known state."""

    def __init__(self, state: str) -> None:
        super().__init__(f"invalid conversation state: {state}")
        self.state = state


class IllegalTransition(SupportDeskError):
    """Raised when a conversation cannot move from its current state to the target."""

    def __init__(self, from_state: str, to_state: str) -> None:
        super().__init__(f"cannot transition conversation from {from_state} to {to_state}")
        self.from_state = from_state
        self.to_state = to_state


class ConcurrentModification(SupportDeskError):
    """Raised when a conditional update lost a race. Safe to retry once."""

    def __init__(self, conversation_id: str, expected_state: str) -> None:
        super().__init__(
            f"conversation {conversation_id} changed concurrently (expected {expected_state})"
        )
        self.conversation_id = conversation_id
        self.expected_state = expected_state


class CacheUnavailable(SupportDeskError):
    """Raised by cache backends. Absorbed by AuthorityCache, never surfaced."""


class AlreadyExists(SupportDeskError):
    """Raised when creating a record that must be unique and already exists."""

    def __init__(self, kind: str, entity_id: str) -> None:
        super().__init__(f"{kind} already exists: {entity_id}")
        self.kind = kind
        self.entity_id = entity_id
