"""Tenant scope carried through each request."""

from __future__ import annotations

from dataclasses import dataclass, fields

from supportdesk.types import Level

# Deepest first
_DEPTH_ORDER = (Level.TEAM, Level.DEPARTMENT, Level.WORKSPACE, Level.ACCOUNT)


@dataclass(frozen=True, slots=True)
class DeclaredScope:
    """Identifiers a client claims for a request. Never trusted on its own."""

    account_id: str | None = None
    workspace_id: str | None = None
    department_id: str | None = None
    team_id: str | None = None

    def get(self, level: Level) -> str | None:
        return getattr(self, f"{level.value}_id")

    def deepest_level(self) -> Level | None:
        for level in _DEPTH_ORDER:
            if self.get(level):
                return level
        return None

    def is_empty(self) -> bool:
        return self.deepest_level() is None

    @classmethod
    def merge(cls, *sources: DeclaredScope) -> DeclaredScope:
        """Merge sources given in precedence order.

        Earlier sources are authoritative; later ones only fill gaps.
        """
        values: dict[str, str | None] = {}
        for f in fields(cls):
            values[f.name] = next(
                (getattr(s, f.name) for s in sources if getattr(s, f.name)), None
            )
        return cls(**values)


@dataclass(frozen=True, slots=True)
class Containment:
    """Authoritative chain re-derived from entity records."""

    account_id: str | None = None
    workspace_id: str | None = None
    department_id: str | None = None
    team_id: str | None = None
    owner_id: str | None = None

    def get(self, level: Level) -> str | None:
        return getattr(self, f"{level.value}_id")

    def resolved_levels(self) -> list[Level]:
        """Levels present in the chain, top to bottom."""
        return [level for level in reversed(_DEPTH_ORDER) if self.get(level)]


@dataclass(slots=True)
class TenantContext:
    """Per-request resolved scope ids and roles. Built incrementally, never persisted.

    A level's role is ``None`` when the principal has no active membership
    there; that is a RoleAuthorizer concern, not a resolution error.
    """

    account_id: str | None = None
    account_role: str | None = None
    workspace_id: str | None = None
    workspace_role: str | None = None
    department_id: str | None = None
    department_role: str | None = None
    team_id: str | None = None
    team_role: str | None = None

    def set_level(self, level: Level, entity_id: str, role: str | None) -> None:
        setattr(self, f"{level.value}_id", entity_id)
        setattr(self, f"{level.value}_role", role)

    def as_declared(self) -> DeclaredScope:
        """Return the verified ids as the highest-precedence declared source."""
        return DeclaredScope(
            account_id=self.account_id,
            workspace_id=self.workspace_id,
            department_id=self.department_id,
            team_id=self.team_id,
        )
