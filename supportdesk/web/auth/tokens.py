"""Bearer token verification and principal lookup."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import jwt
import structlog

from supportdesk.config.settings import get_settings
from supportdesk.exceptions import InvalidToken

if TYPE_CHECKING:
    from supportdesk.models.domain import Principal
    from supportdesk.storage.repositories.entities import EntityStore

logger = structlog.get_logger(__name__)

ACCESS_TOKEN_TYPE = "access"


@dataclass(frozen=True, slots=True)
class TokenClaims:
    """Parsed and validated claims from an access token."""

    subject_id: str
    token_type: str
    email: str = ""


def verify_token(token: str) -> TokenClaims:
    """Verify signature and expiry and return the claims.

    Raises:
        InvalidToken: bad signature, expired, or missing subject.
    """
    settings = get_settings()
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["exp"]},
        )
    except jwt.PyJWTError as exc:
        logger.warning("token_invalid", error=type(exc).__name__)
        raise InvalidToken("Invalid or expired token") from exc

    subject_id = payload.get("sub") or payload.get("userId")
    if not subject_id:
        raise InvalidToken("Token has no subject")
    return TokenClaims(
        subject_id=str(subject_id),
        token_type=payload.get("type", ACCESS_TOKEN_TYPE),
        email=payload.get("email", ""),
    )


async def authenticate(token: str, entities: EntityStore) -> Principal:
    """Resolve an access token to a platform owner or an active user.

    Platform owners are looked up first.
    """
    claims = verify_token(token)
    if claims.token_type != ACCESS_TOKEN_TYPE:
        raise InvalidToken("Not an access token")
    principal = await entities.find_principal(claims.subject_id)
    if principal is None:
        logger.warning("token_subject_unknown", subject_id=claims.subject_id)
        raise InvalidToken("User not found or inactive")
    structlog.contextvars.bind_contextvars(principal_id=principal.id)
    return principal
