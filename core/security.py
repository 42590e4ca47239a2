"""
Actor identity for engine operations.

Authentication happens upstream; the gateway forwards a signed JWT whose
``sub`` and ``role`` claims identify who is acting. This module decodes it
into an ``Actor`` and offers role helpers used by routes and services.
"""

from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Any, Dict, Optional

import jwt

from core.config import settings
from core.utils.datetime import now


class ActorRole(str, Enum):
    """Roles resolved by the authorization collaborator."""

    CANDIDATE = "candidate"
    RECRUITER = "recruiter"
    COMPANY_ADMIN = "company_admin"
    HIRING_MANAGER = "hiring_manager"
    PLATFORM_ADMIN = "platform_admin"
    SYSTEM = "system"

    @property
    def is_company(self) -> bool:
        return self in COMPANY_ROLES


COMPANY_ROLES = {ActorRole.COMPANY_ADMIN, ActorRole.HIRING_MANAGER}


@dataclass(frozen=True)
class Actor:
    """Who is performing an operation."""

    actor_id: Optional[int]
    role: ActorRole

    @classmethod
    def system(cls) -> "Actor":
        return cls(actor_id=None, role=ActorRole.SYSTEM)

    @property
    def is_company(self) -> bool:
        return self.role.is_company


class InvalidTokenError(Exception):
    """Token could not be decoded into an actor."""


def decode_actor_token(token: str) -> Actor:
    """
    Decode a gateway token into an Actor.

    Args:
        token: Encoded JWT

    Returns:
        Actor built from the ``sub`` and ``role`` claims

    Raises:
        InvalidTokenError: Signature, expiry or claims are invalid
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except jwt.PyJWTError as e:
        raise InvalidTokenError(str(e)) from e

    try:
        role = ActorRole(payload["role"])
    except (KeyError, ValueError) as e:
        raise InvalidTokenError("Token is missing a valid role claim") from e

    subject = payload.get("sub")
    if subject is None and role is not ActorRole.SYSTEM:
        raise InvalidTokenError("Token is missing a subject")

    try:
        actor_id = int(subject) if subject is not None else None
    except (TypeError, ValueError) as e:
        raise InvalidTokenError("Token subject must be numeric") from e

    return Actor(actor_id=actor_id, role=role)


def create_actor_token(
    actor: Actor,
    expires_in: timedelta = timedelta(minutes=30),
    extra_claims: Optional[Dict[str, Any]] = None,
) -> str:
    """Encode an actor as a signed token (service-to-service calls and tests)."""
    issued_at = now()
    payload: Dict[str, Any] = {
        "role": actor.role.value,
        "iat": issued_at,
        "exp": issued_at + expires_in,
    }
    if actor.actor_id is not None:
        payload["sub"] = str(actor.actor_id)
    if extra_claims:
        payload.update(extra_claims)
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
