"""FastAPI dependencies for dependency injection."""

from typing import Callable, Optional
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from api.services.engine import RepresentationEngine
from core.security import Actor, ActorRole, InvalidTokenError, decode_actor_token


security = HTTPBearer(auto_error=False)

_engine: Optional[RepresentationEngine] = None


def get_engine(request: Request) -> RepresentationEngine:
    """
    Engine built during application startup.

    Falls back to a lazily built module-level engine when the app is used
    without its lifespan (scripts, some tests).
    """
    engine = getattr(request.app.state, "engine", None)
    if engine is not None:
        return engine
    global _engine
    if _engine is None:
        _engine = RepresentationEngine.from_settings()
    return _engine


async def get_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Actor:
    """Require a bearer token and decode it into an Actor."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return decode_actor_token(credentials.credentials)
    except InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {e}",
            headers={"WWW-Authenticate": "Bearer"},
        )


def require_roles(*roles: ActorRole) -> Callable:
    """
    Dependency factory restricting an endpoint to the given roles.

    Usage:
        actor: Actor = Depends(require_roles(ActorRole.RECRUITER))
    """
    allowed = set(roles)

    async def checker(actor: Actor = Depends(get_actor)) -> Actor:
        if actor.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Role '{actor.role.value}' may not perform this action",
            )
        return actor

    return checker
