"""FastAPI dependencies for route-level authentication and authorization."""

import logging

from fastapi import Depends, HTTPException, Request, status

from adminlog.auth.context import get_request_actor
from adminlog.auth.tokens import Actor

logger = logging.getLogger(__name__)


def get_current_actor(request: Request) -> Actor:
    """Require an authenticated actor (401 otherwise)."""
    actor = get_request_actor(request)
    if actor is None:
        detail = getattr(request.state, "auth_error", None) or "Authentication required"
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )
    return actor


def require_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    """
    Require the admin role.

    Runs before any query so a non-admin caller never reaches the filter
    engine.
    """
    if not actor.has_role("admin"):
        logger.warning(
            "Non-admin attempted admin access",
            extra={"actor_id": actor.id, "role": actor.role},
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin role required",
        )
    return actor
