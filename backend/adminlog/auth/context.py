"""
Request-level actor resolution.

ActorContextMiddleware verifies the bearer token (if any) once per request
and attaches the resulting Actor to request.state.actor. Routes enforce
authentication through the dependencies in adminlog.auth.dependencies;
the middleware itself never rejects a request.
"""

import logging
from typing import Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from adminlog.auth.tokens import (
    Actor,
    TokenError,
    TokenService,
    extract_bearer_token,
)

logger = logging.getLogger(__name__)


def get_request_actor(request: Request) -> Optional[Actor]:
    return getattr(request.state, "actor", None)


class ActorContextMiddleware(BaseHTTPMiddleware):
    """Attaches the authenticated Actor (or None) to request.state."""

    def __init__(self, app, token_service: Optional[TokenService] = None):
        super().__init__(app)
        self._token_service = token_service

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request.state.actor = None
        request.state.auth_error = None

        token = extract_bearer_token(request.headers.get("Authorization"))
        if token and self._token_service is not None:
            try:
                request.state.actor = self._token_service.verify(token)
            except TokenError as e:
                request.state.auth_error = str(e)
                logger.debug(
                    "Bearer token rejected",
                    extra={"path": request.url.path, "error": str(e)},
                )
        elif token:
            request.state.auth_error = "Authentication not configured"

        return await call_next(request)
