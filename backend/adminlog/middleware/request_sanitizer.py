"""
Operator-key sanitization for inbound requests.

Rewrites every `$` and `.` in user-supplied keys before the request reaches
a route handler, so keys such as `{"$gt": ""}` or `profile.role` can never
be interpreted as store operators or nested-path updates.

Scope:
- query-string parameter names
- header names
- JSON request bodies, recursively through objects and arrays

Values are never touched. Path parameters come from route templates and
are not user-controlled keys.

This is a pure ASGI middleware: the body has to be rewritten, which
BaseHTTPMiddleware cannot do for downstream handlers.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import parse_qsl, urlencode

from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger(__name__)

PROHIBITED_CHARACTERS = ("$", ".")


@dataclass(frozen=True)
class SanitizeResult:
    target: Any
    is_sanitized: bool


def _clean_key(key: str, replace_with: str) -> str:
    for char in PROHIBITED_CHARACTERS:
        key = key.replace(char, replace_with)
    return key


def has_prohibited_key(payload: Any) -> bool:
    """True when any key at any depth contains a prohibited character."""
    if isinstance(payload, dict):
        for key, value in payload.items():
            if isinstance(key, str) and any(c in key for c in PROHIBITED_CHARACTERS):
                return True
            if has_prohibited_key(value):
                return True
    elif isinstance(payload, list):
        return any(has_prohibited_key(item) for item in payload)
    return False


def sanitize_keys(payload: Any, replace_with: str = "_") -> SanitizeResult:
    """
    Return a copy of payload with prohibited characters replaced in keys.

    Two keys that collapse to the same sanitized name keep the last value,
    in payload order.
    """
    if isinstance(payload, dict):
        changed = False
        cleaned = {}
        for key, value in payload.items():
            new_key = _clean_key(key, replace_with) if isinstance(key, str) else key
            child = sanitize_keys(value, replace_with)
            changed = changed or new_key != key or child.is_sanitized
            cleaned[new_key] = child.target
        return SanitizeResult(target=cleaned, is_sanitized=changed)

    if isinstance(payload, list):
        results = [sanitize_keys(item, replace_with) for item in payload]
        return SanitizeResult(
            target=[r.target for r in results],
            is_sanitized=any(r.is_sanitized for r in results),
        )

    return SanitizeResult(target=payload, is_sanitized=False)


def sanitize_query_string(query_string: bytes, replace_with: str = "_") -> tuple[bytes, bool]:
    """Rewrite parameter names in a raw query string."""
    if not query_string:
        return query_string, False
    pairs = parse_qsl(query_string.decode("latin-1"), keep_blank_values=True)
    changed = False
    cleaned = []
    for key, value in pairs:
        new_key = _clean_key(key, replace_with)
        changed = changed or new_key != key
        cleaned.append((new_key, value))
    if not changed:
        return query_string, False
    return urlencode(cleaned).encode("latin-1"), True


def sanitize_headers(
    headers: list[tuple[bytes, bytes]], replace_with: str = "_",
) -> tuple[list[tuple[bytes, bytes]], bool]:
    replacement = replace_with.encode("latin-1")
    changed = False
    cleaned = []
    for name, value in headers:
        new_name = name
        for char in PROHIBITED_CHARACTERS:
            new_name = new_name.replace(char.encode("latin-1"), replacement)
        changed = changed or new_name != name
        cleaned.append((new_name, value))
    return cleaned, changed


def _is_json(headers: list[tuple[bytes, bytes]]) -> bool:
    for name, value in headers:
        if name.lower() == b"content-type":
            return b"json" in value.lower()
    return False


class OperatorKeySanitizerMiddleware:
    """
    Rewrites prohibited characters in request keys before routing.

    Install outermost so every other middleware and handler sees the
    sanitized request.
    """

    def __init__(self, app: ASGIApp, replace_with: str = "_"):
        self.app = app
        self.replace_with = replace_with

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        scope = dict(scope)
        sanitized_parts = []

        query_string, query_changed = sanitize_query_string(
            scope.get("query_string", b""), self.replace_with,
        )
        if query_changed:
            scope["query_string"] = query_string
            sanitized_parts.append("query")

        headers, headers_changed = sanitize_headers(
            list(scope.get("headers", [])), self.replace_with,
        )
        if headers_changed:
            sanitized_parts.append("headers")

        if _is_json(headers) and scope.get("method") in ("POST", "PUT", "PATCH", "DELETE"):
            body = await self._read_body(receive)
            new_body = self._sanitize_body(body)
            if new_body is not None:
                body = new_body
                headers = [(n, v) for n, v in headers if n.lower() != b"content-length"]
                headers.append((b"content-length", str(len(body)).encode("latin-1")))
                sanitized_parts.append("body")
            receive = self._replay(body, receive)

        scope["headers"] = headers

        if sanitized_parts:
            logger.warning(
                "Request sanitized: prohibited characters in keys",
                extra={
                    "path": scope.get("path"),
                    "method": scope.get("method"),
                    "sanitized": sanitized_parts,
                },
            )

        await self.app(scope, receive, send)

    def _sanitize_body(self, body: bytes) -> Optional[bytes]:
        """Return the rewritten body, or None when nothing changed."""
        if not body:
            return None
        try:
            payload = json.loads(body)
        except (ValueError, UnicodeDecodeError):
            # Malformed JSON is left for the route's own validation
            return None
        if not has_prohibited_key(payload):
            return None
        return json.dumps(sanitize_keys(payload, self.replace_with).target).encode("utf-8")

    @staticmethod
    async def _read_body(receive: Receive) -> bytes:
        chunks = []
        while True:
            message = await receive()
            if message["type"] == "http.disconnect":
                break
            chunks.append(message.get("body", b""))
            if not message.get("more_body", False):
                break
        return b"".join(chunks)

    @staticmethod
    def _replay(body: bytes, receive: Receive) -> Receive:
        sent = False

        async def replay_receive() -> Message:
            nonlocal sent
            if not sent:
                sent = True
                return {"type": "http.request", "body": body, "more_body": False}
            return await receive()

        return replay_receive
