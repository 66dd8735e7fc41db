from __future__ import annotations

import re
import uuid
from contextvars import ContextVar
from typing import Optional

# Caller-supplied ids are echoed into audit lines.
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._:-]{1,64}$")

_request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)


def generate_request_id() -> str:
    return uuid.uuid4().hex


def resolve_request_id(incoming: str | None) -> str:
    """Reuse the caller's X-Request-ID when it is well-formed, otherwise mint a new one."""
    if incoming:
        candidate = incoming.strip()
        if _VALID_REQUEST_ID.match(candidate):
            return candidate
    return generate_request_id()


def set_request_id(request_id: str | None) -> None:
    _request_id_ctx.set(request_id)


def get_request_id() -> Optional[str]:
    return _request_id_ctx.get()
