from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

import jwt
from jwt import InvalidTokenError


@dataclass(frozen=True)
class AccessClaims:
    user_id: str
    role: Optional[str] = None


def create_access_token(
    *,
    user_id: str,
    secret: str,
    algorithm: str = "HS256",
    role: str | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    now = datetime.now(timezone.utc)
    exp = now + (expires_delta or timedelta(minutes=30))
    payload = {"sub": str(user_id), "iat": now, "exp": exp}
    if role is not None:
        payload["role"] = role
    return jwt.encode(payload, secret, algorithm=algorithm)


def decode_access_token(
    token: str,
    *,
    secret: str,
    algorithms: Sequence[str],
) -> AccessClaims:
    try:
        payload = jwt.decode(token, secret, algorithms=list(algorithms))
    except InvalidTokenError as exc:  # includes ExpiredSignatureError
        raise ValueError("invalid token") from exc

    sub = payload.get("sub")
    if not sub or not isinstance(sub, str):
        raise ValueError("token missing sub")
    role = payload.get("role")
    return AccessClaims(user_id=sub, role=role if isinstance(role, str) else None)
