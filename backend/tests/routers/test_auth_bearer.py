from datetime import timedelta
from typing import Iterator

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient
from slotbook.config import get_settings
from slotbook.deps import get_admin_user_id, get_current_user_id
from slotbook.utils.auth import create_access_token


def _make_app() -> TestClient:
    app = FastAPI()

    @app.get("/protected")
    async def protected(user_id: str = Depends(get_current_user_id)) -> dict[str, str]:
        return {"user_id": user_id}

    @app.get("/admin-only")
    async def admin_only(user_id: str = Depends(get_admin_user_id)) -> dict[str, str]:
        return {"user_id": user_id}

    return TestClient(app)


def _token(secret: str, *, expired: bool = False, role: str | None = None) -> str:
    delta = timedelta(seconds=-1) if expired else timedelta(minutes=30)
    return create_access_token(user_id="user-123", secret=secret, role=role, expires_delta=delta)


@pytest.fixture(autouse=True)
def _auth_secret(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    monkeypatch.setenv("AUTH_SECRET", "testsecret")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_protected_accepts_valid_token() -> None:
    client = _make_app()
    token = _token("testsecret")
    res = client.get("/protected", headers={"Authorization": f"Bearer {token}"})
    assert res.status_code == 200
    assert res.json()["user_id"] == "user-123"


def test_protected_rejects_missing_header() -> None:
    client = _make_app()
    res = client.get("/protected")
    assert res.status_code == 401
    assert res.headers.get("www-authenticate", "").lower().startswith("bearer")


def test_protected_rejects_invalid_token() -> None:
    client = _make_app()
    res = client.get("/protected", headers={"Authorization": "Bearer invalid"})
    assert res.status_code == 401


def test_protected_rejects_expired_token() -> None:
    client = _make_app()
    token = _token("testsecret", expired=True)
    res = client.get("/protected", headers={"Authorization": f"Bearer {token}"})
    assert res.status_code == 401


def test_admin_route_rejects_plain_user() -> None:
    client = _make_app()
    plain = _token("testsecret")
    admin = _token("testsecret", role="admin")
    assert client.get("/admin-only", headers={"Authorization": f"Bearer {plain}"}).status_code == 403
    assert client.get("/admin-only", headers={"Authorization": f"Bearer {admin}"}).status_code == 200
