"""Identity resolution: bearer JWT first, X-User-Id outside production."""
import os
from datetime import datetime, timedelta, timezone

import jwt

from backend.core import auth
from backend.features.users.service import get_user

SECRET = os.environ["AUTH_JWT_SECRET"]


def _token(**claims):
    return jwt.encode(claims, SECRET, algorithm="HS256")


def test_bearer_token_subject_becomes_user(client):
    resp = client.get("/v1/groups", headers={"Authorization": f"Bearer {_token(sub='jwt-user')}"})
    assert resp.status_code == 200
    assert resp.json()["groups"] == []
    assert get_user("jwt-user") is not None


def test_token_signed_with_wrong_secret_is_rejected(client):
    forged = jwt.encode({"sub": "intruder"}, "not-the-configured-secret-value-x", algorithm="HS256")
    resp = client.get("/v1/groups", headers={"Authorization": f"Bearer {forged}"})
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "unauthorized"


def test_expired_token_is_rejected(client):
    expired = _token(sub="late", exp=datetime.now(timezone.utc) - timedelta(minutes=5))
    resp = client.get("/v1/groups", headers={"Authorization": f"Bearer {expired}"})
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Token expired"


def test_token_without_subject_is_rejected(client):
    resp = client.get("/v1/groups", headers={"Authorization": f"Bearer {_token(name='anon')}"})
    assert resp.status_code == 401


def test_dev_header_refused_in_production(client, monkeypatch):
    monkeypatch.setattr(auth.settings, "ENV", "production")
    resp = client.get("/v1/groups", headers={"X-User-Id": "sneaky"})
    assert resp.status_code == 401
