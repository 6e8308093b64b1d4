"""
Tests for back-office login, token handling and password resets.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import jwt
import pytest

from config import Config
from models.database import db
from models.password_reset import PasswordResetToken, hash_reset_token
from models.user import User
from routes.auth import generate_token, verify_token


def test_login_returns_usable_token(client, admin_user):
    response = client.post("/api/auth/login", json={"email": "Admin@Rastuci.test", "password": "s3cret-pass"})

    assert response.status_code == 200
    body = response.get_json()
    assert body["user"]["email"] == "admin@rastuci.test"
    assert "passwordHash" not in body["user"]

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {body['token']}"})
    assert me.get_json()["user"]["id"] == admin_user.id


def test_wrong_password(client, admin_user):
    response = client.post("/api/auth/login", json={"email": "admin@rastuci.test", "password": "nope"})
    assert response.status_code == 401


def test_unknown_user(client, app):
    response = client.post("/api/auth/login", json={"email": "ghost@rastuci.test", "password": "x"})
    assert response.status_code == 401


def test_disabled_account(client, admin_user):
    admin_user.is_active = False
    db.session.commit()
    response = client.post("/api/auth/login", json={"email": "admin@rastuci.test", "password": "s3cret-pass"})
    assert response.status_code == 403


def test_me_without_token(client):
    assert client.get("/api/auth/me").status_code == 401


def test_token_round_trip():
    assert verify_token(generate_token(42, "staff@rastuci.test")) == 42


def test_expired_token_rejected():
    past = datetime.now(timezone.utc) - timedelta(hours=1)
    token = jwt.encode({"user_id": 1, "exp": past}, Config.JWT_SECRET, algorithm=Config.JWT_ALGORITHM)
    assert verify_token(token) is None


def test_token_signed_with_other_secret_rejected():
    token = jwt.encode({"user_id": 1}, "another-secret-that-is-long-enough-for-hs256", algorithm="HS256")
    assert verify_token(token) is None


# =============================================================================
# Password reset
# =============================================================================

@pytest.fixture
def reset_emails():
    with patch("routes.auth.email_service") as emails:
        yield emails


def _request_reset(client, reset_emails, email="admin@rastuci.test"):
    response = client.post("/api/auth/forgot-password", json={"email": email})
    assert response.status_code == 200
    _, token = reset_emails.send_password_reset.call_args.args
    return token


def test_forgot_password_unknown_email_answers_the_same(client, app, reset_emails):
    response = client.post("/api/auth/forgot-password", json={"email": "ghost@rastuci.test"})

    assert response.status_code == 200
    assert response.get_json()["success"] is True
    reset_emails.send_password_reset.assert_not_called()
    assert PasswordResetToken.query.count() == 0


def test_forgot_password_ignores_viewers(client, app, reset_emails):
    viewer = User(email="staff@rastuci.test", role="viewer")
    viewer.set_password("pass1234")
    db.session.add(viewer)
    db.session.commit()

    client.post("/api/auth/forgot-password", json={"email": "staff@rastuci.test"})

    reset_emails.send_password_reset.assert_not_called()


def test_forgot_password_emails_admin_and_stores_only_hash(client, admin_user, reset_emails):
    token = _request_reset(client, reset_emails, email="ADMIN@rastuci.test")

    user = reset_emails.send_password_reset.call_args.args[0]
    assert user.id == admin_user.id
    stored = PasswordResetToken.query.one()
    assert stored.token_hash == hash_reset_token(token)
    assert stored.token_hash != token


def test_reset_password_sets_new_password_once(client, admin_user, reset_emails):
    token = _request_reset(client, reset_emails)

    response = client.post("/api/auth/reset-password", json={"token": token, "password": "nueva-clave-1"})

    assert response.status_code == 200
    assert response.get_json()["user"]["email"] == "admin@rastuci.test"
    login = client.post("/api/auth/login", json={"email": "admin@rastuci.test", "password": "nueva-clave-1"})
    assert login.status_code == 200

    again = client.post("/api/auth/reset-password", json={"token": token, "password": "otra-clave-2"})
    assert again.status_code == 400
    assert again.get_json()["error"]["field"] == "token"


def test_reset_invalidates_older_links(client, admin_user, reset_emails):
    first = _request_reset(client, reset_emails)
    second = _request_reset(client, reset_emails)

    client.post("/api/auth/reset-password", json={"token": second, "password": "nueva-clave-1"})
    response = client.post("/api/auth/reset-password", json={"token": first, "password": "otra-clave-2"})

    assert response.status_code == 400


def test_reset_with_expired_token(client, admin_user, reset_emails):
    token = _request_reset(client, reset_emails)
    stored = PasswordResetToken.query.one()
    stored.expires_at = datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(minutes=1)
    db.session.commit()

    response = client.post("/api/auth/reset-password", json={"token": token, "password": "nueva-clave-1"})

    assert response.status_code == 400
    db.session.refresh(admin_user)
    assert admin_user.check_password("s3cret-pass")


def test_reset_with_unknown_token(client, app):
    response = client.post("/api/auth/reset-password", json={"token": "x" * 43, "password": "nueva-clave-1"})
    assert response.status_code == 400
    assert response.get_json()["error"]["code"] == "BAD_REQUEST"


def test_reset_rejects_short_password(client, admin_user, reset_emails):
    token = _request_reset(client, reset_emails)
    response = client.post("/api/auth/reset-password", json={"token": token, "password": "corta"})
    assert response.status_code == 400
    assert response.get_json()["error"]["code"] == "INVALID_PARAMS"
