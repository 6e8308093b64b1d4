"""
Route tests for back-office account management.

The store must always keep one active admin, and an admin can never lock
themselves out.
"""

import pytest

from models.database import db
from models.user import User
from routes.auth import generate_token


@pytest.fixture
def make_user(app):
    def _make(email, role="admin", name=None, is_active=True, password="pass-1234"):
        user = User(email=email, name=name, role=role, is_active=is_active)
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        return user

    return _make


def _headers(user):
    return {"Authorization": f"Bearer {generate_token(user.id, user.email)}"}


class TestGuard:

    def test_requires_token(self, client, app):
        assert client.get("/api/admin/users").status_code == 401

    def test_viewer_is_forbidden(self, client, make_user):
        viewer = make_user("viewer@rastuci.test", role="viewer")
        assert client.get("/api/admin/users", headers=_headers(viewer)).status_code == 403


class TestListUsers:

    def test_paginates_and_hides_hashes(self, client, admin_headers, make_user):
        make_user("bruno@rastuci.test", name="Bruno")
        make_user("carla@rastuci.test", name="Carla", role="viewer")

        response = client.get("/api/admin/users?limit=2", headers=admin_headers)

        assert response.status_code == 200
        body = response.get_json()
        assert body["total"] == 3
        assert body["totalPages"] == 2
        assert len(body["data"]) == 2
        assert all("passwordHash" not in u for u in body["data"])

    def test_search_matches_email_and_name(self, client, admin_headers, make_user):
        make_user("bruno@rastuci.test", name="Bruno Díaz")
        make_user("carla@rastuci.test", name="Carla")

        by_name = client.get("/api/admin/users?search=bruno", headers=admin_headers).get_json()
        by_email = client.get("/api/admin/users?search=CARLA@", headers=admin_headers).get_json()

        assert [u["email"] for u in by_name["data"]] == ["bruno@rastuci.test"]
        assert [u["email"] for u in by_email["data"]] == ["carla@rastuci.test"]

    def test_invalid_page(self, client, admin_headers):
        response = client.get("/api/admin/users?page=0", headers=admin_headers)
        assert response.status_code == 400
        assert response.get_json()["error"]["code"] == "INVALID_PARAMS"


class TestCreateUser:

    def test_create(self, client, admin_headers):
        response = client.post("/api/admin/users", headers=admin_headers, json={
            "email": "Nueva@Rastuci.test",
            "name": "Nueva",
            "password": "una-clave-larga",
            "role": "viewer",
        })

        assert response.status_code == 201
        data = response.get_json()["data"]
        assert data["email"] == "nueva@rastuci.test"
        assert data["role"] == "viewer"
        assert data["isAdmin"] is False
        user = db.session.get(User, data["id"])
        assert user.check_password("una-clave-larga")

    def test_duplicate_email(self, client, admin_headers):
        response = client.post("/api/admin/users", headers=admin_headers, json={
            "email": "ADMIN@rastuci.test",
            "password": "una-clave-larga",
        })

        assert response.status_code == 409
        error = response.get_json()["error"]
        assert error["code"] == "CONFLICT"
        assert error["field"] == "email"

    def test_short_password_rejected(self, client, admin_headers):
        response = client.post("/api/admin/users", headers=admin_headers, json={
            "email": "corta@rastuci.test",
            "password": "123",
        })

        assert response.status_code == 400
        assert User.query.filter_by(email="corta@rastuci.test").first() is None

    def test_unknown_role_rejected(self, client, admin_headers):
        response = client.post("/api/admin/users", headers=admin_headers, json={
            "email": "root@rastuci.test",
            "password": "una-clave-larga",
            "role": "superuser",
        })
        assert response.status_code == 400


class TestUpdateUser:

    def test_get_unknown(self, client, admin_headers):
        response = client.get("/api/admin/users/999", headers=admin_headers)
        assert response.status_code == 404
        assert response.get_json()["error"]["code"] == "NOT_FOUND"

    def test_update_fields_and_password(self, client, admin_headers, make_user):
        user = make_user("bruno@rastuci.test", role="viewer")

        response = client.patch(f"/api/admin/users/{user.id}", headers=admin_headers, json={
            "name": "Bruno",
            "role": "admin",
            "password": "otra-clave-larga",
        })

        assert response.status_code == 200
        assert response.get_json()["data"]["role"] == "admin"
        db.session.refresh(user)
        assert user.name == "Bruno"
        assert user.check_password("otra-clave-larga")

    def test_email_taken(self, client, admin_headers, make_user):
        user = make_user("bruno@rastuci.test")
        response = client.patch(f"/api/admin/users/{user.id}", headers=admin_headers,
                                json={"email": "admin@rastuci.test"})
        assert response.status_code == 409

    def test_cannot_demote_self(self, client, admin_user, admin_headers, make_user):
        make_user("otra@rastuci.test")

        response = client.patch(f"/api/admin/users/{admin_user.id}", headers=admin_headers,
                                json={"role": "viewer"})

        assert response.status_code == 409
        db.session.refresh(admin_user)
        assert admin_user.role == "admin"

    def test_cannot_deactivate_last_admin(self, app, admin_user, make_user):
        from schemas.admin import UserUpdate
        from services import user_service
        from services.user_service import UserConflict

        # An inactive admin does not count
        make_user("baja@rastuci.test", is_active=False)

        with pytest.raises(UserConflict):
            user_service.update_user(admin_user, UserUpdate(is_active=False))
        db.session.refresh(admin_user)
        assert admin_user.is_active is True

    def test_deactivate_peer_admin(self, client, admin_headers, make_user):
        other = make_user("otra@rastuci.test")

        response = client.patch(f"/api/admin/users/{other.id}", headers=admin_headers,
                                json={"isActive": False})

        assert response.status_code == 200
        assert response.get_json()["data"]["isActive"] is False

    def test_demote_when_another_admin_remains(self, client, admin_headers, make_user):
        other = make_user("otra@rastuci.test")

        response = client.patch(f"/api/admin/users/{other.id}", headers=admin_headers,
                                json={"role": "viewer"})

        assert response.status_code == 200
        assert response.get_json()["data"]["role"] == "viewer"


class TestDeleteUser:

    def test_delete(self, client, admin_headers, make_user):
        user = make_user("bruno@rastuci.test", role="viewer")

        response = client.delete(f"/api/admin/users/{user.id}", headers=admin_headers)

        assert response.status_code == 200
        assert response.get_json() == {"success": True}
        assert db.session.get(User, user.id) is None

    def test_cannot_delete_self(self, client, admin_user, admin_headers, make_user):
        make_user("otra@rastuci.test")
        response = client.delete(f"/api/admin/users/{admin_user.id}", headers=admin_headers)
        assert response.status_code == 409
        assert db.session.get(User, admin_user.id) is not None

    def test_cannot_delete_last_admin(self, app, admin_user):
        from services import user_service
        from services.user_service import UserConflict

        with pytest.raises(UserConflict):
            user_service.delete_user(admin_user)

    def test_delete_unknown(self, client, admin_headers):
        assert client.delete("/api/admin/users/999", headers=admin_headers).status_code == 404
