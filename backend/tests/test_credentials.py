# Overview: Pytest coverage for login, bearer credentials and password rules.

"""
Credential Tests

Verifies:
- Login issues a credential carrying {user id, role, locations}
- Wrong passwords, unknown and inactive users all get the same 401
- Expired, tampered or foreign-key credentials are rejected
- Password strength rules and user creation rules
"""

import pytest
from itsdangerous import URLSafeTimedSerializer

from stockflow.errors import BadRequest, Conflict, NotFound, Unauthorized
from stockflow.services import auth_service, credential_service
from stockflow.services.auth_service import PasswordValidationError, validate_password_strength
from stockflow.services.credential_service import CREDENTIAL_SALT

from conftest import TEST_PASSWORD, auth_headers, get_auth_token


class TestLogin:

    def test_login_and_me(self, client, db_session, manager_user, location_1, warehouse):
        resp = client.post("/api/auth/login", json={"username": "manager", "password": TEST_PASSWORD})

        assert resp.status_code == 200, resp.json
        assert resp.json["user"]["role"] == "manager"
        assert resp.json["expires_in"] == 3600
        token = resp.json["token"]

        resp = client.get("/api/auth/me", headers=auth_headers(token))
        assert resp.status_code == 200
        principal = resp.json["principal"]
        assert principal["user_id"] == manager_user.id
        assert principal["role"] == "manager"
        assert principal["locations"] == sorted([location_1.id, warehouse.id])

    def test_login_by_email(self, client, db_session, admin_user):
        assert get_auth_token(client, "admin@stockflow.test", TEST_PASSWORD) is not None

    @pytest.mark.parametrize("username,password", [
        ("admin", "WrongPass123!"),
        ("nobody", TEST_PASSWORD),
    ])
    def test_bad_credentials(self, client, db_session, admin_user, username, password):
        resp = client.post("/api/auth/login", json={"username": username, "password": password})
        assert resp.status_code == 401
        assert resp.json["message"] == "Invalid username or password"

    def test_inactive_user(self, client, db_session, admin_user):
        admin_user.is_active = False
        db_session.commit()
        assert get_auth_token(client, "admin", TEST_PASSWORD) is None

    def test_missing_fields(self, client, db_session):
        resp = client.post("/api/auth/login", json={"username": "admin"})
        assert resp.status_code == 400


class TestCredentialVerification:

    def test_round_trip(self, db_session, manager):
        token = credential_service.issue_for_principal(manager)
        assert credential_service.verify_credential(token) == manager

    def test_expired(self, app, client, db_session, admin):
        token = credential_service.issue_for_principal(admin)

        ttl = app.config["CREDENTIAL_TTL"]
        app.config["CREDENTIAL_TTL"] = -1
        try:
            resp = client.get("/api/auth/me", headers=auth_headers(token))
        finally:
            app.config["CREDENTIAL_TTL"] = ttl

        assert resp.status_code == 401
        assert resp.json["message"] == "Credential expired"

    def test_tampered(self, client, db_session, admin, staff):
        """Staff payload grafted onto an admin signature."""
        admin_token = credential_service.issue_for_principal(admin)
        staff_token = credential_service.issue_for_principal(staff)
        staff_payload = staff_token.rsplit(".", 2)[0]
        _, timestamp, signature = admin_token.rsplit(".", 2)

        forged = f"{staff_payload}.{timestamp}.{signature}"
        resp = client.get("/api/auth/me", headers=auth_headers(forged))
        assert resp.status_code == 401

    def test_signed_with_another_key(self, client, db_session):
        forged = URLSafeTimedSerializer("another-key", salt=CREDENTIAL_SALT).dumps(
            {"uid": 1, "role": "admin", "locations": []}
        )
        resp = client.get("/api/inventory", headers=auth_headers(forged))
        assert resp.status_code == 401

    @pytest.mark.parametrize("payload", [
        {"uid": "1", "role": "admin", "locations": []},
        {"uid": 1, "role": "root", "locations": []},
        {"uid": 1, "role": "staff", "locations": ["1"]},
        {"uid": 1, "role": "staff", "locations": [True]},
        ["not", "a", "dict"],
    ])
    def test_malformed_payload(self, app, db_session, payload):
        token = URLSafeTimedSerializer(app.config["CREDENTIAL_SIGNING_KEY"], salt=CREDENTIAL_SALT).dumps(payload)
        with pytest.raises(Unauthorized):
            credential_service.verify_credential(token)

    def test_scope_is_frozen_into_credential(self, client, db_session, staff_user, staff_headers, location_1):
        """New grants take effect at the next login, not on old credentials."""
        auth_service.grant_location_access(staff_user, location_1.id)
        db_session.commit()

        resp = client.get(f"/api/inventory?location_id={location_1.id}", headers=staff_headers)
        assert resp.status_code == 403

        token = get_auth_token(client, "staff", TEST_PASSWORD)
        resp = client.get(f"/api/inventory?location_id={location_1.id}", headers=auth_headers(token))
        assert resp.status_code == 200


class TestPasswordsAndUsers:

    @pytest.mark.parametrize("password", [
        "Sh0rt!",
        "alllowercase1!",
        "ALLUPPERCASE1!",
        "NoDigitsHere!",
        "NoSpecial123",
    ])
    def test_weak_passwords(self, password):
        with pytest.raises(PasswordValidationError):
            validate_password_strength(password)

    def test_strong_password(self):
        validate_password_strength(TEST_PASSWORD)

    def test_hash_is_bcrypt(self, db_session):
        hashed = auth_service.hash_password(TEST_PASSWORD)
        assert hashed.startswith("$2")
        assert auth_service.verify_password(TEST_PASSWORD, hashed)
        assert not auth_service.verify_password("Other123!", hashed)
        assert not auth_service.verify_password(TEST_PASSWORD, "not-a-hash")

    def test_create_user_with_grants(self, db_session, location_1):
        user = auth_service.create_user("clerk", "clerk@stockflow.test", TEST_PASSWORD, "staff", [location_1.id])
        assert user.location_ids() == [location_1.id]

    def test_duplicate_username(self, db_session, admin_user):
        with pytest.raises(Conflict):
            auth_service.create_user("admin", "other@stockflow.test", TEST_PASSWORD)

    def test_unknown_role(self, db_session):
        with pytest.raises(BadRequest):
            auth_service.create_user("x", "x@stockflow.test", TEST_PASSWORD, "owner")

    def test_unknown_location_grant(self, db_session):
        with pytest.raises(NotFound):
            auth_service.create_user("y", "y@stockflow.test", TEST_PASSWORD, "staff", [98765])
        db_session.rollback()
