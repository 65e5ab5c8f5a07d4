from datetime import datetime, timedelta
from http import HTTPStatus

import pytest
from sqlalchemy.exc import SQLAlchemyError

from app import auth
from app.config import get_settings
from app.errors import InvalidCredentials, Unauthenticated
from app.models import ApiToken


def test_login_returns_token_and_user_summary(client, user_factory):
    user = user_factory()

    response = client.post("/login", json={"email": user.email, "password": "correct-horse-battery"})
    assert response.status_code == HTTPStatus.OK

    body = response.json()
    assert body["status"] == "success"
    assert body["user_type"] == "user"
    assert body["user"] == {"id": user.id, "name": "Alice Example", "email": "alice@example.com"}
    assert len(body["token"]) == 64


def test_login_reports_admin_user_type(client, user_factory):
    user_factory(email="root@example.com", is_admin=True)

    response = client.post("/login", json={"email": "root@example.com", "password": "correct-horse-battery"})
    assert response.json()["user_type"] == "admin"


def test_login_email_is_case_insensitive(client, user_factory):
    user_factory(email="alice@example.com")

    response = client.post("/login", json={"email": "ALICE@example.com", "password": "correct-horse-battery"})
    assert response.status_code == HTTPStatus.OK


def test_issued_token_authenticates_same_user(client, db_session, user_factory, login):
    user = user_factory()
    token = login(user.email)

    assert auth.authenticate(db_session, token).id == user.id

    response = client.get("/user", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == HTTPStatus.OK
    data = response.json()
    assert data["id"] == user.id
    assert data["is_admin"] is False
    assert "password_hash" not in data


def test_only_token_digest_is_stored(db_session, user_factory, login):
    user = user_factory()
    token = login(user.email)

    stored = db_session.query(ApiToken).filter(ApiToken.user_id == user.id).one()
    assert stored.token_hash != token
    assert stored.token_hash == auth.hash_token(token)


@pytest.mark.parametrize(
    "email, password",
    [
        ("alice@example.com", "wrong-password"),
        ("nobody@example.com", "correct-horse-battery"),
    ],
)
def test_invalid_credentials_are_indistinguishable(client, db_session, user_factory, email, password):
    user_factory()

    response = client.post("/login", json={"email": email, "password": password})

    assert response.status_code == HTTPStatus.UNAUTHORIZED
    assert response.json() == {"status": "failure", "message": "Invalid credentials"}
    assert db_session.query(ApiToken).count() == 0


def test_login_validation_errors_are_collected(client, db_session, user_factory):
    user_factory()

    response = client.post("/login", json={"email": "not-an-email", "password": ""})

    assert response.status_code == HTTPStatus.UNPROCESSABLE_ENTITY
    body = response.json()
    assert body["message"] == "Validation error"
    assert body["status"] == "failure"
    assert set(body["errors"]) == {"email", "password"}
    assert db_session.query(ApiToken).count() == 0


def test_login_missing_fields(client):
    response = client.post("/login", json={})

    assert response.status_code == HTTPStatus.UNPROCESSABLE_ENTITY
    assert set(response.json()["errors"]) == {"email", "password"}


def test_each_login_mints_an_independent_token(client, user_factory, login):
    user = user_factory()
    first = login(user.email)
    second = login(user.email)

    assert first != second
    for token in (first, second):
        response = client.get("/user/profile", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == HTTPStatus.OK
        assert response.json() == {"success": True}


def test_logout_revokes_every_token_of_the_user(client, db_session, user_factory, login):
    user = user_factory()
    other = user_factory(email="bob@example.com", name="Bob")
    first = login(user.email)
    second = login(user.email)
    bobs = login(other.email)

    response = client.post("/logout", headers={"Authorization": f"Bearer {first}"})
    assert response.status_code == HTTPStatus.OK
    assert response.json() == {"status": "success", "message": "Successfully logged out"}

    for token in (first, second):
        response = client.get("/user/profile", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == HTTPStatus.UNAUTHORIZED

    # Other users keep their sessions
    assert auth.authenticate(db_session, bobs).id == other.id


def test_revoking_with_no_tokens_left_is_not_an_error(db_session, user_factory):
    user = user_factory()

    assert auth.revoke_user_tokens(db_session, user.id) == 0
    assert auth.revoke_user_tokens(db_session, user.id) == 0


@pytest.mark.parametrize(
    "headers",
    [
        {},
        {"Authorization": "Bearer not-a-real-token"},
        {"Authorization": "Basic dXNlcjpwYXNz"},
    ],
)
def test_protected_routes_require_valid_bearer_token(client, headers):
    for method, path in [("get", "/renewals"), ("post", "/logout"), ("get", "/user/profile")]:
        response = getattr(client, method)(path, headers=headers)
        assert response.status_code == HTTPStatus.UNAUTHORIZED
        assert response.json() == {"status": "error", "message": "Unauthenticated."}


def test_authenticate_rejects_missing_token(db_session):
    with pytest.raises(Unauthenticated):
        auth.authenticate(db_session, None)


def test_login_service_raises_invalid_credentials(db_session, user_factory):
    user_factory()

    with pytest.raises(InvalidCredentials):
        auth.login(db_session, "alice@example.com", "nope")


def test_expired_token_is_rejected_but_kept_until_cleanup(db_session, user_factory, monkeypatch):
    monkeypatch.setattr(get_settings(), "token_expire_hours", 1)
    user = user_factory()
    token = auth.issue_token(db_session, user)

    record = db_session.query(ApiToken).one()
    assert record.expires_at is not None
    assert auth.authenticate(db_session, token).id == user.id

    record.expires_at = datetime.utcnow() - timedelta(minutes=1)
    db_session.commit()

    with pytest.raises(Unauthenticated):
        auth.authenticate(db_session, token)
    assert db_session.query(ApiToken).count() == 1

    assert auth.cleanup_expired_tokens(db_session) == 1
    assert db_session.query(ApiToken).count() == 0


def test_tokens_do_not_expire_by_default(db_session, user_factory):
    user = user_factory()
    auth.issue_token(db_session, user)

    assert db_session.query(ApiToken).one().expires_at is None
    assert auth.cleanup_expired_tokens(db_session) == 0


def test_login_store_failure_returns_500(client, db_session, user_factory, monkeypatch):
    """A failing commit while issuing the token surfaces as a clean 500 envelope."""
    user_factory()

    def _failing_commit():
        raise SQLAlchemyError("disk full")

    monkeypatch.setattr(db_session, "commit", _failing_commit)

    response = client.post("/login", json={"email": "alice@example.com", "password": "correct-horse-battery"})

    assert response.status_code == HTTPStatus.INTERNAL_SERVER_ERROR
    assert response.json() == {
        "status": "failure",
        "message": "An error occurred during login",
        "error": "An error occurred while trying to issue a token",
    }


def test_duplicate_email_is_rejected(db_session, user_factory):
    from app.errors import ValidationError

    user_factory()
    with pytest.raises(ValidationError) as exc_info:
        user_factory(email="ALICE@example.com")

    assert "email" in exc_info.value.errors


def test_seed_default_admin_is_idempotent(db_session, monkeypatch):
    settings = get_settings()
    monkeypatch.setattr(settings, "default_admin_email", "Admin@Example.com")
    monkeypatch.setattr(settings, "default_admin_password", "s3cret-admin")

    admin = auth.seed_default_admin(db_session, settings)
    again = auth.seed_default_admin(db_session, settings)

    assert admin.id == again.id
    assert admin.email == "admin@example.com"
    assert admin.is_admin is True
    assert auth.login(db_session, "admin@example.com", "s3cret-admin")[1].id == admin.id


def test_health_check(client):
    response = client.get("/")
    assert response.status_code == HTTPStatus.OK
    assert response.json()["status"] == "running"
