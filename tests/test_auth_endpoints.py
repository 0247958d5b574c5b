"""End-to-end tests for the signup, verification and sign-in endpoints."""
from app.models.pending_registration import PendingRegistration
from app.models.user import User, UserRole
from app.services.auth import get_password_hash

SIGNUP = {
    "email": "a@b.edu",
    "password": "Str0ngP@ss1",
    "fullName": "Jo",
    "role": "student",
}


def _signup(client, **overrides):
    return client.post("/auth/send-otp", json={**SIGNUP, **overrides})


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


def test_round_trip_signup(client, sender, db):
    resp = _signup(client)
    assert resp.status_code == 200
    assert resp.json()["success"] is True
    assert sender.last_code() not in resp.text

    resp = client.post("/auth/verify-otp", json={"email": "a@b.edu", "otpCode": sender.last_code()})
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True

    user = db.query(User).filter(User.id == body["userId"]).one()
    assert user.email == "a@b.edu"
    assert user.role == UserRole.student
    assert user.email_verified is True


def test_email_template(client, sender):
    _signup(client)
    message = sender.sent[-1]
    assert message["subject"] == "Your Campus Notes Hub Verification Code"
    code = sender.last_code()
    assert code in message["html"]
    assert "10 minutes" in message["html"]
    assert "Never share your verification code" in message["html"]


def test_duplicate_account_conflict(client, sender, db):
    db.add(User(email="a@b.edu", hashed_password=get_password_hash("x"), role=UserRole.student))
    db.commit()
    resp = _signup(client)
    assert resp.status_code == 409
    assert resp.json()["errorType"] == "email_exists"
    assert db.query(PendingRegistration).count() == 0
    assert sender.sent == []


def test_signup_validation_errors_surface(client):
    resp = _signup(client, password="password123")
    assert resp.status_code == 400
    assert "Password is too common, please choose a more secure password" in resp.json()["errors"]


def test_email_failure_reports_type_only(client, sender):
    sender.fail_with = "service_config_error"
    resp = _signup(client)
    assert resp.status_code == 500
    assert resp.json() == {
        "error": "Email service not properly configured. Please contact support.",
        "errorType": "service_config_error",
    }


def test_second_verification_fails(client, sender):
    _signup(client)
    payload = {"email": "a@b.edu", "otpCode": sender.last_code()}
    assert client.post("/auth/verify-otp", json=payload).status_code == 200
    resp = client.post("/auth/verify-otp", json=payload)
    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid or expired verification code"}


def test_expired_code_over_http(client, sender, db):
    _signup(client)
    row = db.query(PendingRegistration).one()
    row.expires_at = row.created_at
    db.commit()
    resp = client.post("/auth/verify-otp", json={"email": "a@b.edu", "otpCode": sender.last_code()})
    assert resp.status_code == 400


def test_login_and_me(client, sender):
    _signup(client)
    client.post("/auth/verify-otp", json={"email": "a@b.edu", "otpCode": sender.last_code()})

    resp = client.post("/auth/login", json={"email": "a@b.edu", "password": "Str0ngP@ss1"})
    assert resp.status_code == 200
    token = resp.json()["access_token"]
    assert resp.json()["user"]["role"] == "student"

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["email"] == "a@b.edu"
    assert me.json()["full_name"] == "Jo"


def test_login_failure_is_generic(client, db):
    db.add(User(email="a@b.edu", hashed_password=get_password_hash("Str0ngP@ss1"), role=UserRole.student))
    db.commit()
    wrong_password = client.post("/auth/login", json={"email": "a@b.edu", "password": "nope"})
    unknown_email = client.post("/auth/login", json={"email": "z@b.edu", "password": "nope"})
    assert wrong_password.status_code == unknown_email.status_code == 401
    assert wrong_password.json() == unknown_email.json()


def test_sixth_login_is_rate_limited(client):
    for i in range(5):
        resp = client.post("/auth/login", json={"email": "a@b.edu", "password": "nope"})
        assert resp.status_code == 401, f"Request {i + 1} should not be rate-limited"
    resp = client.post("/auth/login", json={"email": "a@b.edu", "password": "nope"})
    assert resp.status_code == 429


def test_me_requires_token(client):
    assert client.get("/auth/me").status_code == 401
