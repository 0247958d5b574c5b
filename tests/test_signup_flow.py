"""Tests for the client-side signup state machine."""
import json

import httpx
import pytest

from app.client.signup_flow import PENDING_EMAIL_KEY, SignupFlow, SignupStep
from app.models.user import User
from app.services.errors import (
    AccountCreationFailed,
    DuplicateAccount,
    InvalidOrExpiredCode,
    RateLimited,
    ServiceUnavailable,
    ValidationFailed,
)


def _flow(client, storage=None, **kwargs):
    return SignupFlow(client, storage if storage is not None else {}, **kwargs)


def test_full_signup_reaches_verified_with_session(client, sender):
    storage = {}
    flow = _flow(client, storage)
    assert flow.submit_signup("a@b.edu", "Str0ngP@ss1", "Jo", "student") == SignupStep.awaiting_code
    assert storage == {PENDING_EMAIL_KEY: "a@b.edu"}

    flow.set_code(sender.last_code())
    assert flow.submit_code() == SignupStep.verified
    assert flow.user_id is not None
    assert flow.access_token
    assert storage == {}

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {flow.access_token}"})
    assert me.json()["email"] == "a@b.edu"


def test_code_input_rules(client, sender):
    flow = _flow(client)
    flow.submit_signup("a@b.edu", "Str0ngP@ss1", "Jo")
    flow.set_code("12345")
    assert not flow.can_submit_code
    with pytest.raises(ValidationFailed):
        flow.submit_code()
    assert flow.set_code("1234567") == "123456"
    assert flow.can_submit_code
    flow.set_code("12a456")
    assert not flow.can_submit_code


def test_wrong_code_keeps_awaiting(client, sender):
    flow = _flow(client)
    flow.submit_signup("a@b.edu", "Str0ngP@ss1", "Jo")
    code = sender.last_code()
    flow.set_code("000000" if code != "000000" else "111111")
    with pytest.raises(InvalidOrExpiredCode):
        flow.submit_code()
    assert flow.step == SignupStep.awaiting_code


def test_back_to_signup_discards_code(client, sender):
    storage = {}
    flow = _flow(client, storage)
    flow.submit_signup("a@b.edu", "Str0ngP@ss1", "Jo")
    flow.set_code("123")
    assert flow.back_to_signup() == SignupStep.collecting_signup_info
    assert flow.code == ""
    assert storage == {}


def test_restore_after_reload(client, sender):
    storage = {}
    _flow(client, storage).submit_signup("a@b.edu", "Str0ngP@ss1", "Jo")

    reloaded = _flow(client, storage)
    assert reloaded.restore() == SignupStep.awaiting_code
    assert reloaded.email == "a@b.edu"
    reloaded.set_code(sender.last_code())
    assert reloaded.submit_code() == SignupStep.verified
    # Password was not persisted, so the user signs in separately
    assert reloaded.access_token is None

    assert _flow(client, {}).restore() == SignupStep.collecting_signup_info


def test_validation_errors_surface_verbatim(client, sender):
    flow = _flow(client)
    with pytest.raises(ValidationFailed) as exc:
        flow.submit_signup("a@b.edu", "password123", "Jo")
    assert "Password is too common, please choose a more secure password" in exc.value.errors
    assert flow.step == SignupStep.collecting_signup_info
    assert sender.sent == []


def test_duplicate_account(client, sender):
    flow = _flow(client)
    flow.submit_signup("a@b.edu", "Str0ngP@ss1", "Jo")
    flow.set_code(sender.last_code())
    flow.submit_code()
    with pytest.raises(DuplicateAccount):
        _flow(client).submit_signup("a@b.edu", "Str0ngP@ss1", "Jo")


def test_fourth_signup_is_rate_limited(client, sender):
    for _ in range(3):
        _flow(client).submit_signup("a@b.edu", "Str0ngP@ss1", "Jo")
    with pytest.raises(RateLimited):
        _flow(client).submit_signup("a@b.edu", "Str0ngP@ss1", "Jo")


def _stub_backend(rate_status=200, validate_status=200, send_otp=None, verify_otp=None):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content or b"{}")
        calls.append((request.url.path, body.get("type")))
        if request.url.path == "/auth/secure-auth" and body["type"] == "rate-check":
            return httpx.Response(rate_status, json={"error": "Rate limiting service temporarily unavailable"})
        if request.url.path == "/auth/secure-auth":
            if validate_status != 200:
                return httpx.Response(validate_status, json={"error": "down"})
            return httpx.Response(200, json={"valid": True, "errors": [], "sanitizedData": {"email": body["email"], "fullName": body["fullName"]}})
        if request.url.path == "/auth/send-otp":
            return send_otp(request) if send_otp else httpx.Response(200, json={"success": True})
        if request.url.path == "/auth/verify-otp" and verify_otp:
            return verify_otp(request)
        return httpx.Response(404)

    return httpx.Client(transport=httpx.MockTransport(handler), base_url="http://backend"), calls


def test_rate_check_outage_fails_open():
    http, calls = _stub_backend(rate_status=500)
    flow = SignupFlow(http, {}, fail_open=True)
    assert flow.submit_signup("a@b.edu", "Str0ngP@ss1", "Jo") == SignupStep.awaiting_code
    assert ("/auth/send-otp", None) in calls


def test_rate_check_outage_fails_closed_when_configured():
    http, calls = _stub_backend(rate_status=503)
    flow = SignupFlow(http, {}, fail_open=False)
    with pytest.raises(ServiceUnavailable):
        flow.submit_signup("a@b.edu", "Str0ngP@ss1", "Jo")
    assert ("/auth/send-otp", None) not in calls


def test_validation_outage_fails_closed():
    http, calls = _stub_backend(validate_status=503)
    flow = SignupFlow(http, {})
    with pytest.raises(ValidationFailed) as exc:
        flow.submit_signup("a@b.edu", "Str0ngP@ss1", "Jo")
    assert exc.value.errors == ["Validation service temporarily unavailable"]
    assert ("/auth/send-otp", None) not in calls


def test_special_characters_reach_backend_unescaped(client, sender, db):
    flow = _flow(client)
    flow.submit_signup("o'brien@b.edu", "Str0ngP@ss1", "Tom & Jerry")
    assert sender.sent[0]["to"] == "o'brien@b.edu"
    assert flow.email == "o'brien@b.edu"

    flow.set_code(sender.last_code())
    assert flow.submit_code() == SignupStep.verified
    assert flow.access_token

    user = db.query(User).filter(User.id == flow.user_id).one()
    assert user.email == "o'brien@b.edu"
    assert user.full_name == "Tom & Jerry"
    assert "Tom &amp; Jerry" in sender.sent[0]["html"]
    assert "&amp;amp;" not in sender.sent[0]["html"]


def _raise_connect_error(request):
    raise httpx.ConnectError("connection refused", request=request)


def test_send_otp_network_error_is_unavailable():
    http, _ = _stub_backend(send_otp=_raise_connect_error)
    flow = SignupFlow(http, {})
    with pytest.raises(ServiceUnavailable):
        flow.submit_signup("a@b.edu", "Str0ngP@ss1", "Jo")
    assert flow.step == SignupStep.collecting_signup_info


def test_send_otp_server_error_is_unavailable():
    http, _ = _stub_backend(send_otp=lambda r: httpx.Response(500, json={"error": "Internal server error"}))
    with pytest.raises(ServiceUnavailable):
        SignupFlow(http, {}).submit_signup("a@b.edu", "Str0ngP@ss1", "Jo")


def _awaiting_flow(verify_otp):
    http, _ = _stub_backend(verify_otp=verify_otp)
    flow = SignupFlow(http, {})
    flow.submit_signup("a@b.edu", "Str0ngP@ss1", "Jo")
    flow.set_code("123456")
    return flow


@pytest.mark.parametrize(
    "verify_otp",
    [
        _raise_connect_error,
        lambda r: httpx.Response(500, json={"error": "Internal server error"}),
        lambda r: httpx.Response(503, json={"error": "Service temporarily unavailable. Please try again."}),
    ],
)
def test_verify_outage_is_unavailable(verify_otp):
    flow = _awaiting_flow(verify_otp)
    with pytest.raises(ServiceUnavailable):
        flow.submit_code()
    assert flow.step == SignupStep.awaiting_code


def test_verify_account_creation_failure():
    flow = _awaiting_flow(lambda r: httpx.Response(500, json={"error": "Failed to create user account"}))
    with pytest.raises(AccountCreationFailed):
        flow.submit_code()
    assert flow.step == SignupStep.awaiting_code


def test_verify_rate_limited():
    flow = _awaiting_flow(lambda r: httpx.Response(429, json={"allowed": False, "error": "Too many attempts"}))
    with pytest.raises(RateLimited):
        flow.submit_code()
