"""
API tests for the callback receiver
"""
import json
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from agent_payments.main import create_callback_app
from agent_payments.services.callback_service import PaymentCallbackHandler
from agent_payments.services.signature_service import compute_body_hash, compute_signature

START_BODY = {"CallSid": "CA1", "PaymentSid": "PA1", "Result": "success"}


@pytest.fixture
def client(store, settings):
    app = create_callback_app(PaymentCallbackHandler(store), settings)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def signed_settings(settings):
    return settings.model_copy(update={"twilio_auth_token": "auth-token"})


def test_health(client):
    r = client.get("/health")

    assert r.status_code == 200
    assert r.json()["status"] == "healthy"


def test_form_callback_is_applied(client, store):
    r = client.post("/?lastCall=startCapture", data=START_BODY)

    assert r.status_code == 200
    assert r.text == "OK"
    assert store.get_session("CA1", "PA1").status == "in-progress"


def test_json_callback_is_applied(client, store):
    client.post("/?lastCall=startCapture", data=START_BODY)

    r = client.post("/?lastCall=finishCapture", json={**START_BODY, "PaymentToken": "tok_abc"})

    assert r.status_code == 200
    assert store.get_session("CA1", "PA1").token == "tok_abc"


def test_unknown_session_still_acknowledged(client, store):
    r = client.post("/?lastCall=security-code", data=START_BODY)

    assert r.status_code == 200
    assert store.get_session("CA1", "PA1") is None


def test_processing_failure_returns_500(settings):
    handler = MagicMock()
    handler.process_callback.side_effect = RuntimeError("boom")
    client = TestClient(create_callback_app(handler, settings))

    r = client.post("/?lastCall=startCapture", data=START_BODY)

    assert r.status_code == 500
    assert r.text == "Error processing callback"


def test_valid_signature_is_accepted(store, signed_settings):
    client = TestClient(create_callback_app(PaymentCallbackHandler(store), signed_settings))
    url = "https://callbacks.example.com/?lastCall=startCapture"
    signature = compute_signature("auth-token", url, START_BODY)

    r = client.post("/?lastCall=startCapture", data=START_BODY, headers={"X-Twilio-Signature": signature})

    assert r.status_code == 200
    assert store.get_session("CA1", "PA1") is not None


def test_invalid_signature_is_rejected(store, signed_settings):
    client = TestClient(create_callback_app(PaymentCallbackHandler(store), signed_settings))

    r = client.post("/?lastCall=startCapture", data=START_BODY, headers={"X-Twilio-Signature": "bogus"})

    assert r.status_code == 403
    assert r.json()["error_code"] == "payments:callback:invalid_signature"
    assert store.get_session("CA1", "PA1") is None


def _signed_json_request(body, last_call="finishCapture", body_hash=None):
    raw = json.dumps(body).encode("utf-8")
    query = f"lastCall={last_call}&bodySHA256={body_hash or compute_body_hash(raw)}"
    signature = compute_signature("auth-token", f"https://callbacks.example.com/?{query}", {})
    return f"/?{query}", raw, {"X-Twilio-Signature": signature, "Content-Type": "application/json"}


def test_signed_json_callback_with_matching_body_hash(store, signed_settings):
    store.create_session("CA1", "PA1")
    client = TestClient(create_callback_app(PaymentCallbackHandler(store), signed_settings))
    path, raw, headers = _signed_json_request({**START_BODY, "PaymentToken": "tok_abc"})

    r = client.post(path, content=raw, headers=headers)

    assert r.status_code == 200
    assert store.get_session("CA1", "PA1").token == "tok_abc"


def test_json_body_swapped_under_valid_url_signature_is_rejected(store, signed_settings):
    store.create_session("CA1", "PA1")
    client = TestClient(create_callback_app(PaymentCallbackHandler(store), signed_settings))
    path, _, headers = _signed_json_request({**START_BODY, "PaymentToken": "tok_abc"})
    forged = json.dumps({**START_BODY, "PaymentToken": "tok_forged"}).encode("utf-8")

    r = client.post(path, content=forged, headers=headers)

    assert r.status_code == 403
    assert r.json()["error_code"] == "payments:callback:invalid_signature"
    assert store.get_session("CA1", "PA1").token is None


def test_json_callback_without_body_hash_is_rejected(store, signed_settings):
    store.create_session("CA1", "PA1")
    client = TestClient(create_callback_app(PaymentCallbackHandler(store), signed_settings))
    signature = compute_signature("auth-token", "https://callbacks.example.com/?lastCall=finishCapture", {})

    r = client.post(
        "/?lastCall=finishCapture",
        json={**START_BODY, "PaymentToken": "tok_forged"},
        headers={"X-Twilio-Signature": signature},
    )

    assert r.status_code == 403
    assert store.get_session("CA1", "PA1").status == "initialized"
