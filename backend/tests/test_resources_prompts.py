"""
Unit tests for the payment status resource and prompts
"""
import json

import pytest

from agent_payments.capabilities.prompts import PaymentPrompts
from agent_payments.capabilities.resources import PaymentStatusResource
from agent_payments.exceptions import SessionNotFoundError
from agent_payments.services.callback_service import PaymentCallbackHandler


@pytest.fixture
def resource(store):
    return PaymentStatusResource(store)


def test_status_unknown_session_raises(resource):
    with pytest.raises(SessionNotFoundError) as exc_info:
        resource.read("CA1", "PA404")

    assert exc_info.value.error_code == "payments:session:not_found"
    assert "PA404" in exc_info.value.message


def test_status_reflects_callback_snapshot(resource, store):
    handler = PaymentCallbackHandler(store)
    handler.process_callback("startCapture", {"CallSid": "CA1", "PaymentSid": "PA1"})
    handler.process_callback("payment-card-number", {
        "CallSid": "CA1",
        "PaymentSid": "PA1",
        "Result": "success",
        "PaymentCardNumber": "************1234",
        "PaymentCardType": "visa",
    })

    status = json.loads(resource.read("CA1", "PA1"))

    assert status["paymentSid"] == "PA1"
    assert status["paymentCardNumber"] == "************1234"
    assert status["paymentCardType"] == "visa"
    assert status["result"] == "success"
    assert status["session"]["status"] == "in-progress"
    assert status["session"]["fields"]["card_number"]["complete"] is True
    assert "captureSecurityCode" in status["nextStep"]


def test_status_without_callbacks_falls_back_to_session(resource, store):
    store.create_session("CA1", "PA1")
    store.set_payment_token("CA1", "PA1", "tok_abc")

    status = json.loads(resource.read("CA1", "PA1"))

    assert status["paymentToken"] == "tok_abc"
    assert status["paymentCardNumber"] is None
    assert status["session"]["token"] == "tok_abc"


def test_status_with_snapshot_only(resource, store):
    PaymentCallbackHandler(store).process_callback("security-code", {
        "CallSid": "CA1", "PaymentSid": "PA1", "Result": "success",
    })

    status = json.loads(resource.read("CA1", "PA1"))

    assert status["result"] == "success"
    assert status["session"] is None
    assert status["nextStep"] is None


def test_start_capture_prompt(store):
    text = PaymentPrompts(store).start_capture("CA1")

    assert "CA1" in text
    assert "startPaymentCapture" in text


def test_start_capture_prompt_requires_call_sid(store):
    with pytest.raises(ValueError):
        PaymentPrompts(store).start_capture("")


def test_next_step_before_session_exists(store):
    text = PaymentPrompts(store).next_step("CA1", "PA1")

    assert "No payment session is recorded yet" in text
    assert "startPaymentCapture" in text


def test_next_step_follows_session(store):
    store.create_session("CA1", "PA1")
    store.update_session_status("CA1", "PA1", "error", "declined")

    text = PaymentPrompts(store).next_step("CA1", "PA1")

    assert "- Error: declined" in text
