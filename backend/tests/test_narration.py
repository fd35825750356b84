"""
Unit tests for payment capture narration
"""
import pytest

from agent_payments.capabilities.narration import (
    render_payment_prompt,
    render_start_capture_prompt,
)
from agent_payments.services.callback_service import PaymentCallbackHandler


def _complete(store, *fields):
    for name in fields:
        store.update_field_state("CA1", "PA1", name, complete=True, masked=f"masked-{name}")


@pytest.fixture
def session_store(store):
    store.create_session("CA1", "PA1")
    store.update_session_status("CA1", "PA1", "in-progress")
    return store


def test_start_capture_prompt_names_call_and_tool():
    text = render_start_capture_prompt("CA1")

    assert "CA1" in text
    assert "startPaymentCapture" in text


def test_fresh_session_asks_for_card_number(session_store):
    text = render_payment_prompt(session_store.get_session("CA1", "PA1"))

    assert "Payment Card Capture: Card Number" in text
    assert "captureCardNumber" in text


@pytest.mark.parametrize("completed,title,tool", [
    (("card_number",), "Security Code", "captureSecurityCode"),
    (("card_number", "security_code"), "Expiration Date", "captureExpirationDate"),
])
def test_next_incomplete_field_is_requested(session_store, completed, title, tool):
    _complete(session_store, *completed)

    text = render_payment_prompt(session_store.get_session("CA1", "PA1"))

    assert f"Payment Card Capture: {title}" in text
    assert tool in text


def test_all_fields_captured_asks_to_finish(session_store):
    _complete(session_store, "card_number", "security_code", "expiration_date")

    text = render_payment_prompt(session_store.get_session("CA1", "PA1"))

    assert "Complete Payment Capture" in text
    assert "completePaymentCapture" in text


def test_error_status_takes_precedence(session_store):
    """Error narration wins over completed fields and pending re-entry"""
    _complete(session_store, "card_number", "security_code", "expiration_date")
    session_store.update_field_state("CA1", "PA1", "card_number", needs_reentry=True, reentry_reason="bad")
    session_store.update_session_status("CA1", "PA1", "error", "Processor unavailable")

    text = render_payment_prompt(session_store.get_session("CA1", "PA1"))

    assert "Payment Card Capture: Error" in text
    assert "- Error: Processor unavailable" in text
    assert "Re-entry" not in text


def test_complete_status_takes_precedence_over_reentry(session_store):
    session_store.update_field_state("CA1", "PA1", "security_code", needs_reentry=True)
    session_store.set_payment_token("CA1", "PA1", "tok_xyz")

    text = render_payment_prompt(session_store.get_session("CA1", "PA1"))

    assert "Successfully Completed" in text


def test_reentry_follows_canonical_order(session_store):
    session_store.update_field_state("CA1", "PA1", "security_code", needs_reentry=True, reentry_reason="short code")
    session_store.update_field_state("CA1", "PA1", "card_number", needs_reentry=True, reentry_reason="bad luhn")

    text = render_payment_prompt(session_store.get_session("CA1", "PA1"))

    assert "Card Number Re-entry Required" in text
    assert "bad luhn" in text
    assert "short code" not in text


def test_reentry_without_reason_uses_default(session_store):
    session_store.update_field_state("CA1", "PA1", "security_code", needs_reentry=True)

    text = render_payment_prompt(session_store.get_session("CA1", "PA1"))

    assert "Invalid security code format" in text
    assert "resetPaymentField" in text


def test_rendering_is_deterministic(session_store):
    _complete(session_store, "card_number")
    session = session_store.get_session("CA1", "PA1")

    assert render_payment_prompt(session) == render_payment_prompt(session)


def test_card_number_captured_then_security_code_requested(store):
    store.create_session("CA1", "PA1")
    store.update_field_state("CA1", "PA1", "card_number", complete=True, masked="**** **** **** 1234")

    session = store.get_session("CA1", "PA1")
    assert session.card_number.complete is True
    assert session.security_code.complete is False

    text = render_payment_prompt(session)
    assert "Payment Card Capture: Security Code" in text
    assert "**** **** **** 1234" in text
    assert "captureSecurityCode" in text


def test_rejected_expiration_date_asks_for_reentry(store):
    store.create_session("CA1", "PA1")
    _complete(store, "card_number", "security_code")
    PaymentCallbackHandler(store).process_callback("expiration-date", {
        "CallSid": "CA1",
        "PaymentSid": "PA1",
        "Result": "error",
        "ErrorMessage": "invalid date",
    })

    session = store.get_session("CA1", "PA1")
    assert session.expiration_date.needs_reentry is True
    assert session.expiration_date.reentry_reason == "invalid date"
    assert session.expiration_date.attempts == 1

    text = render_payment_prompt(session)
    assert "Expiration Date Re-entry Required" in text
    assert "- Issue: invalid date" in text
    assert "- Attempts: 1" in text


def test_token_received_renders_completion(store):
    store.create_session("CA1", "PA1")

    store.set_payment_token("CA1", "PA1", "tok_abc")

    session = store.get_session("CA1", "PA1")
    assert session.status == "complete"
    assert session.token == "tok_abc"
    text = render_payment_prompt(session)
    assert "Successfully Completed" in text
    assert "- Payment Token: tok_abc" in text
