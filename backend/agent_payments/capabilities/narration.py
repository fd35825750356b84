"""
Payment Capture Narration

Maps a session snapshot to the instruction text the orchestrating LLM
reads before its next step. Every function here is pure: the same
snapshot always renders the same text.

Precedence (first match wins):
1. status error        -> error guidance
2. status complete     -> completion summary with token
3. any field re-entry  -> re-entry guidance for the first such field
4-6. next incomplete field in canonical order
7. otherwise           -> finish the capture
"""
from typing import Dict

from ..models.payment_session import FIELD_LABELS, PaymentField, PaymentSessionState


CAPTURE_TOOLS: Dict[str, str] = {
    "card_number": "captureCardNumber",
    "security_code": "captureSecurityCode",
    "expiration_date": "captureExpirationDate",
}

DEFAULT_REENTRY_REASONS: Dict[str, str] = {
    "card_number": "Invalid card number format",
    "security_code": "Invalid security code format",
    "expiration_date": "Invalid expiration date format",
}

CUSTOMER_ASKS: Dict[str, str] = {
    "card_number": "Please enter your card number using your phone keypad, followed by the pound key.",
    "security_code": "Now please enter the 3 or 4 digit security code on your card, followed by the pound key.",
    "expiration_date": "Finally, please enter your card's expiration date as two digits for the month and two for the year, for example 0528 for May 2028.",
}

STATUS_REMINDER = (
    "After the tool call, read the 'getPaymentStatus' resource and wait until "
    "the field shows as captured before moving on."
)


def render_start_capture_prompt(call_sid: str) -> str:
    """Guidance shown before any session exists for a call."""
    return f"""# Payment Card Capture

You are about to collect the caller's card details. The caller types the
digits on their keypad; you never hear or see the raw card number.

- Call SID: {call_sid}

## Next Step: Start Payment Capture
1. Ask the caller whether they are ready to provide their card.
2. Explain that the details are collected securely and tokenized.
3. Call the 'startPaymentCapture' tool with this Call SID. It returns the Payment SID.

## Important
- Capture is asynchronous. After every tool call, read 'getPaymentStatus'
  before deciding the next step.
- Do not move to the next field until the current one is captured.
"""


def render_payment_prompt(session: PaymentSessionState) -> str:
    """
    Render the next-step instruction for a payment session.

    Args:
        session: Session snapshot from the PaymentStateStore

    Returns:
        Markdown instruction text
    """
    if session.status == "error":
        return _error_prompt(session)

    if session.status == "complete":
        return _completion_prompt(session)

    reentry_field = session.first_field_needing_reentry()
    if reentry_field is not None:
        return _reentry_prompt(session, reentry_field)

    if not session.card_number.complete:
        return _capture_prompt(session, "card_number")
    if not session.security_code.complete:
        return _capture_prompt(session, "security_code")
    if not session.expiration_date.complete:
        return _capture_prompt(session, "expiration_date")

    return _finish_prompt(session)


def _status_lines(session: PaymentSessionState, *fields: PaymentField) -> str:
    lines = [f"- Payment SID: {session.payment_sid}"]
    for name in fields:
        lines.append(f"- {FIELD_LABELS[name].title()}: {session.field(name).masked}")
    lines.append(f"- Status: {session.status}")
    return "\n".join(lines)


def _capture_prompt(session: PaymentSessionState, field: PaymentField) -> str:
    captured = {
        "card_number": (),
        "security_code": ("card_number",),
        "expiration_date": ("card_number", "security_code"),
    }[field]
    label = FIELD_LABELS[field]

    return f"""# Payment Card Capture: {label.title()}

## Current Status
{_status_lines(session, *captured)}

## Next Step: Capture {label.title()}
1. Ask the caller for their {label}.
2. Call the '{CAPTURE_TOOLS[field]}' tool with the Call SID and Payment SID.
3. {STATUS_REMINDER}

Example dialogue:
"{CUSTOMER_ASKS[field]}"

## Important
- The {label} is masked by the payment provider; you only ever see the masked value.
- If the caller makes a mistake, use 'resetPaymentField' and capture the {label} again.
"""


def _reentry_prompt(session: PaymentSessionState, field: PaymentField) -> str:
    state = session.field(field)
    reason = state.reentry_reason or DEFAULT_REENTRY_REASONS[field]
    label = FIELD_LABELS[field]
    captured = tuple(
        name for name in ("card_number", "security_code")
        if name != field and session.field(name).complete
    )

    return f"""# Payment Card Capture: {label.title()} Re-entry Required

The {label} the caller entered was rejected.

## Current Status
{_status_lines(session, *captured)}
- Issue: {reason}
- Attempts: {state.attempts}

## Next Step: Re-capture {label.title()}
1. Tell the caller there was a problem with their {label}: {reason}.
2. Call the 'resetPaymentField' tool with field '{field}'.
3. Call the '{CAPTURE_TOOLS[field]}' tool again.
4. {STATUS_REMINDER}

Example dialogue:
"I'm sorry, there was a problem with the {label} you entered: {reason}. {CUSTOMER_ASKS[field]}"

## Important
- Be patient; ask the caller to check the card before re-entering.
- After several failed attempts, offer another way to pay.
"""


def _finish_prompt(session: PaymentSessionState) -> str:
    return f"""# Payment Card Capture: Complete Process

All card details have been captured.

## Current Status
{_status_lines(session, "card_number", "security_code", "expiration_date")}

## Next Step: Complete Payment Capture
1. Tell the caller all details have been collected.
2. Call the 'completePaymentCapture' tool with the Call SID and Payment SID.
3. Read 'getPaymentStatus' until the payment token is available.

Example dialogue:
"Thank you, I have everything I need. I'm now securing your card details."
"""


def _completion_prompt(session: PaymentSessionState) -> str:
    last_four = session.card_number.masked[-4:] if session.card_number.masked else "****"

    return f"""# Payment Card Capture: Successfully Completed

## Current Status
{_status_lines(session, "card_number", "security_code", "expiration_date")}
- Payment Token: {session.token or "Generated (masked for security)"}

## Next Steps
1. Tell the caller their card has been captured and secured.
2. Continue with the rest of the call (confirm the order, book the service).
3. Use the payment token for charges; the raw card is never needed again.

Example dialogue:
"Thank you, your card ending in {last_four} has been saved securely."
"""


def _error_prompt(session: PaymentSessionState) -> str:
    message = session.error_message or "Unknown error"

    return f"""# Payment Card Capture: Error

The payment capture failed.

## Current Status
- Payment SID: {session.payment_sid}
- Status: {session.status}
- Error: {message}

## Next Steps
1. Apologise to the caller and explain there was a problem.
2. Offer to start again with the 'startPaymentCapture' tool.
3. If the problem persists, offer another way to pay.

Example dialogue:
"I'm sorry, we ran into a problem saving your card: {message}. Would you like to try again?"
"""
