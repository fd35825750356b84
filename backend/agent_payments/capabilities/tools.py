"""
Payment Capture Tools

Operations the orchestrating LLM calls to drive a capture:

1. startPaymentCapture: open a capture session on a live call
2. captureCardNumber / captureSecurityCode / captureExpirationDate:
   ask the vendor to collect one field
3. completePaymentCapture: finish the session so the card is tokenized
4. resetPaymentField: clear a rejected field before capturing it again

Every tool validates its input, talks to the gateway and store that were
injected at construction, and returns a ToolResult envelope. Exceptions
never escape a tool; they become error envelopes.
"""
import functools
import json
import logging
from typing import Any, Awaitable, Callable, Dict

from pydantic import BaseModel, Field

from ..models.payment_session import CaptureType, PaymentField
from ..services.payment_state_store import PaymentStateStore
from ..services.twilio_gateway import TwilioPaymentGateway

logger = logging.getLogger(__name__)


# ============================================================================
# Envelope and Input Schemas
# ============================================================================

class ToolResult(BaseModel):
    """Uniform result envelope returned across the protocol boundary."""
    content: str
    is_error: bool = False

    @classmethod
    def success(cls, payload: Dict[str, Any]) -> "ToolResult":
        return cls(content=json.dumps(payload, indent=2))

    @classmethod
    def failure(cls, message: str) -> "ToolResult":
        return cls(content=message, is_error=True)


class StartCaptureInput(BaseModel):
    call_sid: str = Field(min_length=1, description="The Twilio Call SID")


class PaymentSessionInput(BaseModel):
    call_sid: str = Field(min_length=1, description="The Twilio Call SID")
    payment_sid: str = Field(min_length=1, description="The Twilio Payment SID")


class ResetFieldInput(PaymentSessionInput):
    field: PaymentField = Field(description="Field to clear: card_number, security_code or expiration_date")


def envelope(action: str) -> Callable:
    """Convert any exception raised by a tool into an error ToolResult."""
    def decorator(func: Callable[..., Awaitable[ToolResult]]) -> Callable[..., Awaitable[ToolResult]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> ToolResult:
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                logger.error(f"Error {action}: {e}", exc_info=True)
                return ToolResult.failure(f"Error {action}: {e}")
        return wrapper
    return decorator


# ============================================================================
# Tools
# ============================================================================

class PaymentCaptureTools:
    """
    Tool implementations bound to one store and one gateway.
    """

    def __init__(self, store: PaymentStateStore, gateway: TwilioPaymentGateway):
        self._store = store
        self._gateway = gateway

    @envelope("starting payment capture")
    async def start_payment_capture(self, call_sid: str) -> ToolResult:
        """
        Start a new payment capture session.

        Returns:
            {"paymentSid": str} on success
        """
        params = StartCaptureInput(call_sid=call_sid)

        payment = await self._gateway.start_capture(params.call_sid)
        if payment is None:
            logger.error(f"Failed to start payment capture session for call {params.call_sid}")
            return ToolResult.failure("Failed to start payment capture session.")

        # The startCapture callback may already have created it
        self._store.ensure_session(params.call_sid, payment.sid)

        logger.info(f"Started payment capture session {payment.sid} for call {params.call_sid}")
        return ToolResult.success({"paymentSid": payment.sid})

    async def capture_card_number(self, call_sid: str, payment_sid: str) -> ToolResult:
        return await self._capture_field(call_sid, payment_sid, "payment-card-number")

    async def capture_security_code(self, call_sid: str, payment_sid: str) -> ToolResult:
        return await self._capture_field(call_sid, payment_sid, "security-code")

    async def capture_expiration_date(self, call_sid: str, payment_sid: str) -> ToolResult:
        return await self._capture_field(call_sid, payment_sid, "expiration-date")

    @envelope("updating payment field")
    async def _capture_field(self, call_sid: str, payment_sid: str, capture: CaptureType) -> ToolResult:
        params = PaymentSessionInput(call_sid=call_sid, payment_sid=payment_sid)
        label = capture.replace("payment-", "").replace("-", " ")

        payment = await self._gateway.update_capture_field(params.call_sid, params.payment_sid, capture)
        if payment is None:
            logger.error(f"Failed to start capture of {label} for payment {params.payment_sid}")
            return ToolResult.failure(f"Failed to start capture of {label}")

        logger.info(f"Started capture of {label} for payment {params.payment_sid}")
        return ToolResult.success({"success": True})

    @envelope("completing payment capture")
    async def complete_payment_capture(self, call_sid: str, payment_sid: str) -> ToolResult:
        """
        Finish the capture session.

        The token is usually delivered later by the finishCapture callback;
        it is returned here when the vendor response or store already has it.
        """
        params = PaymentSessionInput(call_sid=call_sid, payment_sid=payment_sid)

        payment = await self._gateway.finish_capture(params.call_sid, params.payment_sid)
        if payment is None:
            logger.error(f"Failed to complete payment capture for payment {params.payment_sid}")
            return ToolResult.failure("Failed to complete payment capture.")

        token = payment.payment_token
        if token is None:
            session = self._store.get_session(params.call_sid, params.payment_sid)
            token = session.token if session else None

        logger.info(f"Completed payment capture for payment {params.payment_sid}")
        return ToolResult.success({"success": True, "token": token})

    @envelope("resetting payment field")
    async def reset_payment_field(self, call_sid: str, payment_sid: str, field: str) -> ToolResult:
        """Clear a field so it can be captured again; attempts keeps counting."""
        params = ResetFieldInput(call_sid=call_sid, payment_sid=payment_sid, field=field)

        session = self._store.reset_field(params.call_sid, params.payment_sid, params.field)
        if session is None:
            return ToolResult.failure(
                f"Payment session not found for call {params.call_sid}, payment {params.payment_sid}"
            )

        return ToolResult.success({
            "success": True,
            "field": params.field,
            "attempts": session.field(params.field).attempts,
        })
