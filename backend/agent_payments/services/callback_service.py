"""
Payment Callback Ingestion

Turns asynchronous vendor notifications into PaymentStateStore
transitions. The lastCall discriminator, carried through the callback URL,
selects the handler:

- startCapture                      -> create session, status in-progress
- payment-card-number / security-code / expiration-date
                                    -> field captured, or field needs re-entry
- finishCapture                     -> token stored, or session error
- anything else                     -> logged and dropped

A callback for an unknown session is logged and discarded; it never
raises, because the vendor's webhook can beat local session creation.
"""
import logging
from typing import Any, Dict, Mapping, Optional

from ..models.callbacks import PaymentCallback
from ..models.payment_session import CAPTURE_TYPE_TO_FIELD, PaymentField
from .payment_state_store import PaymentStateStore

logger = logging.getLogger(__name__)


# Shown instead of the masked value when the vendor omits one
MASK_PLACEHOLDERS: Dict[str, str] = {
    "card_number": "•••• •••• •••• ••••",
    "security_code": "•••",
    "expiration_date": "••/••",
}

DEFAULT_FIELD_ERRORS: Dict[str, str] = {
    "card_number": "Error capturing card number",
    "security_code": "Error capturing security code",
    "expiration_date": "Error capturing expiration date",
}


class PaymentCallbackHandler:
    """
    Applies parsed vendor callbacks to the session store.
    """

    def __init__(self, store: PaymentStateStore):
        self._store = store

    def process_callback(self, last_call: Optional[str], body: Mapping[str, Any]) -> None:
        """
        Route one callback by its discriminator.

        Args:
            last_call: lastCall query parameter from the callback URL
            body: Callback parameters (form fields or JSON)

        Raises:
            pydantic.ValidationError: If the body cannot be parsed at all
        """
        callback = PaymentCallback.model_validate(dict(body))
        call_sid, payment_sid = callback.call_sid, callback.payment_sid

        logger.info(f"Payment callback lastCall={last_call} call={call_sid} payment={payment_sid} result={callback.result}")

        if not call_sid or not payment_sid:
            logger.error(f"Callback for {last_call} is missing CallSid or PaymentSid; ignoring")
            return

        self._store.record_callback(callback)

        if last_call == "startCapture":
            self._handle_start_capture(callback)
        elif last_call in CAPTURE_TYPE_TO_FIELD:
            self._handle_field(callback, CAPTURE_TYPE_TO_FIELD[last_call])
        elif last_call == "finishCapture":
            self._handle_finish_capture(callback)
        else:
            logger.error(f"Unknown callback type: {last_call}")

    # ========================================================================
    # Handlers
    # ========================================================================

    def _handle_start_capture(self, callback: PaymentCallback) -> None:
        self._store.create_session(callback.call_sid, callback.payment_sid)
        self._store.update_session_status(callback.call_sid, callback.payment_sid, "in-progress")

    def _handle_field(self, callback: PaymentCallback, field: PaymentField) -> None:
        call_sid, payment_sid = callback.call_sid, callback.payment_sid

        if callback.is_error:
            reason = callback.error_message or DEFAULT_FIELD_ERRORS[field]
            with self._store.locked():
                session = self._store.get_session(call_sid, payment_sid)
                if session is None:
                    logger.error(f"Session not found for call {call_sid}, payment {payment_sid}")
                    return
                self._store.update_field_state(
                    call_sid,
                    payment_sid,
                    field,
                    needs_reentry=True,
                    reentry_reason=reason,
                    attempts=session.field(field).attempts + 1,
                )
            logger.error(f"{DEFAULT_FIELD_ERRORS[field]}: {reason}")
            return

        updated = self._store.update_field_state(
            call_sid,
            payment_sid,
            field,
            masked=self._masked_value(callback, field),
            complete=True,
            needs_reentry=False,
            reentry_reason=None,
        )
        if updated is None:
            logger.error(f"Session not found for call {call_sid}, payment {payment_sid}")

    def _handle_finish_capture(self, callback: PaymentCallback) -> None:
        call_sid, payment_sid = callback.call_sid, callback.payment_sid

        if callback.is_error:
            message = callback.error_message or "Error completing payment capture"
            self._store.update_session_status(call_sid, payment_sid, "error", message)
            logger.error(f"Error completing payment capture: {message}")
            return

        self._store.set_payment_token(call_sid, payment_sid, callback.payment_token or "")

    @staticmethod
    def _masked_value(callback: PaymentCallback, field: PaymentField) -> str:
        value = {
            "card_number": callback.payment_card_number,
            "security_code": callback.security_code,
            "expiration_date": callback.expiration_date,
        }[field]
        return value or MASK_PLACEHOLDERS[field]
