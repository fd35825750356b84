"""
Payment Capture Prompts

Prompt templates the orchestrating client can request by name.
"""
import logging

from ..services.payment_state_store import PaymentStateStore
from .narration import render_payment_prompt, render_start_capture_prompt

logger = logging.getLogger(__name__)


class PaymentPrompts:
    """StartCapture and PaymentNextStep prompts bound to a store."""

    def __init__(self, store: PaymentStateStore):
        self._store = store

    def start_capture(self, call_sid: str) -> str:
        if not call_sid:
            raise ValueError("call_sid parameter is required")
        return render_start_capture_prompt(call_sid)

    def next_step(self, call_sid: str, payment_sid: str) -> str:
        """
        Narration for the current state of a session.

        Before the startCapture callback has created the session, the
        start guidance is returned with a note to wait for it.
        """
        session = self._store.get_session(call_sid, payment_sid)
        if session is None:
            logger.info(f"No payment session yet for {call_sid}:{payment_sid}")
            return (
                f"No payment session is recorded yet for payment {payment_sid}. "
                "If 'startPaymentCapture' was just called, wait a moment and "
                "read 'getPaymentStatus' again.\n\n"
                + render_start_capture_prompt(call_sid)
            )
        return render_payment_prompt(session)
