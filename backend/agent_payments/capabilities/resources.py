"""
Payment Status Resource

Read-only view of one capture session, polled by the orchestrating LLM
after every tool call to learn whether the last field was captured.
"""
import json
import logging
from typing import Any, Dict, Optional

from ..exceptions import SessionNotFoundError
from ..models.callbacks import PaymentCallback
from ..models.payment_session import FIELD_ORDER, PaymentSessionState
from ..services.payment_state_store import PaymentStateStore
from .narration import render_payment_prompt

logger = logging.getLogger(__name__)

PAYMENT_STATUS_URI = "payment://{call_sid}/{payment_sid}"


def build_payment_status(
    session: Optional[PaymentSessionState],
    snapshot: Optional[PaymentCallback]
) -> Dict[str, Any]:
    """
    Combine the vendor snapshot and session state into one document.

    The simplified vendor fields come from the latest callback; when no
    callback has arrived they fall back to what the session knows.
    """
    if snapshot is not None:
        status = snapshot.to_summary()
    else:
        status = {
            "paymentSid": session.payment_sid,
            "paymentCardNumber": session.card_number.masked or None,
            "paymentCardType": None,
            "securityCode": session.security_code.masked or None,
            "expirationDate": session.expiration_date.masked or None,
            "paymentConfirmationCode": None,
            "result": None,
            "profileId": None,
            "paymentToken": session.token,
            "paymentMethod": None,
        }

    if session is None:
        status["session"] = None
        status["nextStep"] = None
        return status

    status["session"] = {
        "callSid": session.call_sid,
        "paymentSid": session.payment_sid,
        "status": session.status,
        "errorMessage": session.error_message,
        "token": session.token,
        "lastUpdated": session.last_updated.isoformat(),
        "fields": {
            name: session.field(name).model_dump()
            for name in FIELD_ORDER
        },
    }
    status["nextStep"] = render_payment_prompt(session)
    return status


class PaymentStatusResource:
    """
    getPaymentStatus resource bound to a store.
    """

    def __init__(self, store: PaymentStateStore):
        self._store = store

    def read(self, call_sid: str, payment_sid: str) -> str:
        """
        Render the status document as JSON.

        Raises:
            SessionNotFoundError: If neither a session nor a callback
                snapshot exists for the pair
        """
        session = self._store.get_session(call_sid, payment_sid)
        snapshot = self._store.get_snapshot(call_sid, payment_sid)

        if session is None and snapshot is None:
            logger.warning(f"Payment status requested for unknown session {call_sid}:{payment_sid}")
            raise SessionNotFoundError(
                f"Payment session state not found for SID: {payment_sid}",
                {"call_sid": call_sid, "payment_sid": payment_sid}
            )

        return json.dumps(build_payment_status(session, snapshot), indent=2)
