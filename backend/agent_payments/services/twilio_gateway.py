"""
Twilio Payments Gateway

Async client for the Agent Assisted Pay REST API (the Payments
subresource of a live Call).

Every mutating request carries a fresh idempotency key (call SID + epoch
milliseconds) and a status callback URL whose lastCall query parameter
tells the callback receiver which operation the notification belongs to.

Failure policy: network errors, timeouts, non-2xx responses, malformed
bodies and precondition failures are logged and returned as None. Nothing
raises out of the public methods.
"""
import logging
import time
from typing import Any, Callable, Dict, Optional

import httpx
from pydantic import ValidationError

from ..config import Settings
from ..exceptions import (
    AgentPaymentError,
    CallNotInProgressError,
    CallbackReceiverNotReadyError,
    VendorRequestError,
)
from ..models.callbacks import PaymentInstance
from ..models.payment_session import CAPTURE_TYPE_TO_FIELD, CaptureType

logger = logging.getLogger(__name__)

API_VERSION = "2010-04-01"


class TwilioPaymentGateway:
    """
    Outbound vendor client for starting, updating and finishing capture.

    The callback URL is unknown until the callback receiver is listening,
    so the gateway refuses to issue requests until set_status_callback()
    has been called.
    """

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.time
    ):
        """
        Args:
            settings: Deployment settings (credentials, currency, connector)
            transport: Optional httpx transport (tests use httpx.MockTransport)
            clock: Epoch seconds source for idempotency keys
        """
        self._settings = settings
        self._clock = clock
        self._status_callback: Optional[str] = None
        self._client = httpx.AsyncClient(
            base_url=settings.twilio_api_base_url,
            auth=(settings.twilio_api_key, settings.twilio_api_secret),
            timeout=settings.vendor_timeout_seconds,
            transport=transport,
        )

    @property
    def ready(self) -> bool:
        return self._status_callback is not None

    def set_status_callback(self, url: str) -> None:
        """Publish the callback receiver's public URL; enables requests."""
        self._status_callback = url.rstrip("/") + "/"
        logger.info(f"Payment status callbacks will be sent to {self._status_callback}")

    async def aclose(self) -> None:
        await self._client.aclose()

    # ========================================================================
    # Capture Operations
    # ========================================================================

    async def start_capture(self, call_sid: str) -> Optional[PaymentInstance]:
        """
        Create a payment capture session on a live call.

        Tokenization mode, currency and connector come from deployment
        settings. Security code is required, postal code is not.

        Returns:
            Created Payment resource, or None on any failure
        """
        try:
            data = {
                "IdempotencyKey": self._idempotency_key(call_sid),
                "StatusCallback": self._callback_url("startCapture"),
                "TokenType": self._settings.token_type,
                "Currency": self._settings.currency,
                "PaymentConnector": self._settings.payment_connector,
                "SecurityCode": "true",
                "PostalCode": "false",
            }
            body = await self._request("POST", self._payments_path(call_sid), data=data)
            payment = self._parse_payment(body)
            logger.info(f"Started payment capture {payment.sid} for call {call_sid}")
            return payment
        except AgentPaymentError as e:
            logger.error(f"Error with startCapture for call {call_sid}: {e.message}", extra={"details": e.details})
            return None

    async def update_capture_field(
        self,
        call_sid: str,
        payment_sid: str,
        capture: CaptureType
    ) -> Optional[PaymentInstance]:
        """
        Ask the vendor to collect exactly one card field.

        The call must be in-progress; otherwise no Payments request is made.

        Raises:
            ValueError: If capture is not a known capture type
        """
        if capture not in CAPTURE_TYPE_TO_FIELD:
            raise ValueError(f"Unknown capture type: {capture}")

        try:
            call_status = await self._get_call_status(call_sid)
            if call_status != "in-progress":
                raise CallNotInProgressError(
                    f"Call not in progress for {call_sid}",
                    {"call_sid": call_sid, "call_status": call_status}
                )

            data = {
                "Capture": capture,
                "IdempotencyKey": self._idempotency_key(call_sid),
                "StatusCallback": self._callback_url(capture),
            }
            body = await self._request("POST", self._payments_path(call_sid, payment_sid), data=data)
            payment = self._parse_payment(body)
            logger.info(f"Requested capture of {capture} for payment {payment_sid}")
            return payment
        except AgentPaymentError as e:
            logger.error(f"Error capturing {capture} for call {call_sid}: {e.message}", extra={"details": e.details})
            return None

    async def finish_capture(self, call_sid: str, payment_sid: str) -> Optional[PaymentInstance]:
        """Mark the capture session complete so the vendor tokenizes the card."""
        try:
            data = {
                "IdempotencyKey": self._idempotency_key(call_sid),
                "Status": "complete",
                "StatusCallback": self._callback_url("finishCapture"),
            }
            body = await self._request("POST", self._payments_path(call_sid, payment_sid), data=data)
            payment = self._parse_payment(body)
            logger.info(f"Requested completion of payment {payment_sid}")
            return payment
        except AgentPaymentError as e:
            logger.error(f"Error with finishCapture for call {call_sid}: {e.message}", extra={"details": e.details})
            return None

    async def fetch_call_status(self, call_sid: str) -> Optional[str]:
        """
        Fetch the current status of a call (queued, ringing, in-progress, ...).

        Returns:
            Call status string, or None if it could not be fetched
        """
        try:
            return await self._get_call_status(call_sid)
        except AgentPaymentError as e:
            logger.error(f"Error fetching status of call {call_sid}: {e.message}", extra={"details": e.details})
            return None

    # ========================================================================
    # Internals
    # ========================================================================

    def _idempotency_key(self, call_sid: str) -> str:
        return f"{call_sid}{int(self._clock() * 1000)}"

    def _callback_url(self, last_call: str) -> str:
        if self._status_callback is None:
            raise CallbackReceiverNotReadyError(
                "Callback receiver is not ready; refusing to call the vendor"
            )
        return str(httpx.URL(self._status_callback).copy_add_param("lastCall", last_call))

    def _calls_path(self, call_sid: str) -> str:
        return f"/{API_VERSION}/Accounts/{self._settings.twilio_account_sid}/Calls/{call_sid}"

    def _payments_path(self, call_sid: str, payment_sid: Optional[str] = None) -> str:
        path = f"{self._calls_path(call_sid)}/Payments"
        if payment_sid:
            path = f"{path}/{payment_sid}"
        return f"{path}.json"

    async def _get_call_status(self, call_sid: str) -> Optional[str]:
        body = await self._request("GET", f"{self._calls_path(call_sid)}.json")
        return body.get("status")

    async def _request(
        self,
        method: str,
        path: str,
        data: Optional[Dict[str, str]] = None
    ) -> Dict[str, Any]:
        """
        Issue one REST call and return the decoded JSON body.

        Raises:
            VendorRequestError: On transport failure, timeout, non-2xx status
                or a body that is not a JSON object
        """
        try:
            response = await self._client.request(method, path, data=data)
        except httpx.TimeoutException as e:
            raise VendorRequestError(f"Timed out calling {method} {path}", {"error": str(e)})
        except httpx.HTTPError as e:
            raise VendorRequestError(f"Request {method} {path} failed: {e}", {"error": str(e)})

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.is_error:
            details = body if isinstance(body, dict) else {"body": response.text}
            message = details.get("message") or response.reason_phrase
            raise VendorRequestError(
                f"HTTP {response.status_code} from {method} {path}: {message}",
                {"status_code": response.status_code, **details}
            )

        if not isinstance(body, dict):
            raise VendorRequestError(f"Unexpected response body from {method} {path}")

        return body

    @staticmethod
    def _parse_payment(body: Dict[str, Any]) -> PaymentInstance:
        try:
            return PaymentInstance.model_validate(body)
        except ValidationError as e:
            raise VendorRequestError("Malformed Payment resource in vendor response", {"error": str(e)})
