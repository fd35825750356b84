"""
Payment Capture Exception Hierarchy

Stable error codes for the capture workflow. All codes use the
payments: prefix so callers can match on them without parsing messages.
"""
from typing import Optional, Dict, Any


class AgentPaymentError(Exception):
    """
    Base exception for all payment capture errors.

    Components raise these internally; they are converted to None results
    or error envelopes at the boundary nearest their origin.
    """

    def __init__(
        self,
        error_code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        self.error_code = error_code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to API error response format."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details
        }


class VendorRequestError(AgentPaymentError):
    """
    Outbound vendor call failed.

    Examples:
    - Network error or timeout
    - Non-2xx response (validation, auth, call not found)
    - Response body is not the expected JSON
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("payments:vendor:request_failed", message, details)


class CallNotInProgressError(AgentPaymentError):
    """
    The call is not active, so no field can be captured on it.

    Example:
    - Caller hung up before the card number was requested
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("payments:call:not_in_progress", message, details)


class CallbackReceiverNotReadyError(AgentPaymentError):
    """Gateway used before the callback receiver published its URL."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("payments:callback:not_ready", message, details)


class SessionNotFoundError(AgentPaymentError):
    """
    No payment session for the given (call, payment) pair.

    Examples:
    - Status requested before the startCapture callback arrived
    - Session evicted after its TTL
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("payments:session:not_found", message, details)


class InvalidCallbackSignatureError(AgentPaymentError):
    """Inbound webhook failed X-Twilio-Signature verification."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("payments:callback:invalid_signature", message, details)
