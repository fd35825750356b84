"""
Models package for the payment capture server.
"""
from .payment_session import (
    CAPTURE_TYPE_TO_FIELD,
    FIELD_LABELS,
    FIELD_ORDER,
    CaptureType,
    PaymentField,
    PaymentFieldState,
    PaymentSessionState,
    SessionStatus,
    session_key,
)
from .callbacks import PaymentCallback, PaymentInstance

__all__ = [
    "CAPTURE_TYPE_TO_FIELD",
    "FIELD_LABELS",
    "FIELD_ORDER",
    "CaptureType",
    "PaymentField",
    "PaymentFieldState",
    "PaymentSessionState",
    "SessionStatus",
    "session_key",
    "PaymentCallback",
    "PaymentInstance",
]
