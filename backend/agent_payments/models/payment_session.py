"""
Payment Session Models

State of one in-flight card capture, keyed by (call SID, payment SID).
One PaymentFieldState is tracked per captured card field.
"""
from datetime import datetime, timezone
from typing import Dict, Literal, Optional, Tuple

from pydantic import BaseModel, Field, model_validator


SessionStatus = Literal["initialized", "in-progress", "complete", "error"]
PaymentField = Literal["card_number", "security_code", "expiration_date"]
CaptureType = Literal["payment-card-number", "security-code", "expiration-date"]

# Canonical capture order used by the narration
FIELD_ORDER: Tuple[PaymentField, ...] = ("card_number", "security_code", "expiration_date")

CAPTURE_TYPE_TO_FIELD: Dict[str, PaymentField] = {
    "payment-card-number": "card_number",
    "security-code": "security_code",
    "expiration-date": "expiration_date",
}

FIELD_LABELS: Dict[str, str] = {
    "card_number": "card number",
    "security_code": "security code",
    "expiration_date": "expiration date",
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PaymentFieldState(BaseModel):
    """
    Capture state of a single card field.

    attempts only ever grows; it is carried across resets so upstream
    retry limits can be enforced.
    """
    masked: str = ""
    complete: bool = False
    needs_reentry: bool = False
    reentry_reason: Optional[str] = None
    attempts: int = Field(0, ge=0)

    model_config = {
        "extra": "forbid"
    }

    @model_validator(mode="after")
    def reentry_clears_complete(self):
        """A field waiting for re-entry is never complete."""
        if self.needs_reentry:
            self.complete = False
        return self


class PaymentSessionState(BaseModel):
    """
    Capture session for one (call, payment) pair.

    Status transitions:
    - initialized -> in-progress: vendor confirmed the session start
    - * -> complete: payment token received (only via set_payment_token)
    - * -> error: vendor reported a failure when finishing
    """
    call_sid: str
    payment_sid: str
    status: SessionStatus = "initialized"
    error_message: Optional[str] = None
    card_number: PaymentFieldState = Field(default_factory=PaymentFieldState)
    security_code: PaymentFieldState = Field(default_factory=PaymentFieldState)
    expiration_date: PaymentFieldState = Field(default_factory=PaymentFieldState)
    token: Optional[str] = None
    last_updated: datetime = Field(default_factory=utcnow)

    model_config = {
        "extra": "forbid"
    }

    @property
    def session_key(self) -> str:
        return session_key(self.call_sid, self.payment_sid)

    def field(self, name: PaymentField) -> PaymentFieldState:
        """Look up a field state by name."""
        if name not in FIELD_ORDER:
            raise ValueError(f"Unknown payment field: {name}")
        return getattr(self, name)

    def first_field_needing_reentry(self) -> Optional[PaymentField]:
        for name in FIELD_ORDER:
            if self.field(name).needs_reentry:
                return name
        return None


def session_key(call_sid: str, payment_sid: str) -> str:
    """Composite store key for a (call, payment) pair."""
    return f"{call_sid}:{payment_sid}"
