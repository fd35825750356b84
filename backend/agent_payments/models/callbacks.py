"""
Vendor Payload Models

Shapes of what Twilio sends back: the REST Payment resource returned by
create/update calls, and the status callback posted to our webhook.
"""
from typing import Any, Dict, Optional

from pydantic import AliasChoices, BaseModel, Field


class PaymentInstance(BaseModel):
    """Payment resource returned by the Payments REST API."""
    sid: str
    call_sid: Optional[str] = None
    account_sid: Optional[str] = None
    date_created: Optional[str] = None
    date_updated: Optional[str] = None
    uri: Optional[str] = None
    # Only present on some responses (e.g. completion with tokenization)
    payment_token: Optional[str] = None

    model_config = {
        "extra": "ignore"
    }


class PaymentCallback(BaseModel):
    """
    Status callback body posted by the vendor.

    Field names arrive in PascalCase as form parameters; both Sid and
    PaymentSid are accepted for the payment identifier.
    """
    call_sid: Optional[str] = Field(None, alias="CallSid")
    payment_sid: Optional[str] = Field(
        None, validation_alias=AliasChoices("PaymentSid", "Sid")
    )
    result: Optional[str] = Field(None, alias="Result")
    error_message: Optional[str] = Field(None, alias="ErrorMessage")
    capture: Optional[str] = Field(None, alias="Capture")
    required: Optional[str] = Field(None, alias="Required")
    partial_result: Optional[bool] = Field(None, alias="PartialResult")
    payment_card_number: Optional[str] = Field(None, alias="PaymentCardNumber")
    payment_card_type: Optional[str] = Field(None, alias="PaymentCardType")
    security_code: Optional[str] = Field(
        None, validation_alias=AliasChoices("SecurityCode", "PaymentSecurityCode")
    )
    expiration_date: Optional[str] = Field(
        None, validation_alias=AliasChoices("ExpirationDate", "PaymentExpirationDate")
    )
    payment_confirmation_code: Optional[str] = Field(None, alias="PaymentConfirmationCode")
    profile_id: Optional[str] = Field(None, alias="ProfileId")
    payment_token: Optional[str] = Field(None, alias="PaymentToken")
    payment_method: Optional[str] = Field(None, alias="PaymentMethod")

    model_config = {
        "extra": "ignore",
        "populate_by_name": True,
    }

    @property
    def is_error(self) -> bool:
        return self.result == "error"

    def merged_with(self, newer: "PaymentCallback") -> "PaymentCallback":
        """Overlay the non-empty values of a newer callback onto this one."""
        update = {
            name: value
            for name, value in newer.model_dump().items()
            if value not in (None, "")
        }
        return self.model_copy(update=update)

    def to_summary(self) -> Dict[str, Any]:
        """Simplified view exposed to the orchestrating caller."""
        return {
            "paymentSid": self.payment_sid,
            "paymentCardNumber": self.payment_card_number,
            "paymentCardType": self.payment_card_type,
            "securityCode": self.security_code,
            "expirationDate": self.expiration_date,
            "paymentConfirmationCode": self.payment_confirmation_code,
            "result": self.result,
            "profileId": self.profile_id,
            "paymentToken": self.payment_token,
            "paymentMethod": self.payment_method,
        }
