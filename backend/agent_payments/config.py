"""
Agent Payments Configuration Module

Loads environment variables for the payment capture server. Connector
identity, currency and tokenization mode are fixed per deployment and are
never per-call parameters.
"""
from functools import lru_cache
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Credential Notes:
    - API Key + Secret are used for REST authentication (not the Auth Token)
    - The Auth Token is only needed to validate inbound webhook signatures
    """

    # Twilio REST credentials (overridable from the command line)
    twilio_account_sid: str = ""
    twilio_api_key: str = ""
    twilio_api_secret: str = ""
    twilio_auth_token: Optional[str] = None
    twilio_api_base_url: str = "https://api.twilio.com"

    # Payment capture defaults
    token_type: Literal["reusable", "one-time"] = "reusable"
    currency: str = "usd"
    payment_connector: str = "Default"

    # Callback receiver
    callback_host: str = "0.0.0.0"
    callback_port: int = 4000
    callback_public_url: Optional[str] = None

    # Outbound calls
    vendor_timeout_seconds: float = 10.0

    # Session eviction
    session_ttl_minutes: int = 60
    session_prune_interval_minutes: int = 5

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def status_callback_url(self) -> str:
        """Public URL the vendor posts status callbacks to."""
        if self.callback_public_url:
            return self.callback_public_url.rstrip("/")
        return f"http://localhost:{self.callback_port}"

    @property
    def has_credentials(self) -> bool:
        return bool(self.twilio_account_sid and self.twilio_api_key and self.twilio_api_secret)


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings, loaded once."""
    return Settings()
