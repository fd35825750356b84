"""
Pytest configuration and fixtures
"""
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add backend directory to path for imports
backend_dir = Path(__file__).parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

from agent_payments.config import Settings
from agent_payments.services.payment_state_store import PaymentStateStore


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock) -> PaymentStateStore:
    """Empty store driven by the fake clock"""
    return PaymentStateStore(clock=clock)


@pytest.fixture
def settings() -> Settings:
    """Deployment settings isolated from the environment and .env"""
    return Settings(
        _env_file=None,
        twilio_account_sid="ACtest",
        twilio_api_key="SKtest",
        twilio_api_secret="secret",
        twilio_auth_token=None,
        callback_public_url="https://callbacks.example.com",
    )
