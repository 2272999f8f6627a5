"""Environment-driven settings shared by the service modules."""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel

# Document store location (override with DAILY_QUIZ_DATA_DIR env var)
DATA_DIR = Path(
    os.environ.get("DAILY_QUIZ_DATA_DIR", Path(__file__).parent.parent.parent / "data")
)

API_KEY = os.getenv("API_KEY")
PORT = int(os.environ.get("PORT", 8000))

QUIZ_LOOKUP_TIMEOUT_SECONDS = float(os.environ.get("QUIZ_LOOKUP_TIMEOUT_SECONDS", 5.0))

# 0 = unlimited
OTP_MAX_ATTEMPTS = int(os.environ.get("OTP_MAX_ATTEMPTS", 0))
OTP_RESEND_COOLDOWN_SECONDS = int(os.environ.get("OTP_RESEND_COOLDOWN_SECONDS", 0))

DISPATCH_MAX_ATTEMPTS = int(os.environ.get("DISPATCH_MAX_ATTEMPTS", 3))

# In-memory quiz sessions are dropped after this long, oldest first past the cap (0 = no cap)
SESSION_TTL_SECONDS = int(os.environ.get("SESSION_TTL_SECONDS", 3600))
SESSION_MAX_ACTIVE = int(os.environ.get("SESSION_MAX_ACTIVE", 10000))

SMS_DEFAULT_COUNTRY_CODE = os.environ.get("SMS_DEFAULT_COUNTRY_CODE", "+91")
SMS_TIMEOUT_SECONDS = float(os.environ.get("SMS_TIMEOUT_SECONDS", 10.0))


class SmsCredentials(BaseModel):
    """Twilio account settings supplied out-of-band."""

    account_sid: str = ""
    auth_token: str = ""
    from_number: str = ""

    @classmethod
    def from_env(cls) -> SmsCredentials:
        return cls(
            account_sid=os.environ.get("TWILIO_SID", "").strip(),
            auth_token=os.environ.get("TWILIO_TOKEN", "").strip(),
            from_number=os.environ.get("TWILIO_FROM_NUMBER", "").strip(),
        )

    def missing(self) -> list[str]:
        """Names of the environment variables that are not set."""
        names = []
        if not self.account_sid:
            names.append("TWILIO_SID")
        if not self.auth_token:
            names.append("TWILIO_TOKEN")
        if not self.from_number:
            names.append("TWILIO_FROM_NUMBER")
        return names
