"""Twilio SMS gateway over its REST API."""

from __future__ import annotations

import logging

import requests

from daily_quiz.config import SMS_TIMEOUT_SECONDS, SmsCredentials

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"


class SmsDeliveryError(RuntimeError):
    """The gateway refused the message or could not be reached."""


class TwilioGateway:
    def __init__(
        self,
        credentials: SmsCredentials,
        timeout: float = SMS_TIMEOUT_SECONDS,
    ) -> None:
        self.credentials = credentials
        self.timeout = timeout

    @property
    def messages_url(self) -> str:
        return f"{TWILIO_API_BASE}/Accounts/{self.credentials.account_sid}/Messages.json"

    def send(self, to: str, body: str) -> str:
        """Send one SMS and return the gateway's message id."""
        try:
            response = requests.post(
                self.messages_url,
                data={"To": to, "From": self.credentials.from_number, "Body": body},
                auth=(self.credentials.account_sid, self.credentials.auth_token),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise SmsDeliveryError(f"SMS gateway unreachable: {e}") from e

        if not response.ok:
            try:
                detail = response.json().get("message", response.text)
            except ValueError:
                detail = response.text
            raise SmsDeliveryError(
                f"SMS gateway rejected message ({response.status_code}): {detail}"
            )

        try:
            return response.json().get("sid", "")
        except ValueError:
            return ""
