"""Sends the SMS for each newly created OTP request record.

Runs as a consumer of the store's record-created messages. It owns no
state: read the new record, send one SMS, stamp ``sentAt``/``expireAt``
back onto the record. A record that already has ``sentAt`` is skipped, so
redelivery of the same message does not text the user twice. When the SMS
cannot go out at all the record gets ``failedAt``/``deliveryError`` instead,
which is how the visitor learns to ask for a new code.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Protocol

from daily_quiz.config import SMS_DEFAULT_COUNTRY_CODE, SmsCredentials
from daily_quiz.events import RecordCreated
from daily_quiz.otp import OTP_VALIDITY, mask_mobile
from daily_quiz.sms import SmsDeliveryError, TwilioGateway
from daily_quiz.store import OTP_COLLECTION, DocumentStore, parse_timestamp, utcnow

logger = logging.getLogger(__name__)

MESSAGE_TEMPLATE = "Your CivicCentre IAS OTP is {code}. It expires in 5 minutes."


class SmsSender(Protocol):
    def send(self, to: str, body: str) -> str: ...


def format_destination(mobile: str, country_code: str = SMS_DEFAULT_COUNTRY_CODE) -> str:
    return mobile if mobile.startswith("+") else f"{country_code}{mobile}"


class NotificationDispatcher:
    def __init__(
        self,
        store: DocumentStore,
        credentials: SmsCredentials | None = None,
        gateway: SmsSender | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.credentials = credentials or SmsCredentials.from_env()
        self._gateway = gateway
        self.clock = clock

    def mark_failed(self, doc_id: str, reason: str) -> None:
        try:
            self.store.update(
                OTP_COLLECTION,
                doc_id,
                {"failedAt": self.clock().isoformat(), "deliveryError": reason},
            )
        except OSError as e:
            logger.error("Could not record delivery failure for %s: %s", doc_id, e)

    def give_up(self, message: RecordCreated, error: Exception) -> None:
        """Called by the queue once redelivery is exhausted."""
        if message.collection != OTP_COLLECTION:
            return
        self.mark_failed(message.doc_id, str(error) or type(error).__name__)

    def _get_gateway(self) -> SmsSender | None:
        missing = self.credentials.missing()
        if missing:
            logger.error(
                "SMS credentials not configured (%s). OTPs cannot be sent.",
                ", ".join(missing),
            )
            return None
        if self._gateway is None:
            self._gateway = TwilioGateway(self.credentials)
        return self._gateway

    def handle(self, message: RecordCreated) -> None:
        """Process one record-created message; other collections are ignored."""
        if message.collection != OTP_COLLECTION:
            return
        self.dispatch(message.doc_id)

    def dispatch(self, doc_id: str) -> bool:
        """Send the code for one OTP request. Returns True if an SMS went out.

        Raises SmsDeliveryError when the gateway rejects the message so
        that the queue's redelivery policy applies.
        """
        try:
            payload = self.store.get(OTP_COLLECTION, doc_id)
        except FileNotFoundError:
            logger.warning("OTP request %s fired with no payload.", doc_id)
            return False

        if payload.get("sentAt"):
            logger.info("OTP request %s already sent, skipping", doc_id)
            return False

        code = str(payload.get("code") or payload.get("otp") or "").strip()
        mobile = str(payload.get("mobileNumber") or payload.get("mobile") or "").strip()
        if not code or not mobile:
            logger.warning("OTP request %s missing mobile or code fields.", doc_id)
            self.mark_failed(doc_id, "missing mobile or code")
            return False

        gateway = self._get_gateway()
        if gateway is None:
            self.mark_failed(doc_id, "SMS credentials not configured")
            return False

        to = format_destination(mobile)
        try:
            sid = gateway.send(to, MESSAGE_TEMPLATE.format(code=code))
        except SmsDeliveryError as e:
            logger.error("Failed to send OTP %s to %s: %s", doc_id, mask_mobile(to), e)
            raise

        now = self.clock()
        created = parse_timestamp(payload.get("createdAt"))
        expire_at = (created or now) + OTP_VALIDITY
        self.store.update(
            OTP_COLLECTION,
            doc_id,
            {"sentAt": now.isoformat(), "expireAt": expire_at.isoformat()},
        )
        logger.info("OTP sent successfully to %s (%s)", mask_mobile(to), sid)
        return True
