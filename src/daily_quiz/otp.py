"""One-time codes that gate lead capture.

``request_code`` writes one OTP request record; creating that record is
what gets the SMS sent (see ``dispatcher``). ``verify_code`` compares the
user's input with the newest code held by this service instance, and
refuses it once the request has expired.

The service instance is the holder of the secret. The HTTP layer keeps one
per quiz session on the server, so the code never travels to the browser.
"""

from __future__ import annotations

import hmac
import logging
import random
import re
from datetime import datetime, timedelta
from typing import Any, Callable

from daily_quiz.config import OTP_MAX_ATTEMPTS, OTP_RESEND_COOLDOWN_SECONDS
from daily_quiz.quiz_models import DeliveryStatus, OtpRequest
from daily_quiz.store import OTP_COLLECTION, DocumentStore, parse_timestamp, utcnow

logger = logging.getLogger(__name__)

OTP_VALIDITY = timedelta(minutes=5)
CODE_MIN = 100000
CODE_MAX = 999999

_MOBILE_PATTERN = re.compile(r"[0-9]{10}")


def validate_mobile(mobile: Any) -> str:
    """Return the trimmed number, or raise ValueError unless it is 10 digits."""
    number = str(mobile or "").strip()
    if not _MOBILE_PATTERN.fullmatch(number):
        raise ValueError("Enter a valid 10-digit mobile number")
    return number


def mask_mobile(mobile: str) -> str:
    return "*" * max(0, len(mobile) - 4) + mobile[-4:]


class OtpChallengeService:
    def __init__(
        self,
        store: DocumentStore,
        clock: Callable[[], datetime] = utcnow,
        rng: random.Random | None = None,
        max_attempts: int = OTP_MAX_ATTEMPTS,
        resend_cooldown_seconds: int = OTP_RESEND_COOLDOWN_SECONDS,
    ) -> None:
        self.store = store
        self.clock = clock
        self.rng = rng or random.SystemRandom()
        self.max_attempts = max_attempts
        self.resend_cooldown = timedelta(seconds=resend_cooldown_seconds)
        self._request: OtpRequest | None = None
        self._attempts = 0
        self._verified = False

    @property
    def request(self) -> OtpRequest | None:
        return self._request

    @property
    def verified(self) -> bool:
        return self._verified

    @property
    def verified_mobile(self) -> str | None:
        if self._verified and self._request is not None:
            return self._request.mobile_number
        return None

    def generate_code(self) -> str:
        return str(self.rng.randint(CODE_MIN, CODE_MAX))

    def request_code(self, mobile_number: str, quiz_id: str | None) -> None:
        """Create a fresh OTP request; any earlier code stops being accepted.

        Returns once the record is written. Delivery happens afterwards,
        driven by the record creation.
        """
        mobile = validate_mobile(mobile_number)
        previous = self._request
        if previous is not None and self.resend_cooldown and previous.created_at:
            wait = previous.created_at + self.resend_cooldown - self.clock()
            if wait.total_seconds() > 0:
                raise ValueError(
                    f"Please wait {int(wait.total_seconds()) + 1}s before requesting a new code"
                )

        self._request = None
        self._attempts = 0
        self._verified = False

        pending = OtpRequest(
            mobile_number=mobile, code=self.generate_code(), quiz_id=quiz_id
        )
        doc_id = self.store.create(
            OTP_COLLECTION, pending.to_document(), timestamp_field="createdAt"
        )
        self._request = OtpRequest.model_validate(self.store.get(OTP_COLLECTION, doc_id))
        logger.info("OTP request %s created for %s", doc_id, mask_mobile(mobile))

    def expires_at(self) -> datetime | None:
        """Expiry of the current code: the dispatcher's stamp, else created + 5 min."""
        if self._request is None:
            return None
        created = self._request.created_at
        expire = None
        try:
            record = self.store.get(OTP_COLLECTION, self._request.id)
            expire = parse_timestamp(record.get("expireAt"))
            created = parse_timestamp(record.get("createdAt")) or created
        except OSError as e:
            logger.warning("Could not re-read OTP request %s: %s", self._request.id, e)
        if expire is not None:
            return expire
        if created is None:
            return None
        return created + OTP_VALIDITY

    def delivery_status(self) -> DeliveryStatus | None:
        """Where the SMS for the current code stands, read from its record."""
        if self._request is None:
            return None
        record = OtpRequest.model_validate(
            self.store.get(OTP_COLLECTION, self._request.id)
        )
        return record.delivery_status

    def verify_code(self, submitted_code: Any) -> bool:
        if self._request is None:
            return False
        if self.max_attempts and self._attempts >= self.max_attempts:
            logger.warning("OTP attempts exhausted for request %s", self._request.id)
            return False
        self._attempts += 1

        expiry = self.expires_at()
        if expiry is None or self.clock() > expiry:
            logger.info("OTP request %s has expired", self._request.id)
            return False

        code = str(submitted_code if submitted_code is not None else "").strip()
        matched = hmac.compare_digest(code.encode(), self._request.code.encode())
        if matched:
            self._verified = True
        return matched
