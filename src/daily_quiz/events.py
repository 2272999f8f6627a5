"""Record-created messages passed from the document store to its consumers.

The store publishes one ``RecordCreated`` per successful ``create``; a
consumer (the OTP dispatcher) handles it either synchronously via
``drain`` or on a background worker thread via ``start``. A handler that
raises gets the message redelivered until ``max_attempts`` is reached,
which gives consumers at-least-once delivery. A message that runs out of
attempts is passed to the optional ``on_give_up`` callback.
"""

from __future__ import annotations

import logging
import queue
import threading
from typing import Any, Callable

from pydantic import BaseModel, Field

from daily_quiz.config import DISPATCH_MAX_ATTEMPTS

logger = logging.getLogger(__name__)


class RecordCreated(BaseModel):
    collection: str
    doc_id: str
    data: dict[str, Any] = Field(default_factory=dict)
    attempt: int = 1


Handler = Callable[[RecordCreated], None]
GiveUpHandler = Callable[[RecordCreated, Exception], None]


class EventQueue:
    """In-process FIFO of record-created messages."""

    def __init__(self, max_attempts: int = DISPATCH_MAX_ATTEMPTS) -> None:
        self.max_attempts = max(1, max_attempts)
        self._queue: queue.Queue[RecordCreated | None] = queue.Queue()
        self._worker: threading.Thread | None = None

    def publish(self, message: RecordCreated) -> None:
        self._queue.put(message)

    def pending(self) -> int:
        return self._queue.qsize()

    def _deliver(
        self,
        message: RecordCreated,
        handler: Handler,
        on_give_up: GiveUpHandler | None = None,
    ) -> None:
        try:
            handler(message)
        except Exception as e:
            if message.attempt >= self.max_attempts:
                logger.error(
                    "Giving up on %s/%s after %d attempts: %s",
                    message.collection,
                    message.doc_id,
                    message.attempt,
                    e,
                )
                if on_give_up is not None:
                    try:
                        on_give_up(message, e)
                    except Exception:
                        logger.exception(
                            "Give-up handler failed for %s/%s",
                            message.collection,
                            message.doc_id,
                        )
                return
            logger.warning(
                "Handler failed for %s/%s (attempt %d), requeueing: %s",
                message.collection,
                message.doc_id,
                message.attempt,
                e,
            )
            self.publish(message.model_copy(update={"attempt": message.attempt + 1}))

    def drain(self, handler: Handler, on_give_up: GiveUpHandler | None = None) -> int:
        """Handle every queued message on the calling thread.

        Redeliveries queued while draining are handled too. Returns the
        number of deliveries made.
        """
        delivered = 0
        while True:
            try:
                message = self._queue.get_nowait()
            except queue.Empty:
                return delivered
            if message is None:
                continue
            self._deliver(message, handler, on_give_up)
            delivered += 1

    def start(self, handler: Handler, on_give_up: GiveUpHandler | None = None) -> None:
        """Consume messages on a daemon worker thread until ``stop``."""
        if self._worker is not None and self._worker.is_alive():
            return

        def run() -> None:
            while True:
                message = self._queue.get()
                if message is None:
                    break
                self._deliver(message, handler, on_give_up)

        self._worker = threading.Thread(target=run, name="record-dispatch", daemon=True)
        self._worker.start()
        logger.info("Dispatch worker started")

    def stop(self, timeout: float | None = 5.0) -> None:
        if self._worker is None:
            return
        self._queue.put(None)
        self._worker.join(timeout)
        self._worker = None
        logger.info("Dispatch worker stopped")
