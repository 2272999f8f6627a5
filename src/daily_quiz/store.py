"""JSON file-based document store: one directory per collection."""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from daily_quiz.config import DATA_DIR
from daily_quiz.events import EventQueue, RecordCreated

logger = logging.getLogger(__name__)

QUIZ_COLLECTION = "daily-quiz"
OTP_COLLECTION = "quiz-otp-requests"
LEAD_COLLECTION = "quiz-leads"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime | None:
    """Read a stored timestamp; naive values are taken as local time."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    elif isinstance(value, dict) and isinstance(value.get("seconds"), (int, float)):
        return datetime.fromtimestamp(value["seconds"], tz=timezone.utc)
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


class DocumentStore:
    """Collections of JSON documents with create/update and range queries.

    Every successful ``create`` is published to ``events`` (when given) so
    that consumers can react to new records without polling.
    """

    def __init__(
        self,
        directory: Path = DATA_DIR,
        events: EventQueue | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self.events = events
        self.clock = clock

    def _collection_dir(self, collection: str) -> Path:
        path = self.directory / collection
        path.mkdir(parents=True, exist_ok=True)
        return path

    def _path(self, collection: str, doc_id: str) -> Path:
        return self._collection_dir(collection) / f"{doc_id}.json"

    def _write(self, path: Path, data: dict[str, Any]) -> None:
        tmp = path.with_suffix(".tmp")
        tmp.write_text(json.dumps(data, indent=2, ensure_ascii=False, default=str))
        tmp.replace(path)

    def create(
        self,
        collection: str,
        document: dict[str, Any],
        *,
        timestamp_field: str | None = None,
        doc_id: str | None = None,
    ) -> str:
        doc_id = doc_id or uuid.uuid4().hex[:12]
        data = dict(document)
        data.pop("id", None)
        if timestamp_field:
            data[timestamp_field] = self.clock().isoformat()
        self._write(self._path(collection, doc_id), data)
        logger.debug("Created %s/%s", collection, doc_id)
        if self.events is not None:
            self.events.publish(
                RecordCreated(collection=collection, doc_id=doc_id, data=data)
            )
        return doc_id

    def get(self, collection: str, doc_id: str) -> dict[str, Any]:
        path = self._path(collection, doc_id)
        if not path.exists():
            raise FileNotFoundError(f"Document not found: {collection}/{doc_id}")
        data = json.loads(path.read_text())
        data["id"] = doc_id
        return data

    def update(
        self, collection: str, doc_id: str, fields: dict[str, Any]
    ) -> dict[str, Any]:
        """Merge ``fields`` into an existing document."""
        data = self.get(collection, doc_id)
        data.update(fields)
        data.pop("id", None)
        self._write(self._path(collection, doc_id), data)
        data["id"] = doc_id
        return data

    def list_all(self, collection: str) -> list[dict[str, Any]]:
        documents = []
        for p in sorted(self._collection_dir(collection).glob("*.json")):
            try:
                data = json.loads(p.read_text())
            except json.JSONDecodeError:
                logger.warning("Skipping unreadable document %s", p)
                continue
            if not isinstance(data, dict):
                continue
            data["id"] = p.stem
            documents.append(data)
        return documents

    def query_range(
        self,
        collection: str,
        field: str,
        start: datetime,
        end: datetime,
        *,
        descending: bool = True,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Documents whose timestamp ``field`` lies in ``[start, end)``."""
        matches = []
        for data in self.list_all(collection):
            stamp = parse_timestamp(data.get(field))
            if stamp is not None and start <= stamp < end:
                matches.append((stamp, data))
        matches.sort(key=lambda pair: pair[0], reverse=descending)
        documents = [data for _, data in matches]
        if limit is not None:
            documents = documents[:limit]
        return documents
