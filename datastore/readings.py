from __future__ import annotations

import logging
from bisect import insort
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import List, Optional

from pydantic import ValidationError

from app.schemas import Reading
from datastore.files import read_json, write_json_atomic
from settings import get_settings

logger = logging.getLogger(__name__)

DEFAULT_RETENTION = timedelta(days=90)


class ReadingStore:
    """Timestamp-keyed reading history with a rolling retention window.

    Each mutation builds a complete new history under the lock and swaps it
    in only after it has been persisted, so readers never see a partial trim.
    """

    def __init__(
        self,
        persistence_path: Optional[Path] = None,
        retention: timedelta = DEFAULT_RETENTION,
    ) -> None:
        self.persistence_path = persistence_path
        self.retention = retention
        self._readings: List[Reading] = []
        self._lock = Lock()
        if persistence_path:
            self._load_from_disk()

    def merge(self, reading: Reading, now: Optional[datetime] = None) -> bool:
        """Insert ``reading`` unless its timestamp is already stored, then trim.

        Returns True when the reading was inserted.
        """
        cutoff = self._cutoff(now)
        with self._lock:
            inserted = all(existing.timestamp != reading.timestamp for existing in self._readings)
            history = list(self._readings)
            if inserted:
                insort(history, reading, key=lambda item: item.timestamp)
            history = [item for item in history if item.timestamp >= cutoff]
            dropped = len(self._readings) + int(inserted) - len(history)
            if inserted or dropped:
                self._persist(history)
            self._readings = history
            count = len(history)

        if inserted:
            logger.debug(
                "Merged reading",
                extra={"timestamp": reading.timestamp.isoformat(), "reading_count": count},
            )
        if dropped:
            logger.info("Dropped %d reading(s) past retention", dropped, extra={"reading_count": count})
        return inserted and reading.timestamp >= cutoff

    def list(self) -> List[Reading]:
        """Return the history, oldest first."""
        with self._lock:
            return list(self._readings)

    def latest(self) -> Optional[Reading]:
        with self._lock:
            return self._readings[-1] if self._readings else None

    def count(self) -> int:
        with self._lock:
            return len(self._readings)

    def clear(self) -> None:
        with self._lock:
            self._persist([])
            self._readings = []
        logger.info("Cleared reading history")

    def _cutoff(self, now: Optional[datetime] = None) -> datetime:
        if now is None:
            now = datetime.now(timezone.utc)
        elif now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now - self.retention

    def _persist(self, history: List[Reading]) -> None:
        if not self.persistence_path:
            return
        payload = [item.model_dump(mode="json") for item in history]
        write_json_atomic(self.persistence_path, payload)

    def _load_from_disk(self) -> None:
        assert self.persistence_path is not None
        data = read_json(self.persistence_path, default=[])
        if not isinstance(data, list):
            data = []

        by_timestamp: dict[datetime, Reading] = {}
        for payload in data:
            try:
                reading = Reading.model_validate(payload)
            except ValidationError:
                logger.warning("Skipping unreadable stored reading", extra={"reason": "invalid"})
                continue
            by_timestamp.setdefault(reading.timestamp, reading)
        cutoff = self._cutoff()
        kept = [item for item in by_timestamp.values() if item.timestamp >= cutoff]
        if len(kept) < len(by_timestamp):
            logger.info(
                "Skipped %d stored reading(s) past retention",
                len(by_timestamp) - len(kept),
                extra={"reading_count": len(kept)},
            )
        self._readings = sorted(kept, key=lambda item: item.timestamp)


@lru_cache
def build_default_reading_store(path: Optional[str] = None) -> ReadingStore:
    settings = get_settings()
    store_path = settings.readings_path if path is None else path
    return ReadingStore(
        persistence_path=Path(store_path) if store_path else None,
        retention=timedelta(days=settings.retention_days),
    )
