"""
In-memory record store.

Holds ImageRecords keyed by id. Reads return a snapshot list, so a search
iterating over it is unaffected by concurrent puts and deletes; a search
racing a delete may or may not see the deleted record.
"""

import logging
import threading
from typing import Dict, Iterable, List, Optional

from .models import ImageRecord

logger = logging.getLogger(__name__)


class StoreError(RuntimeError):
    """Raised when a store operation cannot be completed."""


class RecordStore:
    """
    Thread-safe mapping of record id to ImageRecord.

    Any object exposing get_all() can be handed to SearchEngine instead;
    this implementation covers local, single-process use.
    """

    def __init__(self, records: Optional[Iterable[ImageRecord]] = None):
        self._records: Dict[str, ImageRecord] = {}
        self._lock = threading.Lock()
        for record in records or ():
            self.put(record)

    def get_all(self) -> List[ImageRecord]:
        with self._lock:
            return list(self._records.values())

    def get(self, record_id: str) -> Optional[ImageRecord]:
        with self._lock:
            return self._records.get(record_id)

    def put(self, record: ImageRecord) -> None:
        """
        Add a record.

        Raises:
            StoreError: If a record with the same id is already stored.
        """
        with self._lock:
            if record.id in self._records:
                raise StoreError(f"Record already exists: {record.id}")
            self._records[record.id] = record
        logger.debug(f"Stored record {record.id}")

    def delete(self, record_id: str) -> bool:
        """Remove a record. Returns False if it was not stored."""
        with self._lock:
            removed = self._records.pop(record_id, None)
        if removed is None:
            logger.warning(f"Delete of unknown record: {record_id}")
            return False
        return True

    def clear(self) -> int:
        """Remove every record. Returns how many were removed."""
        with self._lock:
            count = len(self._records)
            self._records.clear()
        logger.info(f"Cleared {count} records")
        return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, record_id: str) -> bool:
        with self._lock:
            return record_id in self._records
