import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator

logger = logging.getLogger(__name__)


class TableLockManager:
    """
    Per-table locks so concurrent import jobs writing to the same target table
    insert one record at a time. Jobs for different tables never contend.

    Each record store owns its own manager, so two stores (or two test
    applications) never block each other.
    """

    def __init__(self):
        self._table_locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def get_lock(self, table_name: str) -> threading.Lock:
        with self._registry_lock:
            return self._table_locks.setdefault(table_name, threading.Lock())

    @contextmanager
    def acquire(self, table_name: str) -> Iterator[None]:
        """Hold the lock for ``table_name`` for the duration of the block."""
        with self.get_lock(table_name):
            logger.debug("Holding insert lock for table '%s'", table_name)
            yield
