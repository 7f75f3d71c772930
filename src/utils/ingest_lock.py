"""
Single-writer lock for the ingestion path.

Dedup batches and maintenance jobs read a snapshot of the stored listings and
then write based on it, so two of them must never overlap. Inside one process
a threading lock serialises them; on PostgreSQL a session-level advisory lock
held on a dedicated connection extends that across processes.
"""

import threading
import time
from typing import Optional

from sqlalchemy import Engine, text
from sqlalchemy.engine import Connection

from config.constants import INGEST_ADVISORY_LOCK_ID
from src.utils.logger import get_logger

logger = get_logger(__name__)

_PROCESS_LOCK = threading.Lock()
_POLL_INTERVAL_SECONDS = 0.5


class IngestLockTimeout(RuntimeError):
    """Raised when the ingestion lock could not be acquired in time."""


class IngestLock:
    """
    Context manager guarding a batch or maintenance job.

    Usage:
        with IngestLock(session.get_bind(), timeout_seconds=60, holder="stale-sweep"):
            ...  # read a snapshot, write, commit
    """

    def __init__(
        self,
        engine: Engine,
        timeout_seconds: float = 60.0,
        holder: str = "ingest",
        lock_id: int = INGEST_ADVISORY_LOCK_ID,
    ):
        self.engine = engine
        self.timeout_seconds = timeout_seconds
        self.holder = holder
        self.lock_id = lock_id
        self._connection: Optional[Connection] = None
        self._held = False

    @property
    def uses_advisory_lock(self) -> bool:
        return self.engine.dialect.name == "postgresql"

    def acquire(self) -> None:
        deadline = time.monotonic() + self.timeout_seconds

        if not _PROCESS_LOCK.acquire(timeout=self.timeout_seconds):
            raise IngestLockTimeout(
                f"{self.holder}: ingestion lock busy for more than {self.timeout_seconds}s"
            )

        try:
            if self.uses_advisory_lock:
                self._acquire_advisory(deadline)
        except BaseException:
            _PROCESS_LOCK.release()
            raise

        self._held = True
        logger.debug(f"{self.holder}: ingestion lock acquired")

    def _acquire_advisory(self, deadline: float) -> None:
        self._connection = self.engine.connect()
        while True:
            acquired = self._connection.execute(
                text("SELECT pg_try_advisory_lock(:lock_id)"), {"lock_id": self.lock_id}
            ).scalar()
            self._connection.commit()
            if acquired:
                return
            if time.monotonic() >= deadline:
                self._connection.close()
                self._connection = None
                raise IngestLockTimeout(
                    f"{self.holder}: advisory lock {self.lock_id} held elsewhere for more than "
                    f"{self.timeout_seconds}s"
                )
            time.sleep(_POLL_INTERVAL_SECONDS)

    def release(self) -> None:
        if not self._held:
            return
        try:
            if self._connection is not None:
                self._connection.execute(
                    text("SELECT pg_advisory_unlock(:lock_id)"), {"lock_id": self.lock_id}
                )
                self._connection.commit()
                self._connection.close()
                self._connection = None
        finally:
            self._held = False
            _PROCESS_LOCK.release()
            logger.debug(f"{self.holder}: ingestion lock released")

    def __enter__(self) -> "IngestLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
