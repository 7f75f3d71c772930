"""
Auction record loader: the dedup / update engine.

Every batch of normalized listings is classified record by record against a
hash index loaded once at the start of the batch:

    no entry for the identity key   -> new        (insert)
    entry, content hash differs     -> updated    (overwrite, updated_count += 1, reactivate)
    entry, content hash identical   -> duplicate  (touch last_checked_at / check_count)
    fails validation                -> skipped    (nothing persisted)

Each record is written inside its own SAVEPOINT, so a storage error on one
record (timeout, constraint violation) rolls back that record only; it is
counted as skipped and the batch carries on. The whole batch runs under the
single-writer ingestion lock and commits before releasing it.
"""

import traceback
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple
from uuid import uuid4

import pandas as pd
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config.settings import get_settings
from src.core.models import AuctionRecord, utcnow
from src.core.repository import AuctionRepository
from src.loaders.base import BaseLoader
from src.loaders.validator import RecordValidator
from src.utils.db_deduplicator import (
    IdentityKey,
    IndexEntry,
    build_identity_key,
    compute_data_hash,
    identity_fields,
    load_hash_index,
)
from src.utils.ingest_lock import IngestLock
from src.utils.logger import get_contextual_logger, get_logger
from src.utils.normalizer import normalize_raw_record

logger = get_logger(__name__)

NEW = "new"
UPDATED = "updated"
DUPLICATE = "duplicate"


class BatchAccountingError(RuntimeError):
    """Classification counts did not add up to the number of submitted records."""


@dataclass
class BatchResult:
    """Per-batch classification counts. errors is a subset of skipped."""
    total: int = 0
    new: int = 0
    updated: int = 0
    duplicate: int = 0
    skipped: int = 0
    errors: int = 0
    new_ids: List[int] = field(default_factory=list)
    updated_ids: List[int] = field(default_factory=list)

    @property
    def balanced(self) -> bool:
        return self.new + self.updated + self.duplicate + self.skipped == self.total

    @property
    def changed_ids(self) -> List[int]:
        return self.new_ids + self.updated_ids

    def as_dict(self) -> Dict[str, int]:
        return {
            "new": self.new,
            "updated": self.updated,
            "duplicate": self.duplicate,
            "skipped": self.skipped,
            "total": self.total,
        }


class AuctionRecordLoader(BaseLoader):
    """Loader and change classifier for registry listings."""

    def __init__(
        self,
        session: Session,
        identity_key: Optional[str] = None,
        min_case_number_length: Optional[int] = None,
        min_address_length: Optional[int] = None,
        lock_timeout_seconds: Optional[float] = None,
    ):
        super().__init__(session)
        settings = get_settings()

        self.identity_key = identity_key or settings.identity_key
        identity_fields(self.identity_key)  # fail fast on a bad key

        self.validator = RecordValidator(
            min_case_number_length=min_case_number_length or settings.min_case_number_length,
            min_address_length=min_address_length or settings.min_address_length,
        )
        self.lock_timeout_seconds = (
            lock_timeout_seconds if lock_timeout_seconds is not None else settings.ingest_lock_timeout_seconds
        )
        self.repository = AuctionRepository(session)

    # ========================================================================
    # BATCH PROCESSING
    # ========================================================================

    def process_batch(self, records: Iterable[Mapping[str, Any]], source_label: str) -> BatchResult:
        """
        Classify and persist a batch of normalized records.

        Args:
            records: Normalized records (see src.utils.normalizer.normalize_raw_record)
            source_label: Where the batch came from; stored as source_site when absent

        Returns:
            BatchResult whose new + updated + duplicate + skipped equals the
            number of records submitted

        Raises:
            IngestLockTimeout: If another batch or maintenance job holds the lock
            BatchAccountingError: If the counts do not balance
        """
        records = list(records)
        batch_id = uuid4().hex[:8]
        log = get_contextual_logger(__name__, {"source": source_label, "batch": batch_id})
        result = BatchResult(total=len(records))

        log.info(f"Processing batch of {len(records)} records (identity key: {self.identity_key})")

        with IngestLock(self.session.get_bind(), self.lock_timeout_seconds, holder=f"batch-{batch_id}"):
            index = load_hash_index(self.session, self.identity_key)
            now = utcnow()

            for position, incoming in enumerate(records):
                record = dict(incoming)
                if not record.get("source_site"):
                    record["source_site"] = source_label

                problems = self.validator.validate(record)
                if problems:
                    result.skipped += 1
                    log.debug(f"Skipping record #{position}: {'; '.join(problems)}")
                    continue

                key = build_identity_key(record, self.identity_key)
                data_hash = compute_data_hash(record)

                try:
                    with self.session.begin_nested():
                        outcome, stored = self._classify_and_write(record, key, data_hash, index, now)
                except SQLAlchemyError as e:
                    result.skipped += 1
                    result.errors += 1
                    log.error(f"Storage error on record #{position} ({record.get('case_number')}): {e}")
                    log.debug(traceback.format_exc())
                    continue

                index[key] = IndexEntry(
                    record_id=stored.id,
                    data_hash=stored.data_hash,
                    scraped_at=stored.scraped_at,
                    current_status=stored.current_status,
                )

                if outcome == NEW:
                    result.new += 1
                    result.new_ids.append(stored.id)
                elif outcome == UPDATED:
                    result.updated += 1
                    result.updated_ids.append(stored.id)
                else:
                    result.duplicate += 1

            self.session.commit()

        if not result.balanced:
            raise BatchAccountingError(
                f"Batch {batch_id} does not balance: {result.as_dict()}"
            )

        log.info(
            f"Batch complete: {result.new} new, {result.updated} updated, "
            f"{result.duplicate} duplicate, {result.skipped} skipped "
            f"({result.errors} errors) of {result.total}"
        )
        return result

    def _classify_and_write(
        self,
        record: Dict[str, Any],
        key: IdentityKey,
        data_hash: str,
        index: Dict[IdentityKey, IndexEntry],
        now,
    ) -> Tuple[str, AuctionRecord]:
        entry = index.get(key)
        stored = self.repository.get(entry.record_id) if entry is not None else None

        if stored is None:
            return NEW, self.repository.insert(record, data_hash, now)

        stored_hash = entry.data_hash or compute_data_hash(stored.to_dict())

        if stored_hash == data_hash:
            if stored.data_hash is None:
                stored.data_hash = stored_hash
            return DUPLICATE, self.repository.touch(stored, now)

        return UPDATED, self.repository.apply_update(stored, record, data_hash, now)

    # ========================================================================
    # DATAFRAME / CSV
    # ========================================================================

    def load_from_dataframe(self, df: pd.DataFrame, source_label: str = "dataframe") -> BatchResult:
        """
        Normalize and load already-extracted records.

        Columns are named after record fields (case_number, address,
        appraisal_value, ...); cell values may be raw registry text.
        """
        logger.info(f"Loading {len(df)} auction records from {source_label}")
        settings = get_settings()

        normalized = [
            normalize_raw_record(
                row,
                source_site=source_label,
                date_fallback_days=settings.auction_date_fallback_days,
            )
            for row in self.dataframe_to_rows(df)
        ]
        return self.process_batch(normalized, source_label)
