"""
Database Deduplication Utilities

Change detection for registry listings. Each record gets a content hash over
the fields that matter for "did this listing change?", and each batch loads
one in-memory index (identity key -> id, hash, last scrape) from the database
before it classifies incoming records.

The database is the single source of truth; the index is a per-batch snapshot
and is only safe to use while the ingestion lock is held.
"""

import hashlib
import json
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Mapping, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from config.constants import HASH_FIELDS, IDENTITY_KEY_FIELDS
from src.core.models import AuctionRecord
from src.utils.logger import get_logger

logger = get_logger(__name__)

IdentityKey = Tuple[str, ...]


@dataclass
class IndexEntry:
    """What the batch needs to know about one stored listing."""
    record_id: int
    data_hash: Optional[str]
    scraped_at: Optional[datetime]
    current_status: str


def _canonical_value(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()[:10]
    if isinstance(value, bool):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        return " ".join(value.split())
    return value


def compute_data_hash(record: Mapping[str, Any]) -> str:
    """
    md5 over the hashed field subset, serialized with sorted keys.

    Only change detection depends on this; field insertion order and
    surrounding whitespace never change the digest.
    """
    payload = {field: _canonical_value(record.get(field)) for field in HASH_FIELDS}
    serialized = json.dumps(payload, sort_keys=True, ensure_ascii=False, default=str)
    return hashlib.md5(serialized.encode("utf-8")).hexdigest()


def identity_fields(identity_key: str) -> Tuple[str, ...]:
    if identity_key not in IDENTITY_KEY_FIELDS:
        raise ValueError(
            f"Unknown identity key '{identity_key}'. Expected one of {sorted(IDENTITY_KEY_FIELDS)}"
        )
    return IDENTITY_KEY_FIELDS[identity_key]


def build_identity_key(record: Mapping[str, Any], identity_key: str) -> IdentityKey:
    """
    Identity tuple for a record (dict or model instance attributes).

    Example:
        >>> build_identity_key({"case_number": "2024타경1", "address": "부산 해운대구"}, "case_number")
        ('2024타경1',)
    """
    return tuple(" ".join(str(record.get(field) or "").split()) for field in identity_fields(identity_key))


def load_hash_index(session: Session, identity_key: str) -> Dict[IdentityKey, IndexEntry]:
    """
    Snapshot every stored listing keyed by identity.

    Inactive listings are included so a reintroduced listing is recognised
    and reactivated rather than inserted twice. When duplicates already exist
    under one key (possible before compaction) the lowest id wins.
    """
    fields = identity_fields(identity_key)
    columns = [getattr(AuctionRecord, field) for field in fields]

    stmt = select(
        AuctionRecord.id,
        AuctionRecord.data_hash,
        AuctionRecord.scraped_at,
        AuctionRecord.current_status,
        *columns,
    ).order_by(AuctionRecord.id.desc())

    index: Dict[IdentityKey, IndexEntry] = {}
    for row in session.execute(stmt):
        key = tuple(" ".join(str(value or "").split()) for value in row[4:])
        index[key] = IndexEntry(
            record_id=row.id,
            data_hash=row.data_hash,
            scraped_at=row.scraped_at,
            current_status=row.current_status,
        )

    logger.info(f"Loaded hash index with {len(index):,} identity keys ({identity_key})")
    return index
