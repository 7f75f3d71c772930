"""
Data loaders for inserting scraped listings into the database.

This module provides a clean API for the pipeline to classify and persist
normalized listings, or to load already-extracted listings from CSV files.

Usage:
    # From the pipeline (normalized records):
    from src.loaders import AuctionRecordLoader
    loader = AuctionRecordLoader(session)
    result = loader.process_batch(records, "busan-district-court")

    # From CSV (testing / backfills):
    result = loader.load_from_csv("data/processed/listings.csv")
    print(result.as_dict())  # {'new': .., 'updated': .., 'duplicate': .., 'skipped': .., 'total': ..}
"""

from src.loaders.base import BaseLoader
from src.loaders.validator import RecordValidator
from src.loaders.auctions import AuctionRecordLoader, BatchAccountingError, BatchResult

__all__ = [
    'BaseLoader',
    'RecordValidator',
    'AuctionRecordLoader',
    'BatchAccountingError',
    'BatchResult',
]
