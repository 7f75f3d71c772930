"""
Helper module for integrating scrapers with the ingestion pipeline.

Provides a unified interface for turning captured registry pages (JSON
exports, saved HTML, or a live URL) into RawPages and loading them into the
database.
"""

import json
from pathlib import Path
from typing import List, Optional, Sequence, Union

from config.constants import OUTPUT_SEPARATOR
from src.core.database import get_db_context
from src.scrappers.registry.html_tables import fetch_page_html, read_html_file, tables_from_html
from src.services.ingestion_pipeline import IngestionPipeline, PipelineSummary, RawPage
from src.utils.logger import get_logger

logger = get_logger(__name__)


def pages_from_json(path: Union[str, Path]) -> List[RawPage]:
    """
    Read a JSON export of captured pages: either a list of pages or
    {"pages": [...]}, each page shaped as RawPage.from_dict expects.
    """
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("pages") or []
    pages = [RawPage.from_dict(item) for item in data]
    logger.info(f"Read {len(pages)} pages from {path}")
    return pages


def page_from_html_file(path: Union[str, Path], source_url: Optional[str] = None) -> RawPage:
    html = read_html_file(path)
    return RawPage(source_url=source_url or Path(path).resolve().as_uri(), tables=tables_from_html(html))


def page_from_url(url: str) -> RawPage:
    html = fetch_page_html(url)
    return RawPage(source_url=url, tables=tables_from_html(html))


def load_scraped_pages_to_db(
    pages: Sequence[RawPage],
    source_label: str,
    score: bool = True,
) -> PipelineSummary:
    """
    Run captured pages through the ingestion pipeline in one session.

    Args:
        pages: Captured pages
        source_label: Site / court the pages came from
        score: Score new and updated listings after the batch

    Returns:
        PipelineSummary of the run

    Raises:
        IngestLockTimeout: If another batch or maintenance job holds the lock
        BatchAccountingError: If the batch counts do not balance
    """
    logger.info("\n" + OUTPUT_SEPARATOR)
    logger.info(f"Loading {len(pages)} pages from {source_label} into database...")
    logger.info(OUTPUT_SEPARATOR)

    try:
        with get_db_context() as session:
            summary = IngestionPipeline(session, score=score).run(pages, source_label)
    except Exception as e:
        logger.error(f"✗ Database load failed: {e}")
        raise

    batch = summary.batch
    logger.info(f"\n{OUTPUT_SEPARATOR}")
    logger.info(f"DATABASE LOAD SUMMARY - {source_label.upper()}")
    logger.info(OUTPUT_SEPARATOR)
    logger.info(f"  New:        {batch.new:>6}")
    logger.info(f"  Updated:    {batch.updated:>6}")
    logger.info(f"  Duplicate:  {batch.duplicate:>6}")
    logger.info(f"  Skipped:    {batch.skipped:>6}  ({batch.errors} storage errors)")
    logger.info(f"  Scored:     {summary.scoring['scored']:>6}")
    logger.info(f"{OUTPUT_SEPARATOR}\n")
    logger.info("✓ Database load completed!")
    return summary
