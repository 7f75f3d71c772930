"""
Ingestion pipeline: pages -> raw records -> normalized records -> dedup batch -> scoring.

    1. Extract    every page's tables in parallel (pure, no I/O)
    2. Normalize  each raw row, stamping the page URL and capture time
    3. Load       one dedup/update batch under the single-writer lock
    4. Score      listings the batch created or changed

Usage:
    from src.services.ingestion_pipeline import IngestionPipeline, RawPage

    with get_db_context() as session:
        summary = IngestionPipeline(session).run(pages, "busan-district-court")
"""

import concurrent.futures
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from config.constants import OUTPUT_SEPARATOR
from config.settings import get_settings
from src.core.models import utcnow
from src.core.repository import AuctionRepository
from src.loaders.auctions import AuctionRecordLoader, BatchResult
from src.scrappers.registry.table_extractor import (
    ExtractionResult,
    ExtractorConfig,
    RawTable,
    TableExtractor,
)
from src.services.scoring_engine import InvestmentScorer
from src.utils.logger import get_logger
from src.utils.normalizer import normalize_raw_record

logger = get_logger(__name__)


@dataclass
class RawPage:
    """One captured registry page: its tables as text matrices plus provenance."""
    source_url: Optional[str]
    tables: Sequence[RawTable]
    captured_at: datetime = field(default_factory=utcnow)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RawPage":
        """
        Build a page from its JSON form:
            {"source_url": "...", "captured_at": "2026-03-02T09:00:00",
             "tables": [{"header": [...], "rows": [[...], ...]}, ...]}
        """
        captured_at = data.get("captured_at")
        if isinstance(captured_at, str):
            captured_at = datetime.fromisoformat(captured_at)
        return cls(
            source_url=data.get("source_url"),
            tables=[RawTable.from_matrix(t.get("header") or [], t.get("rows") or []) for t in data.get("tables") or []],
            captured_at=captured_at or utcnow(),
        )


@dataclass
class PipelineSummary:
    pages: int = 0
    pages_without_table: int = 0
    extracted: int = 0
    discarded_rows: int = 0
    batch: BatchResult = field(default_factory=BatchResult)
    scoring: Dict[str, int] = field(default_factory=lambda: {"scored": 0, "failed": 0, "total": 0})


class IngestionPipeline:
    """Runs captured pages through extraction, dedup and scoring."""

    def __init__(
        self,
        session: Session,
        extractor: Optional[TableExtractor] = None,
        loader: Optional[AuctionRecordLoader] = None,
        scorer: Optional[InvestmentScorer] = None,
        score: bool = True,
        workers: Optional[int] = None,
    ):
        settings = get_settings()
        self.session = session
        self.extractor = extractor or TableExtractor(
            ExtractorConfig(
                min_case_number_length=settings.min_case_number_length,
                min_address_length=settings.min_address_length,
            )
        )
        self.loader = loader or AuctionRecordLoader(session)
        self.score = score
        self.scorer = scorer if scorer is not None or not score else InvestmentScorer(session)
        self.workers = workers or settings.extraction_workers
        self.date_fallback_days = settings.auction_date_fallback_days

    def extract_pages(self, pages: Sequence[RawPage]) -> List[ExtractionResult]:
        """Extract every page in parallel; results keep page order."""
        with concurrent.futures.ThreadPoolExecutor(max_workers=self.workers) as executor:
            return list(executor.map(lambda page: self.extractor.extract(page.tables), pages))

    def normalize(self, pages: Sequence[RawPage], results: Sequence[ExtractionResult], source_label: str) -> List[Dict[str, Any]]:
        records = []
        for page, result in zip(pages, results):
            for raw in result.records:
                records.append(
                    normalize_raw_record(
                        raw,
                        source_url=page.source_url,
                        scraped_at=page.captured_at,
                        source_site=source_label,
                        date_fallback_days=self.date_fallback_days,
                    )
                )
        return records

    def run(self, pages: Sequence[RawPage], source_label: str) -> PipelineSummary:
        """
        Process one scrape run.

        Args:
            pages: Captured pages, in scrape order
            source_label: Site / court the pages came from

        Returns:
            PipelineSummary with extraction, batch and scoring counts
        """
        pages = list(pages)
        summary = PipelineSummary(pages=len(pages))

        logger.info(OUTPUT_SEPARATOR)
        logger.info(f"INGESTION RUN - {source_label} ({len(pages)} pages)")
        logger.info(OUTPUT_SEPARATOR)

        results = self.extract_pages(pages)
        for page, result in zip(pages, results):
            if not result.found_table:
                summary.pages_without_table += 1
                logger.warning(f"No auction table found on {page.source_url or 'page'}")
            summary.discarded_rows += result.discarded_rows

        records = self.normalize(pages, results, source_label)
        summary.extracted = len(records)
        logger.info(
            f"Step 1-2: {summary.extracted} records extracted, {summary.discarded_rows} rows discarded, "
            f"{summary.pages_without_table} pages without a table"
        )

        summary.batch = self.loader.process_batch(records, source_label)
        logger.info(f"Step 3: {summary.batch.as_dict()}")

        if self.score and self.scorer is not None and summary.batch.changed_ids:
            summary.scoring = self.scorer.score_records(summary.batch.changed_ids)
            logger.info(f"Step 4: {summary.scoring['scored']} scored, {summary.scoring['failed']} failed")
        else:
            logger.info("Step 4: nothing to score")

        stats = AuctionRepository(self.session).summary_stats()
        logger.info(
            f"Registry now holds {stats['total_records']:,} listings "
            f"({stats['active_records']:,} active, {stats['checked_today']:,} checked today)"
        )
        return summary
