"""
CLI tool for loading captured registry pages into the database.

This is a testing/manual script. In production, the capture job calls
src.utils.scraper_db_helper.load_scraped_pages_to_db directly.

Usage:
    # Initialize database
    python scripts/load_data.py --init-db

    # Load a JSON export of captured pages
    python scripts/load_data.py --file data/raw/pages/busan_20260302.json --source busan-district-court

    # Load a saved results page
    python scripts/load_data.py --html data/raw/pages/result.html --source-url https://example.org/list?page=1

    # Fetch and load a static results page
    python scripts/load_data.py --url https://example.org/list?page=1

    # Load already-extracted listings from CSV
    python scripts/load_data.py --csv data/processed/listings.csv

    # Table counts
    python scripts/load_data.py --counts
"""

import argparse
import sys
from pathlib import Path

from src.core.database import check_connection, get_db_context, get_table_counts, init_database
from src.loaders import AuctionRecordLoader
from src.services.scoring_engine import InvestmentScorer
from src.utils.logger import get_logger, setup_logging
from src.utils.scraper_db_helper import (
    load_scraped_pages_to_db,
    page_from_html_file,
    page_from_url,
    pages_from_json,
)

logger = get_logger(__name__)


def validate_file(file_path: str) -> bool:
    """Check if file exists and is readable."""
    path = Path(file_path)
    if not path.exists():
        logger.error(f"File not found: {file_path}")
        return False
    if not path.is_file():
        logger.error(f"Not a file: {file_path}")
        return False
    return True


def load_csv(csv_path: str, source: str, score: bool) -> None:
    """Load already-extracted listings from CSV, then score what changed."""
    logger.info("=" * 70)
    logger.info(f"LOADING CSV: {csv_path}")
    logger.info("=" * 70)

    with get_db_context() as session:
        result = AuctionRecordLoader(session).load_from_csv(csv_path, source_label=source)
        logger.info(f"Batch: {result.as_dict()}")
        if score and result.changed_ids:
            InvestmentScorer(session).score_records(result.changed_ids)


def print_counts() -> None:
    counts = get_table_counts()
    logger.info("\nDATABASE TABLE COUNTS:")
    for table, count in counts.items():
        logger.info(f"  {table:<25} {count:>8,}")


def main(argv=None):
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Load captured registry pages into database",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    parser.add_argument(
        '--init-db',
        action='store_true',
        help='Initialize database (create tables)'
    )

    parser.add_argument(
        '--file',
        type=str,
        help='JSON export of captured pages'
    )

    parser.add_argument(
        '--html',
        type=str,
        help='Saved HTML results page'
    )

    parser.add_argument(
        '--source-url',
        type=str,
        help='Original URL of the page given with --html'
    )

    parser.add_argument(
        '--url',
        type=str,
        help='Fetch a static results page and load it'
    )

    parser.add_argument(
        '--csv',
        type=str,
        help='CSV of already-extracted listings'
    )

    parser.add_argument(
        '--source',
        type=str,
        default='manual',
        help='Source label stored on new listings (default: manual)'
    )

    parser.add_argument(
        '--no-score',
        action='store_true',
        help='Skip scoring of new and updated listings'
    )

    parser.add_argument(
        '--counts',
        action='store_true',
        help='Print table counts and exit'
    )

    args = parser.parse_args(argv)
    setup_logging()

    if not check_connection():
        logger.error("✗ Cannot reach the database, check DATABASE_URL")
        sys.exit(1)

    # Initialize database if requested
    if args.init_db:
        logger.info("Initializing database...")
        init_database()
        logger.info("✓ Database initialized\n")
        if not (args.file or args.html or args.url or args.csv or args.counts):
            return

    if args.counts:
        print_counts()
        return

    score = not args.no_score

    try:
        if args.file:
            if not validate_file(args.file):
                sys.exit(1)
            load_scraped_pages_to_db(pages_from_json(args.file), args.source, score=score)

        elif args.html:
            if not validate_file(args.html):
                sys.exit(1)
            load_scraped_pages_to_db([page_from_html_file(args.html, args.source_url)], args.source, score=score)

        elif args.url:
            load_scraped_pages_to_db([page_from_url(args.url)], args.source, score=score)

        elif args.csv:
            if not validate_file(args.csv):
                sys.exit(1)
            load_csv(args.csv, args.source, score)

        else:
            parser.print_help()
            sys.exit(1)

    except Exception as e:
        logger.error(f"Load failed: {e}", exc_info=True)
        sys.exit(1)

    print_counts()


if __name__ == "__main__":
    main()
