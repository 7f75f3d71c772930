"""
Base loader class with shared loading utilities.

All data loaders inherit from BaseLoader to access:
- The session they write through
- CSV/DataFrame loading
- Row cleanup shared by every loader
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import pandas as pd
from sqlalchemy.orm import Session

from src.utils.normalizer import is_blank

logger = logging.getLogger(__name__)


class BaseLoader(ABC):
    """
    Abstract base class for all data loaders.

    Provides:
    - Row cleanup
    - CSV/DataFrame loading
    """

    def __init__(self, session: Session):
        """
        Initialize loader with database session.

        Args:
            session: SQLAlchemy database session
        """
        self.session = session

    # ========================================================================
    # ABSTRACT METHODS (must be implemented by subclasses)
    # ========================================================================

    @abstractmethod
    def load_from_dataframe(self, df: pd.DataFrame, source_label: str = "dataframe") -> Any:
        """
        Load data from pandas DataFrame.

        Args:
            df: DataFrame with one row per record, columns named after record fields
            source_label: Label used in logs and stored as source_site

        Returns:
            Loader-specific batch statistics
        """
        pass

    def load_from_csv(self, csv_path: str, source_label: Optional[str] = None, **kwargs) -> Any:
        """
        Load data from CSV file.

        Args:
            csv_path: Path to CSV file
            source_label: Defaults to the file name
            **kwargs: Additional arguments passed to load_from_dataframe
        """
        logger.info(f"Loading data from: {csv_path}")

        try:
            df = pd.read_csv(csv_path, dtype=str, keep_default_na=False)
        except pd.errors.ParserError:
            logger.warning("CSV parsing error - retrying and skipping bad lines...")
            df = pd.read_csv(csv_path, dtype=str, keep_default_na=False, engine='python', on_bad_lines='warn')

        return self.load_from_dataframe(df, source_label or str(csv_path), **kwargs)

    @staticmethod
    def dataframe_to_rows(df: pd.DataFrame) -> List[Dict[str, Any]]:
        """Rows as plain dicts with NaN/blank cells turned into None."""
        rows = []
        for row in df.to_dict(orient="records"):
            rows.append({str(key): (None if is_blank(value) else value) for key, value in row.items()})
        return rows

