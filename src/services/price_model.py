"""
Sale-rate regression.

A small ordinary-least-squares model relating appraisal value (in 억 won) and
failure count to the final sale rate (% of appraisal). It is fitted at
startup from config/reference/regression_seed.csv; the seed file is
configuration and can be replaced with real outcomes without code changes.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import numpy as np
import pandas as pd

from config.constants import REFERENCE_REGRESSION_SEED_FILE
from src.services.reference_data import resolve_reference_dir
from src.utils.logger import get_logger

logger = get_logger(__name__)

SEED_COLUMNS = ("appraisal_value", "failure_count", "sale_rate")
APPRAISAL_SCALE = 100_000_000  # 억


@dataclass(frozen=True)
class SaleRateModel:
    intercept: float
    appraisal_coefficient: float
    failure_coefficient: float
    r_squared: float
    n_samples: int

    @classmethod
    def fit(cls, seed: pd.DataFrame) -> "SaleRateModel":
        """
        Fit sale_rate ~ 1 + appraisal(억) + failure_count.

        Raises:
            ValueError: If columns are missing or fewer than 3 usable rows remain
        """
        missing = [column for column in SEED_COLUMNS if column not in seed.columns]
        if missing:
            raise ValueError(f"Regression seed is missing columns: {missing}")

        data = seed[list(SEED_COLUMNS)].apply(pd.to_numeric, errors="coerce").dropna()
        if len(data) < 3:
            raise ValueError(f"Regression seed needs at least 3 rows, got {len(data)}")

        X = np.column_stack([
            np.ones(len(data)),
            data["appraisal_value"].to_numpy(dtype=float) / APPRAISAL_SCALE,
            data["failure_count"].to_numpy(dtype=float),
        ])
        y = data["sale_rate"].to_numpy(dtype=float)

        coefficients, *_ = np.linalg.lstsq(X, y, rcond=None)

        residuals = y - X @ coefficients
        ss_res = float(np.sum(residuals ** 2))
        ss_tot = float(np.sum((y - y.mean()) ** 2))
        r_squared = 1.0 if ss_tot == 0 else 1.0 - ss_res / ss_tot

        model = cls(
            intercept=float(coefficients[0]),
            appraisal_coefficient=float(coefficients[1]),
            failure_coefficient=float(coefficients[2]),
            r_squared=r_squared,
            n_samples=len(data),
        )
        logger.info(
            f"Fitted sale-rate model on {model.n_samples} rows: "
            f"rate = {model.intercept:.2f} + {model.appraisal_coefficient:.3f}*appraisal(억) "
            f"+ {model.failure_coefficient:.2f}*failures (R²={model.r_squared:.3f})"
        )
        return model

    @classmethod
    def from_csv(cls, path: Union[str, Path]) -> "SaleRateModel":
        logger.debug(f"Loading regression seed from {path}")
        return cls.fit(pd.read_csv(path))

    @classmethod
    def from_reference_dir(cls, reference_dir: Optional[Union[str, Path]] = None) -> "SaleRateModel":
        directory = resolve_reference_dir(str(reference_dir) if reference_dir else None)
        return cls.from_csv(directory / REFERENCE_REGRESSION_SEED_FILE)

    @property
    def confidence(self) -> float:
        """R² on the seed data, clipped to [0, 1]."""
        return float(np.clip(self.r_squared, 0.0, 1.0))

    def predict_rate(self, appraisal_value: float, failure_count: int) -> float:
        """Predicted sale rate in percent of appraisal value."""
        return (
            self.intercept
            + self.appraisal_coefficient * (float(appraisal_value or 0) / APPRAISAL_SCALE)
            + self.failure_coefficient * float(failure_count or 0)
        )
