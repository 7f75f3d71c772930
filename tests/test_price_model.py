"""
Sale-rate regression tests.
"""

import pandas as pd
import pytest

from src.services.price_model import SaleRateModel


def test_seed_model_loads_and_falls_with_failures(sale_rate_model):
    assert sale_rate_model.n_samples >= 3
    assert 0.0 <= sale_rate_model.confidence <= 1.0
    assert sale_rate_model.failure_coefficient < 0
    assert sale_rate_model.predict_rate(300_000_000, 0) > sale_rate_model.predict_rate(300_000_000, 3)


def test_fit_recovers_exact_linear_relation():
    seed = pd.DataFrame({
        "appraisal_value": [100_000_000, 200_000_000, 300_000_000, 400_000_000, 500_000_000],
        "failure_count": [0, 1, 2, 0, 1],
    })
    seed["sale_rate"] = 90 + 1.0 * seed["appraisal_value"] / 100_000_000 - 10 * seed["failure_count"]

    model = SaleRateModel.fit(seed)

    assert model.intercept == pytest.approx(90)
    assert model.appraisal_coefficient == pytest.approx(1.0)
    assert model.failure_coefficient == pytest.approx(-10)
    assert model.r_squared == pytest.approx(1.0)
    assert model.predict_rate(250_000_000, 1) == pytest.approx(82.5)


def test_fit_rejects_missing_columns():
    with pytest.raises(ValueError):
        SaleRateModel.fit(pd.DataFrame({"appraisal_value": [1, 2, 3], "sale_rate": [90, 80, 70]}))


def test_fit_rejects_too_few_rows():
    seed = pd.DataFrame({"appraisal_value": [1, 2], "failure_count": [0, 1], "sale_rate": [90, 80]})
    with pytest.raises(ValueError):
        SaleRateModel.fit(seed)


def test_swapped_seed_file_changes_the_model(tmp_path):
    path = tmp_path / "seed.csv"
    path.write_text(
        "appraisal_value,failure_count,sale_rate\n"
        "100000000,0,70\n200000000,1,60\n300000000,2,50\n400000000,0,72\n",
        encoding="utf-8",
    )
    model = SaleRateModel.from_csv(path)
    assert model.n_samples == 4
    assert model.predict_rate(100_000_000, 0) < 75
