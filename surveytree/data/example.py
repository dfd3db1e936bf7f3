"""
Synthetic grocery-shopping survey data for demos and tests.
"""

from pathlib import Path
from typing import Dict, Union

import numpy as np
import pandas as pd

EXAMPLE_SCHEMA: Dict[str, str] = {
    "age": "numeric",
    "household_size": "numeric",
    "income_band": "ordinal",
    "shop_frequency": "ordinal",
    "price_sensitivity": "ordinal",
    "online_shopping": "categorical",
    "store_type": "categorical",
    "payment_method": "categorical",
    "weekly_spend": "numeric",
}

EXAMPLE_OUTCOME = "weekly_spend"
EXAMPLE_PREDICTORS = [field for field in EXAMPLE_SCHEMA if field != EXAMPLE_OUTCOME]


def generate_survey_data(
    n_samples: int = 120,
    random_state: int = 42,
    missing_rate: float = 0.0,
) -> pd.DataFrame:
    """
    Generate synthetic survey responses.

    Weekly spend rises with household size and income and depends on store
    type, so a regression tree has real structure to find.

    Args:
        n_samples: Number of respondents
        random_state: Random seed
        missing_rate: Share of predictor answers blanked out

    Returns:
        DataFrame with the EXAMPLE_SCHEMA columns
    """
    rng = np.random.RandomState(random_state)

    df = pd.DataFrame({
        "age": rng.randint(18, 80, n_samples),
        "household_size": rng.randint(1, 7, n_samples),
        "income_band": rng.randint(1, 6, n_samples),
        "shop_frequency": rng.randint(1, 6, n_samples),
        "price_sensitivity": rng.randint(1, 6, n_samples),
        "online_shopping": rng.choice(["yes", "no"], n_samples, p=[0.4, 0.6]),
        "store_type": rng.choice(["supermarket", "discount", "local"], n_samples, p=[0.5, 0.3, 0.2]),
        "payment_method": rng.choice(["card", "cash", "mobile"], n_samples),
    })

    store_effect = df["store_type"].map({"supermarket": 20.0, "discount": -15.0, "local": 5.0})
    df["weekly_spend"] = (
        40.0
        + 18.0 * df["household_size"]
        + 9.0 * df["income_band"]
        - 4.0 * df["price_sensitivity"]
        + store_effect
        + rng.normal(0, 8.0, n_samples)
    ).round(2)

    if missing_rate > 0:
        predictors = [c for c in df.columns if c != EXAMPLE_OUTCOME]
        mask = rng.random_sample((n_samples, len(predictors))) < missing_rate
        df[predictors] = df[predictors].astype(object).mask(mask)

    return df


def write_example_data(path: Union[str, Path], n_samples: int = 120, random_state: int = 42) -> Path:
    """Write a synthetic survey to CSV."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    generate_survey_data(n_samples=n_samples, random_state=random_state).to_csv(path, index=False)
    return path
