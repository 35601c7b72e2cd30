"""
Data loading, simulation and validation for the whole-game causal workflow.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from .exceptions import DataError

logger = logging.getLogger(__name__)

NET_COVARIATES = ["income", "health", "temperature"]


def load_observational_data(
    file_path: str,
    treatment_col: str = "net",
    outcome_col: str = "malaria_risk",
    covariates: Optional[List[str]] = None,
) -> pd.DataFrame:
    """
    Load an observational dataset from CSV or parquet.

    Expected columns:
        - treatment_col: Binary indicator (1/True = treated, 0/False = control)
        - outcome_col: Numeric outcome
        - covariates: Pre-treatment confounders

    Args:
        file_path: Path to a .csv or .parquet file
        treatment_col: Name of treatment column
        outcome_col: Name of outcome column
        covariates: Covariate columns that must be present

    Returns:
        DataFrame with the observation table
    """
    logger.info(f"Loading dataset from {file_path}")

    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(
            f"Dataset not found at {file_path}. "
            "Point data.path at a CSV file or use data.source: simulated"
        )

    if path.suffix == ".parquet":
        df = pd.read_parquet(path)
    else:
        df = pd.read_csv(path)

    required_cols = [treatment_col, outcome_col] + list(covariates or [])
    missing_cols = [col for col in required_cols if col not in df.columns]
    if missing_cols:
        raise DataError(f"Dataset missing required columns: {missing_cols}")

    logger.info(f"Loaded {len(df):,} records with {len(df.columns)} columns")

    return df


def simulate_net_data(n_samples: int = 1752, random_state: int = 42) -> pd.DataFrame:
    """
    Simulate the mosquito bed-net dataset used by the whole-game walkthrough.

    Columns:
        - net: whether a bed net was used (bool, the treatment)
        - net_num: net as 0/1
        - malaria_risk: risk score in [0, 100] (the outcome)
        - income, health, temperature: confounders of net use and risk

    Net use lowers malaria risk by 10 points; richer and healthier households
    use nets more often and have lower risk, so the naive comparison
    overstates the benefit.
    """
    rng = np.random.default_rng(random_state)

    income = rng.normal(880, 190, n_samples).clip(400, 1500)
    health = rng.normal(50, 19, n_samples).clip(0, 100)
    temperature = rng.normal(24, 4, n_samples)

    logit_net = -3.4 + 0.0045 * income + 0.02 * health - 0.08 * temperature
    p_net = 1 / (1 + np.exp(-logit_net))
    net = rng.binomial(1, p_net).astype(bool)

    malaria_risk = (
        80
        - 0.04 * income
        - 0.25 * health
        + 1.2 * temperature
        - 10 * net
        + rng.normal(0, 5, n_samples)
    ).clip(0, 100)

    df = pd.DataFrame(
        {
            "id": np.arange(1, n_samples + 1),
            "net": net,
            "net_num": net.astype(int),
            "malaria_risk": malaria_risk,
            "income": income,
            "health": health,
            "temperature": temperature,
        }
    )

    logger.info(f"Simulated net data: n={n_samples:,}, net use: {net.mean():.1%}")

    return df


def generate_synthetic_data(
    n_samples: int = 200,
    true_ate: float = 5.0,
    confounding_strength: float = 1.0,
    noise_level: float = 0.5,
    random_state: int = 42,
) -> Tuple[pd.DataFrame, Dict[str, float]]:
    """
    Generate synthetic observational data with a known, constant ATE.

    The data generation process:
    1. Covariates x1, x2 ~ N(0, 1), x3 ~ U(-1, 1)
    2. Treatment T ~ Bernoulli(sigmoid(confounding_strength * (0.8 x1 - 0.6 x2)))
    3. Outcome Y = 10 + true_ate * T + 1.5 x1 + 1.0 x2 + 0.5 x3 + N(0, noise_level)

    x1 and x2 confound the treatment-outcome relationship; x3 affects the
    outcome only. With confounding_strength=0 treatment is randomized.

    Args:
        n_samples: Number of rows
        true_ate: True average treatment effect
        confounding_strength: Scale of covariate effects on treatment log-odds
        noise_level: Standard deviation of outcome noise
        random_state: Random seed

    Returns:
        Tuple of (DataFrame, ground_truth_dict)
    """
    rng = np.random.default_rng(random_state)
    logger.info(f"Generating synthetic data: n={n_samples:,}, ATE={true_ate}")

    x1 = rng.normal(0, 1, n_samples)
    x2 = rng.normal(0, 1, n_samples)
    x3 = rng.uniform(-1, 1, n_samples)

    logit_propensity = confounding_strength * (0.8 * x1 - 0.6 * x2)
    true_propensity = 1 / (1 + np.exp(-logit_propensity))
    treatment = rng.binomial(1, true_propensity)

    base_outcome = 10 + 1.5 * x1 + 1.0 * x2 + 0.5 * x3
    outcome = base_outcome + true_ate * treatment + rng.normal(0, noise_level, n_samples)

    df = pd.DataFrame(
        {
            "x1": x1,
            "x2": x2,
            "x3": x3,
            "treatment": treatment,
            "outcome": outcome,
            "true_propensity": true_propensity,
        }
    )

    ground_truth = {
        "true_ate": float(true_ate),
        "treatment_rate": float(treatment.mean()),
        "confounding_bias": float(
            base_outcome[treatment == 1].mean() - base_outcome[treatment == 0].mean()
        ),
    }

    logger.info(f"Treatment rate: {treatment.mean():.1%}")
    logger.info(f"Confounding bias in naive contrast: {ground_truth['confounding_bias']:.2f}")

    return df, ground_truth


def validate_observations(
    df: pd.DataFrame,
    treatment_col: str,
    outcome_col: Optional[str],
    covariates: List[str],
) -> pd.DataFrame:
    """
    Validate the observation table and return a copy with a 0/1 treatment.

    Raises:
        DataError: on missing columns, a non-binary treatment, a treatment
            group with no rows, non-numeric outcome/covariates, or missing values.
    """
    required_cols = [treatment_col] + list(covariates)
    if outcome_col is not None:
        required_cols.append(outcome_col)

    missing_cols = [col for col in required_cols if col not in df.columns]
    if missing_cols:
        raise DataError(f"Missing required columns: {missing_cols}")

    missing_values = df[required_cols].isnull().sum()
    if missing_values.any():
        raise DataError(
            f"Missing values in columns: {missing_values[missing_values > 0].to_dict()}"
        )

    treatment = df[treatment_col]
    if pd.api.types.is_bool_dtype(treatment):
        treatment = treatment.astype(int)
    elif not pd.api.types.is_numeric_dtype(treatment) or not set(treatment.unique()).issubset(
        {0, 1}
    ):
        raise DataError(
            f"Treatment column '{treatment_col}' must be binary, "
            f"got values {sorted(map(str, treatment.unique()))[:5]}"
        )

    if treatment.nunique() < 2:
        raise DataError(
            f"Treatment column '{treatment_col}' has a single group "
            f"({int(treatment.iloc[0])}); need both treated and control rows"
        )

    numeric_cols = list(covariates) + ([outcome_col] if outcome_col is not None else [])
    non_numeric = [col for col in numeric_cols if not pd.api.types.is_numeric_dtype(df[col])]
    if non_numeric:
        raise DataError(f"Non-numeric columns: {non_numeric}")

    df_valid = df.copy()
    df_valid[treatment_col] = treatment.astype(int)

    return df_valid


def summarize_outcome_by_group(
    df: pd.DataFrame,
    treatment_col: str = "net",
    outcome_col: str = "malaria_risk",
) -> pd.DataFrame:
    """
    Unadjusted outcome summary by treatment group.

    This contrast is NOT causal when treatment assignment is confounded.
    """
    summary = (
        df.groupby(treatment_col)[outcome_col]
        .agg(["count", "mean", "std"])
        .reset_index()
        .rename(columns={"count": "n", "mean": f"mean_{outcome_col}", "std": f"sd_{outcome_col}"})
    )

    for _, row in summary.iterrows():
        logger.info(
            f"{treatment_col}={row[treatment_col]}: n={int(row['n']):,}, "
            f"mean {outcome_col}={row[f'mean_{outcome_col}']:.2f}"
        )

    return summary
