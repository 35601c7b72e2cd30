"""
Average Treatment Effect (ATE) estimation with weighted outcome models.
"""

import logging

import numpy as np
import pandas as pd
import statsmodels.api as sm

from .data import validate_observations
from .propensity import augment_with_weights

logger = logging.getLogger(__name__)

INTERCEPT = "(Intercept)"
TIDY_COLUMNS = ["term", "estimate", "std_error", "statistic", "p_value", "conf_low", "conf_high"]


def estimate_ate_naive(Y: np.ndarray, T: np.ndarray) -> float:
    """
    Naive ATE estimate: simple difference in means.

    This estimator is biased if treatment assignment is confounded.

    Args:
        Y: Outcome vector
        T: Treatment indicator

    Returns:
        Naive ATE estimate
    """
    mean_treated = Y[T == 1].mean()
    mean_control = Y[T == 0].mean()

    ate_naive = mean_treated - mean_control

    logger.info(f"Naive ATE: {ate_naive:.2f}")
    logger.info(f"  Mean(Y|T=1): {mean_treated:.2f}")
    logger.info(f"  Mean(Y|T=0): {mean_control:.2f}")

    return float(ate_naive)


def tidy_results(results, conf_level: float = 0.95) -> pd.DataFrame:
    """One row per coefficient of a fitted statsmodels regression."""
    conf_int = results.conf_int(alpha=1 - conf_level)

    tidy = pd.DataFrame(
        {
            "term": results.params.index,
            "estimate": results.params.to_numpy(),
            "std_error": results.bse.to_numpy(),
            "statistic": results.tvalues.to_numpy(),
            "p_value": results.pvalues.to_numpy(),
            "conf_low": conf_int.iloc[:, 0].to_numpy(),
            "conf_high": conf_int.iloc[:, 1].to_numpy(),
        }
    )

    return tidy[TIDY_COLUMNS]


def fit_outcome_model(
    df: pd.DataFrame,
    outcome_col: str,
    treatment_col: str,
    weights: np.ndarray | str | None = None,
    conf_level: float = 0.95,
) -> pd.DataFrame:
    """
    Regress outcome on treatment, optionally with per-row weights.

    With IPW weights the treatment coefficient is the weighted difference
    in means, i.e. the IPW estimate of the ATE. Its standard error and
    interval come from the weighted-least-squares variance formula, which
    treats the weights as known; it ignores that the propensity model was
    estimated, so use the bootstrap for inference.

    Args:
        df: Observation table
        outcome_col: Name of outcome column
        treatment_col: Name of treatment column
        weights: Weight vector, the name of a weight column in df, or None
            for ordinary least squares
        conf_level: Confidence level of the model-based interval

    Returns:
        Tidy coefficient table (term, estimate, std_error, statistic,
        p_value, conf_low, conf_high)
    """
    design = pd.DataFrame(
        {
            INTERCEPT: np.ones(len(df)),
            treatment_col: df[treatment_col].astype(float).to_numpy(),
        }
    )
    y = df[outcome_col].astype(float).to_numpy()

    if weights is None:
        results = sm.OLS(y, design).fit()
    else:
        if isinstance(weights, str):
            weights = df[weights]
        results = sm.WLS(y, design, weights=np.asarray(weights, dtype=float)).fit()

    return tidy_results(results, conf_level=conf_level)


def extract_term(tidy: pd.DataFrame, term: str) -> pd.Series:
    """Row of a tidy coefficient table for one term."""
    matches = tidy[tidy["term"] == term]
    if matches.empty:
        raise KeyError(f"Term '{term}' not in model terms {tidy['term'].tolist()}")
    return matches.iloc[0]


def estimate_ate_ipw(
    df: pd.DataFrame,
    treatment_col: str,
    outcome_col: str,
    covariates: list[str],
    config: dict | None = None,
) -> pd.DataFrame:
    """
    Propensity model, weights and weighted outcome model on one table.

    A pure function of df: the propensity model is fit on df, the weights
    are built from that fit and applied to the same rows. This is the unit
    of work the bootstrap repeats.

    Args:
        df: Observation table
        treatment_col: Name of treatment column
        outcome_col: Name of outcome column
        covariates: Covariate columns for the propensity model
        config: Full configuration dictionary

    Returns:
        Tidy coefficient table of the weighted outcome model
    """
    config = config or {}

    df_valid = validate_observations(df, treatment_col, outcome_col, covariates)
    df_wts = augment_with_weights(
        df_valid,
        treatment_col,
        covariates,
        propensity_config=config.get("propensity", {}),
        weights_config=config.get("weights", {}),
    )

    return fit_outcome_model(
        df_wts,
        outcome_col,
        treatment_col,
        weights="wts",
        conf_level=config.get("ate", {}).get("conf_level", 0.95),
    )
