"""
Balance and overlap diagnostics for causal inference.

Assess covariate balance between treatment and control groups,
before and after propensity score weighting. Everything here returns
tables for human review; nothing is enforced as a pass/fail gate.
"""

import logging
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from .utils import compute_standardized_mean_difference, weighted_mean_var

logger = logging.getLogger(__name__)


def compute_balance_table(
    X: np.ndarray,
    T: np.ndarray,
    feature_names: List[str],
    weights: Optional[np.ndarray] = None,
) -> pd.DataFrame:
    """
    Compute balance table with signed standardized mean differences.

    Args:
        X: Covariate matrix (n_samples, n_features)
        T: Treatment indicator
        feature_names: List of covariate names
        weights: Optional weights (e.g., IPW weights)

    Returns:
        DataFrame with balance statistics, sorted by |SMD|
    """
    balance_stats = []

    for i, feature_name in enumerate(feature_names):
        x = X[:, i]
        x_treated = x[T == 1]
        x_control = x[T == 0]

        if weights is not None:
            w_treated = weights[T == 1]
            w_control = weights[T == 0]
        else:
            w_treated = None
            w_control = None

        smd = compute_standardized_mean_difference(x_treated, x_control, w_treated, w_control)
        mean_treated, _ = weighted_mean_var(x_treated, w_treated)
        mean_control, _ = weighted_mean_var(x_control, w_control)

        balance_stats.append(
            {
                "feature": feature_name,
                "mean_treated": mean_treated,
                "mean_control": mean_control,
                "diff": mean_treated - mean_control,
                "smd": smd,
                "abs_smd": abs(smd),
            }
        )

    df_balance = pd.DataFrame(balance_stats)
    df_balance = df_balance.sort_values("abs_smd", ascending=False).reset_index(drop=True)

    return df_balance


def tidy_smd(
    df: pd.DataFrame,
    covariates: List[str],
    treatment_col: str,
    weights_cols: Optional[List[str]] = None,
) -> pd.DataFrame:
    """
    Long-format SMD table: one row per (variable, method).

    method is 'observed' for the unweighted comparison and the weight
    column name for each weighted one. This is the table a Love plot draws.

    Args:
        df: Observation table with weights columns
        covariates: Covariates to compare
        treatment_col: Name of treatment column
        weights_cols: Weight columns to compare with

    Returns:
        DataFrame with columns variable, method, treatment, smd
    """
    X = df[covariates].to_numpy(dtype=float)
    T = df[treatment_col].astype(int).to_numpy()

    methods: List[Tuple[str, Optional[np.ndarray]]] = [("observed", None)]
    for col in weights_cols or []:
        methods.append((col, df[col].to_numpy(dtype=float)))

    rows = []
    for method, weights in methods:
        table = compute_balance_table(X, T, covariates, weights=weights)
        for _, row in table.iterrows():
            rows.append(
                {
                    "variable": row["feature"],
                    "method": method,
                    "treatment": treatment_col,
                    "smd": row["smd"],
                }
            )

    return pd.DataFrame(rows)


def compare_balance_before_after(
    X: np.ndarray,
    T: np.ndarray,
    feature_names: List[str],
    weights: np.ndarray,
    smd_threshold: float = 0.1,
) -> Tuple[pd.DataFrame, pd.DataFrame, Dict[str, float]]:
    """
    Compare covariate balance before and after weighting.

    Args:
        X: Covariate matrix
        T: Treatment indicator
        feature_names: List of covariate names
        weights: IPW weights
        smd_threshold: Rule-of-thumb |SMD| threshold

    Returns:
        Tuple of (balance_before, balance_after, summary_stats)
    """
    logger.info("Computing balance before and after weighting...")

    balance_before = compute_balance_table(X, T, feature_names, weights=None)
    balance_after = compute_balance_table(X, T, feature_names, weights=weights)

    summary = {
        "mean_abs_smd_before": balance_before["abs_smd"].mean(),
        "max_abs_smd_before": balance_before["abs_smd"].max(),
        "mean_abs_smd_after": balance_after["abs_smd"].mean(),
        "max_abs_smd_after": balance_after["abs_smd"].max(),
        "fraction_below_threshold_before": (balance_before["abs_smd"] < smd_threshold).mean(),
        "fraction_below_threshold_after": (balance_after["abs_smd"] < smd_threshold).mean(),
    }

    logger.info("Balance Summary:")
    logger.info(f"  Before weighting - Mean |SMD|: {summary['mean_abs_smd_before']:.3f}")
    logger.info(f"  After weighting  - Mean |SMD|: {summary['mean_abs_smd_after']:.3f}")
    logger.info(
        f"  Fraction with |SMD| < {smd_threshold} (before): "
        f"{summary['fraction_below_threshold_before']:.1%}"
    )
    logger.info(
        f"  Fraction with |SMD| < {smd_threshold} (after):  "
        f"{summary['fraction_below_threshold_after']:.1%}"
    )

    return balance_before, balance_after, summary


def assess_balance_quality(
    balance_df: pd.DataFrame,
    smd_threshold: float = 0.1,
) -> Dict[str, object]:
    """
    Assess overall balance quality.

    Common rule of thumb: |SMD| < 0.1 indicates good balance.

    Args:
        balance_df: Output of compute_balance_table
        smd_threshold: Threshold for acceptable balance

    Returns:
        Dictionary of balance quality metrics
    """
    if "abs_smd" not in balance_df.columns:
        raise ValueError("Balance DataFrame must have an 'abs_smd' column")

    smds = balance_df["abs_smd"].to_numpy()

    quality_metrics = {
        "mean_abs_smd": float(smds.mean()),
        "max_abs_smd": float(smds.max()),
        "fraction_below_threshold": float((smds < smd_threshold).mean()),
        "n_above_threshold": int((smds >= smd_threshold).sum()),
        "problematic_features": balance_df.loc[
            balance_df["abs_smd"] >= smd_threshold, "feature"
        ].tolist(),
    }

    if quality_metrics["fraction_below_threshold"] >= 0.9:
        quality_metrics["assessment"] = "Good"
    elif quality_metrics["fraction_below_threshold"] >= 0.7:
        quality_metrics["assessment"] = "Acceptable"
    else:
        quality_metrics["assessment"] = "Poor"

    logger.info(f"Balance Quality Assessment: {quality_metrics['assessment']}")
    if quality_metrics["problematic_features"]:
        logger.warning(
            f"Covariates with |SMD| >= {smd_threshold}: "
            f"{quality_metrics['problematic_features'][:5]}"
        )

    return quality_metrics


def compute_variance_ratio(
    X: np.ndarray,
    T: np.ndarray,
    feature_names: List[str],
    weights: Optional[np.ndarray] = None,
) -> pd.DataFrame:
    """
    Compute variance ratios between treatment and control groups.

    Variance ratio = Var(X|T=1) / Var(X|T=0); values between 0.5 and 2
    are usually considered balanced.
    """
    variance_ratios = []

    for i, feature_name in enumerate(feature_names):
        x = X[:, i]
        w_treated = weights[T == 1] if weights is not None else None
        w_control = weights[T == 0] if weights is not None else None

        _, var_treated = weighted_mean_var(x[T == 1], w_treated)
        _, var_control = weighted_mean_var(x[T == 0], w_control)

        variance_ratios.append(
            {
                "feature": feature_name,
                "var_treated": var_treated,
                "var_control": var_control,
                "variance_ratio": var_treated / var_control if var_control > 0 else np.nan,
            }
        )

    return pd.DataFrame(variance_ratios)


def check_positivity(
    propensity_scores: np.ndarray,
    T: np.ndarray,
    lower_threshold: float = 0.01,
    upper_threshold: float = 0.99,
) -> Dict[str, object]:
    """
    Check positivity assumption (overlap in propensity scores).

    Positivity requires that all units have some probability of receiving
    either treatment or control: 0 < P(T=1|X) < 1

    Args:
        propensity_scores: Propensity scores
        T: Treatment indicator
        lower_threshold: Lower bound for acceptable propensity scores
        upper_threshold: Upper bound for acceptable propensity scores

    Returns:
        Dictionary of positivity diagnostics
    """
    p_treated = propensity_scores[T == 1]
    p_control = propensity_scores[T == 0]

    n_treated_low = int((p_treated < lower_threshold).sum())
    n_treated_high = int((p_treated > upper_threshold).sum())
    n_control_low = int((p_control < lower_threshold).sum())
    n_control_high = int((p_control > upper_threshold).sum())

    total_violations = n_treated_low + n_treated_high + n_control_low + n_control_high

    diagnostics = {
        "n_treated_low_propensity": n_treated_low,
        "n_treated_high_propensity": n_treated_high,
        "n_control_low_propensity": n_control_low,
        "n_control_high_propensity": n_control_high,
        "total_violations": total_violations,
        "violation_rate": total_violations / len(propensity_scores),
        "propensity_range_treated": (float(p_treated.min()), float(p_treated.max())),
        "propensity_range_control": (float(p_control.min()), float(p_control.max())),
    }

    if diagnostics["violation_rate"] > 0.05:
        logger.warning(
            f"Positivity violations detected: {total_violations} units "
            f"({diagnostics['violation_rate']:.1%})"
        )
    else:
        logger.info(f"Positivity check passed: {diagnostics['violation_rate']:.1%} violations")

    return diagnostics


def mirror_histogram(
    propensity_scores: np.ndarray,
    T: np.ndarray,
    weights: Optional[np.ndarray] = None,
    bins: int = 50,
) -> pd.DataFrame:
    """
    Binned propensity score counts for a mirrored histogram.

    Treated counts are positive and control counts negative, so the two
    distributions face each other across zero. When weights are given a
    weighted count column is added next to the raw one, which shows how
    weighting reshapes each group toward the combined population.

    Args:
        propensity_scores: Propensity scores
        T: Treatment indicator
        weights: Optional IPW weights
        bins: Number of equal-width bins on [0, 1]

    Returns:
        DataFrame with bin_left, bin_right, group, count (and weighted_count)
    """
    edges = np.linspace(0, 1, bins + 1)
    rows = []

    for group, sign in ((1, 1.0), (0, -1.0)):
        mask = T == group
        counts, _ = np.histogram(propensity_scores[mask], bins=edges)
        table = pd.DataFrame(
            {
                "bin_left": edges[:-1],
                "bin_right": edges[1:],
                "group": group,
                "count": sign * counts,
            }
        )
        if weights is not None:
            weighted, _ = np.histogram(
                propensity_scores[mask], bins=edges, weights=weights[mask]
            )
            table["weighted_count"] = sign * weighted
        rows.append(table)

    return pd.concat(rows, ignore_index=True)
