"""
The whole game: every step of the causal workflow in order.

    data → propensity scores → weights → overlap & balance
         → weighted ATE → bootstrap interval → sensitivity analysis
"""

import logging

import pandas as pd

from . import ate, balance, bootstrap, data, propensity, sensitivity
from .utils import format_ci

logger = logging.getLogger(__name__)


def _banner(title: str) -> None:
    logger.info("=" * 60)
    logger.info(title)
    logger.info("=" * 60)


def bound_nearest_null(interval: pd.Series) -> float:
    """Interval bound closest to zero: the one a confounder has to move first."""
    return float(interval["upper"] if interval["estimate"] < 0 else interval["lower"])


def run_whole_game(df: pd.DataFrame, config: dict) -> dict:
    """
    Run the full workflow on an observation table.

    Args:
        df: Observation table
        config: Configuration dictionary (see config/default.yaml)

    Returns:
        Dictionary of result tables and summaries, keyed by step
    """
    data_config = config.get("data", {})
    treatment_col = data_config.get("treatment", "net")
    outcome_col = data_config.get("outcome", "malaria_risk")
    covariates = list(data_config.get("covariates", data.NET_COVARIATES))
    balance_config = config.get("balance", {})
    weights_config = config.get("weights", {})
    boot_config = config.get("bootstrap", {})
    sens_config = config.get("sensitivity", {})
    conf_level = config.get("ate", {}).get("conf_level", 0.95)

    results: dict = {}

    _banner("STEP 1: EXPLORE DATA")
    df_valid = data.validate_observations(df, treatment_col, outcome_col, covariates)
    logger.info(f"{len(df_valid):,} rows, treatment rate {df_valid[treatment_col].mean():.1%}")
    results["outcome_by_group"] = data.summarize_outcome_by_group(
        df_valid, treatment_col, outcome_col
    )
    T = df_valid[treatment_col].to_numpy()
    Y = df_valid[outcome_col].to_numpy(dtype=float)
    results["ate_naive"] = ate.estimate_ate_naive(Y, T)
    results["naive_model"] = ate.fit_outcome_model(
        df_valid, outcome_col, treatment_col, conf_level=conf_level
    )

    _banner("STEP 2: PROPENSITY SCORE MODEL")
    model, scores = propensity.fit_propensity_model(
        df_valid, treatment_col, covariates, config.get("propensity", {})
    )
    results["propensity_diagnostics"] = model.compute_diagnostics(T)
    logger.info(f"Propensity model AUC: {results['propensity_diagnostics']['auc']:.3f}")

    _banner("STEP 3: INVERSE PROBABILITY WEIGHTS")
    weights = propensity.compute_ipw_weights(
        T,
        scores,
        estimand=weights_config.get("estimand", "ate"),
        stabilize=weights_config.get("stabilize", False),
        clip_epsilon=weights_config.get("clip_epsilon"),
    )
    df_wts = df_valid.assign(propensity_score=scores, wts=weights)
    results["data_with_weights"] = df_wts
    results["weight_summary"] = propensity.summarize_weights(weights)

    _banner("STEP 4: OVERLAP AND BALANCE")
    smd_threshold = balance_config.get("smd_threshold", 0.1)
    results["overlap"] = propensity.assess_overlap(scores, T)
    results["positivity"] = balance.check_positivity(scores, T)
    results["mirror_histogram"] = balance.mirror_histogram(
        scores, T, weights=weights, bins=balance_config.get("histogram_bins", 50)
    )
    results["smd"] = balance.tidy_smd(df_wts, covariates, treatment_col, weights_cols=["wts"])
    X = df_wts[covariates].to_numpy(dtype=float)
    _, balance_after, results["balance_summary"] = balance.compare_balance_before_after(
        X, T, covariates, weights, smd_threshold=smd_threshold
    )
    results["balance_quality"] = balance.assess_balance_quality(balance_after, smd_threshold)

    _banner("STEP 5: WEIGHTED OUTCOME MODEL")
    results["weighted_model"] = ate.fit_outcome_model(
        df_wts, outcome_col, treatment_col, weights="wts", conf_level=conf_level
    )
    point = ate.extract_term(results["weighted_model"], treatment_col)
    logger.info(
        "IPW ATE (model-based CI, not valid for IPW): "
        f"{format_ci(point['estimate'], point['conf_low'], point['conf_high'])}"
    )

    _banner("STEP 6: BOOTSTRAP")
    alpha = boot_config.get("alpha", 0.05)
    include_apparent = boot_config.get("include_apparent", False)
    boot_kwargs = dict(
        times=boot_config.get("times", 1000),
        apparent=True,
        random_state=config.get("random_state", 42),
        n_jobs=boot_config.get("n_jobs", 1),
    )

    boot_results = bootstrap.run_bootstrap(
        df_valid,
        bootstrap.fit_ipw,
        treatment_col=treatment_col,
        outcome_col=outcome_col,
        covariates=covariates,
        config=config,
        **boot_kwargs,
    )
    results["bootstrap"] = boot_results
    results["bootstrap_summary"] = boot_results.summary()
    results["boot_estimate"] = bootstrap.int_t(
        boot_results, treatment_col, alpha=alpha, include_apparent=include_apparent
    )
    interval = results["boot_estimate"].iloc[0]
    logger.info(
        f"Bootstrap-t ATE: {format_ci(interval['estimate'], interval['lower'], interval['upper'])}"
    )

    if boot_config.get("run_not_quite_right", False):
        logger.info("Contrast: bootstrap that reuses the original weights (not quite right)")
        wrong_results = bootstrap.run_bootstrap(
            df_wts,
            bootstrap.fit_ipw_not_quite_right,
            treatment_col=treatment_col,
            outcome_col=outcome_col,
            weights_col="wts",
            config=config,
            **boot_kwargs,
        )
        results["boot_estimate_not_quite_right"] = bootstrap.int_t(
            wrong_results, treatment_col, alpha=alpha, include_apparent=include_apparent
        )

    _banner("STEP 7: SENSITIVITY ANALYSIS")
    results["tipping_points"] = sensitivity.tip_coef(
        bound_nearest_null(interval),
        exposure_confounder_effect=sens_config.get("exposure_confounder_effect", [1, 2, 3, 4, 5]),
    )
    results["adjusted_estimates"] = sensitivity.adjust_coef_with_binary(
        [interval["estimate"], interval["lower"], interval["upper"]],
        exposed_confounder_prev=sens_config.get("exposed_confounder_prev", 0.26),
        unexposed_confounder_prev=sens_config.get("unexposed_confounder_prev", 0.05),
        confounder_outcome_effect=sens_config.get("confounder_outcome_effect", -10),
    )

    return results
