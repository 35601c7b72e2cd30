"""
Sensitivity analysis for an unmeasured confounder.

Closed-form tipping-point and adjustment formulas for a linear outcome
model: an unmeasured confounder U shifts the treatment coefficient by
(difference in U between exposure groups) * (effect of U on the outcome).
"""

import logging

import numpy as np
import pandas as pd

from .exceptions import DomainError

logger = logging.getLogger(__name__)


def _as_array(values, name: str) -> np.ndarray:
    arr = np.atleast_1d(np.asarray(values, dtype=float))
    if not np.all(np.isfinite(arr)):
        raise DomainError(f"{name} must be finite")
    return arr


def tip_coef(
    effect_observed: float,
    exposure_confounder_effect=None,
    confounder_outcome_effect=None,
) -> pd.DataFrame:
    """
    Tipping point: confounder strength that moves an observed effect to zero.

    Give exactly one of the two confounder effects (scalar or a sweep of
    values); the other is solved from

        effect_observed = exposure_confounder_effect * confounder_outcome_effect

    exposure_confounder_effect is the scaled mean difference in the
    confounder between exposure groups; confounder_outcome_effect is the
    change in outcome per unit of the confounder. Pass the interval bound
    closest to zero as effect_observed to find what would make the
    interval cross the null.

    Args:
        effect_observed: Observed effect (e.g. an interval bound)
        exposure_confounder_effect: Assumed exposure-confounder effect(s)
        confounder_outcome_effect: Assumed confounder-outcome effect(s)

    Returns:
        DataFrame with effect_adjusted, effect_observed,
        exposure_confounder_effect, confounder_outcome_effect,
        n_unmeasured_confounders
    """
    if (exposure_confounder_effect is None) == (confounder_outcome_effect is None):
        raise ValueError(
            "Specify exactly one of exposure_confounder_effect or confounder_outcome_effect"
        )

    if exposure_confounder_effect is not None:
        given = _as_array(exposure_confounder_effect, "exposure_confounder_effect")
        if np.any(given == 0):
            raise DomainError("exposure_confounder_effect must be non-zero")
        exposure_effects = given
        outcome_effects = effect_observed / given
    else:
        given = _as_array(confounder_outcome_effect, "confounder_outcome_effect")
        if np.any(given == 0):
            raise DomainError("confounder_outcome_effect must be non-zero")
        outcome_effects = given
        exposure_effects = effect_observed / given

    tipping_points = pd.DataFrame(
        {
            "effect_adjusted": 0.0,
            "effect_observed": float(effect_observed),
            "exposure_confounder_effect": exposure_effects,
            "confounder_outcome_effect": outcome_effects,
            "n_unmeasured_confounders": 1,
        }
    )

    logger.info(
        f"Tipping points for observed effect {effect_observed:.2f}: "
        f"{len(tipping_points)} scenarios"
    )

    return tipping_points


def adjust_coef(
    effect_observed,
    exposure_confounder_effect: float,
    confounder_outcome_effect: float,
) -> pd.DataFrame:
    """
    Adjust observed effect(s) for an assumed continuous unmeasured confounder.

    effect_adjusted = effect_observed - exposure_confounder_effect * confounder_outcome_effect
    """
    effects = _as_array(effect_observed, "effect_observed")

    return pd.DataFrame(
        {
            "effect_adjusted": effects - exposure_confounder_effect * confounder_outcome_effect,
            "effect_observed": effects,
            "exposure_confounder_effect": float(exposure_confounder_effect),
            "confounder_outcome_effect": float(confounder_outcome_effect),
        }
    )


def _check_prevalence(value: float, name: str) -> None:
    if not 0 <= value <= 1:
        raise DomainError(f"{name} must be in [0, 1], got {value}")


def _binary_confounding_factor(
    exposed_confounder_prev: float,
    unexposed_confounder_prev: float,
    confounder_outcome_effect: float,
    loglinear: bool,
) -> float:
    if loglinear:
        scale = np.exp(confounder_outcome_effect)
        return float(
            np.log(
                (scale * exposed_confounder_prev + (1 - exposed_confounder_prev))
                / (scale * unexposed_confounder_prev + (1 - unexposed_confounder_prev))
            )
        )
    return (exposed_confounder_prev - unexposed_confounder_prev) * confounder_outcome_effect


def adjust_coef_with_binary(
    effect_observed,
    exposed_confounder_prev: float,
    unexposed_confounder_prev: float,
    confounder_outcome_effect: float,
    loglinear: bool = False,
) -> pd.DataFrame:
    """
    Adjust observed effect(s) for an assumed binary unmeasured confounder.

    Linear outcome model:
        effect_adjusted = effect_observed - (p1 - p0) * confounder_outcome_effect

    Log-linear outcome model (effects on the log scale):
        effect_adjusted = effect_observed
            - log((e^g p1 + 1 - p1) / (e^g p0 + 1 - p0))

    where p1, p0 are the confounder prevalences among the exposed and
    unexposed and g is confounder_outcome_effect. Pass (estimate, lower,
    upper) to adjust a whole interval.

    Args:
        effect_observed: Observed effect(s)
        exposed_confounder_prev: Confounder prevalence among the exposed
        unexposed_confounder_prev: Confounder prevalence among the unexposed
        confounder_outcome_effect: Effect of the confounder on the outcome
        loglinear: Whether the effect is on the log-linear scale

    Returns:
        DataFrame with one row per observed effect
    """
    _check_prevalence(exposed_confounder_prev, "exposed_confounder_prev")
    _check_prevalence(unexposed_confounder_prev, "unexposed_confounder_prev")

    effects = _as_array(effect_observed, "effect_observed")
    confounding_factor = _binary_confounding_factor(
        exposed_confounder_prev,
        unexposed_confounder_prev,
        confounder_outcome_effect,
        loglinear,
    )

    adjusted = pd.DataFrame(
        {
            "effect_adjusted": effects - confounding_factor,
            "effect_observed": effects,
            "exposed_confounder_prev": exposed_confounder_prev,
            "unexposed_confounder_prev": unexposed_confounder_prev,
            "confounder_outcome_effect": confounder_outcome_effect,
        }
    )

    logger.info(f"Adjusted {len(effects)} effect(s) by {confounding_factor:.3f}")

    return adjusted


def tip_coef_with_binary(
    effect_observed: float,
    exposed_confounder_prev: float,
    unexposed_confounder_prev,
) -> pd.DataFrame:
    """
    Confounder-outcome effect of a binary confounder that tips the effect to zero.

    Linear outcome model: confounder_outcome_effect = effect_observed / (p1 - p0),
    one row per unexposed prevalence in the sweep.
    """
    _check_prevalence(exposed_confounder_prev, "exposed_confounder_prev")
    unexposed = _as_array(unexposed_confounder_prev, "unexposed_confounder_prev")
    for value in unexposed:
        _check_prevalence(value, "unexposed_confounder_prev")

    prev_diff = exposed_confounder_prev - unexposed
    if np.any(prev_diff == 0):
        raise DomainError("Confounder prevalences must differ between exposure groups")

    return pd.DataFrame(
        {
            "effect_adjusted": 0.0,
            "effect_observed": float(effect_observed),
            "exposed_confounder_prev": exposed_confounder_prev,
            "unexposed_confounder_prev": unexposed,
            "confounder_outcome_effect": effect_observed / prev_diff,
            "n_unmeasured_confounders": 1,
        }
    )
