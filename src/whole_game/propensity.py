"""
Propensity score modeling and inverse probability weights.
"""

import logging
import warnings

import numpy as np
import pandas as pd
from sklearn.exceptions import ConvergenceWarning
from sklearn.linear_model import LogisticRegression
from sklearn.metrics import average_precision_score, roc_auc_score
from sklearn.pipeline import make_pipeline
from sklearn.preprocessing import StandardScaler

from .data import validate_observations
from .exceptions import ConvergenceError, DomainError

logger = logging.getLogger(__name__)

ESTIMANDS = ("ate", "att", "atc", "atm", "ato")


class PropensityModel:
    """
    Propensity score model: P(T=1 | X) by maximum-likelihood logistic regression.

    The regression is unpenalized, so its fitted probabilities match a
    binomial GLM of treatment on the covariates. Covariates are standardized
    first; the MLE is invariant to that rescaling and the optimizer behaves
    better on raw units like income.

    Under perfect separation the fitted scores pile up at 0 and 1. That is
    logged, not raised: the weights become extreme and it is up to the
    caller (or the weight builder's clipping policy) to deal with them.
    """

    def __init__(
        self,
        max_iter: int = 1000,
        tol: float = 1e-6,
        on_nonconvergence: str = "warn",
        boundary_eps: float = 1e-8,
    ):
        """
        Initialize propensity model.

        Args:
            max_iter: Maximum optimizer iterations
            tol: Optimizer tolerance
            on_nonconvergence: 'warn' to log and keep the fit, 'raise' to
                raise ConvergenceError
            boundary_eps: Scores within this distance of 0 or 1 count as
                boundary scores for the separation warning
        """
        if on_nonconvergence not in ("warn", "raise"):
            raise ValueError(f"Unknown on_nonconvergence: {on_nonconvergence}")

        self.max_iter = max_iter
        self.tol = tol
        self.on_nonconvergence = on_nonconvergence
        self.boundary_eps = boundary_eps

        self.model = None
        self.propensity_scores_ = None
        self.converged_ = None
        self.n_iter_ = None
        self.n_boundary_ = None

    def fit(self, X: np.ndarray, T: np.ndarray) -> "PropensityModel":
        """
        Fit propensity score model.

        Args:
            X: Covariate matrix (n_samples, n_features)
            T: Treatment indicator (n_samples,)

        Returns:
            Self (fitted)
        """
        self.model = make_pipeline(
            StandardScaler(),
            LogisticRegression(penalty=None, max_iter=self.max_iter, tol=self.tol),
        )

        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always", ConvergenceWarning)
            self.model.fit(X, T)

        self.n_iter_ = int(self.model[-1].n_iter_[0])
        convergence_msgs = [
            str(warn.message) for warn in caught if issubclass(warn.category, ConvergenceWarning)
        ]
        self.converged_ = not convergence_msgs and self.n_iter_ < self.max_iter

        if not self.converged_:
            msg = f"Propensity model did not converge after {self.n_iter_} iterations"
            if self.on_nonconvergence == "raise":
                raise ConvergenceError(msg)
            logger.warning(msg)

        self.propensity_scores_ = self.predict_proba(X)

        self.n_boundary_ = int(
            np.sum(
                (self.propensity_scores_ < self.boundary_eps)
                | (self.propensity_scores_ > 1 - self.boundary_eps)
            )
        )
        if self.n_boundary_:
            logger.warning(
                f"{self.n_boundary_} fitted propensity scores are numerically 0 or 1 "
                "(possible separation)"
            )

        logger.debug(f"Propensity model fitted in {self.n_iter_} iterations")

        return self

    def predict_proba(self, X: np.ndarray) -> np.ndarray:
        """
        Predict propensity scores.

        Args:
            X: Covariate matrix with the columns used in fit

        Returns:
            Propensity scores P(T=1 | X)
        """
        if self.model is None:
            raise ValueError("Model not fitted yet")

        return self.model.predict_proba(X)[:, 1]

    def compute_diagnostics(self, T: np.ndarray) -> dict[str, float]:
        """
        Compute propensity model diagnostics on the fitted sample.

        Args:
            T: Treatment indicator used in fit

        Returns:
            Dictionary of diagnostic metrics
        """
        if self.propensity_scores_ is None:
            raise ValueError("Model not fitted yet")

        p_treated = self.propensity_scores_[T == 1]
        p_control = self.propensity_scores_[T == 0]

        overlap_min = max(p_treated.min(), p_control.min())
        overlap_max = min(p_treated.max(), p_control.max())

        diagnostics = {
            "auc": roc_auc_score(T, self.propensity_scores_),
            "average_precision": average_precision_score(T, self.propensity_scores_),
            "brier_score": float(np.mean((T - self.propensity_scores_) ** 2)),
            "overlap_range": float(overlap_max - overlap_min),
            "propensity_mean": float(self.propensity_scores_.mean()),
            "propensity_std": float(self.propensity_scores_.std()),
            "converged": self.converged_,
            "n_boundary": self.n_boundary_,
        }

        return diagnostics


def fit_propensity_model(
    df: pd.DataFrame,
    treatment_col: str,
    covariates: list[str],
    config: dict | None = None,
) -> tuple[PropensityModel, np.ndarray]:
    """
    Validate the table and fit a propensity model of treatment on covariates.

    Args:
        df: Observation table
        treatment_col: Name of treatment column
        covariates: Covariate columns
        config: The 'propensity' config section

    Returns:
        Tuple of (fitted model, propensity scores for the rows of df)
    """
    config = config or {}
    df_valid = validate_observations(df, treatment_col, None, covariates)

    model = PropensityModel(
        max_iter=config.get("max_iter", 1000),
        tol=config.get("tol", 1e-6),
        on_nonconvergence=config.get("on_nonconvergence", "warn"),
    )
    model.fit(df_valid[covariates].to_numpy(dtype=float), df_valid[treatment_col].to_numpy())

    return model, model.propensity_scores_


def compute_ipw_weights(
    T: np.ndarray,
    propensity_scores: np.ndarray,
    estimand: str = "ate",
    stabilize: bool = False,
    clip_epsilon: float | None = None,
) -> np.ndarray:
    """
    Compute inverse propensity weights (IPW).

    ATE weights:
    - For treated (T=1): w = 1 / p(X)
    - For control (T=0): w = 1 / (1 - p(X))

    Other estimands: 'att' (treated 1, control p/(1-p)), 'atc' (treated
    (1-p)/p, control 1), 'atm' (matching weights, min(p, 1-p) over the
    group probability) and 'ato' (overlap weights, treated 1-p, control p).

    Stabilized weights multiply each group's weights by the marginal
    probability of that group, P(T=1) or P(T=0).

    Boundary policy: a score of exactly 0 or 1 (or outside [0, 1]) has no
    finite weight. By default that raises DomainError. With clip_epsilon set,
    scores are clipped to [clip_epsilon, 1 - clip_epsilon] first and the
    number of clipped rows is logged.

    Args:
        T: Treatment indicator (n_samples,)
        propensity_scores: Propensity scores (n_samples,)
        estimand: One of 'ate', 'att', 'atc', 'atm', 'ato'
        stabilize: Whether to use stabilized weights
        clip_epsilon: Optional clipping distance from the 0/1 bounds

    Returns:
        IPW weights (n_samples,)
    """
    if estimand not in ESTIMANDS:
        raise ValueError(f"Unknown estimand: {estimand}. Choose from {ESTIMANDS}")

    T = np.asarray(T).astype(int)
    p = np.asarray(propensity_scores, dtype=float)

    if clip_epsilon is not None:
        n_clipped = int(np.sum((p < clip_epsilon) | (p > 1 - clip_epsilon)))
        if n_clipped:
            logger.warning(
                f"Clipped {n_clipped} propensity scores to "
                f"[{clip_epsilon:g}, {1 - clip_epsilon:g}]"
            )
        p = np.clip(p, clip_epsilon, 1 - clip_epsilon)

    at_boundary = (p <= 0) | (p >= 1) | ~np.isfinite(p)
    if at_boundary.any():
        raise DomainError(
            f"{int(at_boundary.sum())} propensity scores are at or outside the "
            "[0, 1] bounds; weights are undefined"
        )

    treated = T == 1
    weights = np.empty_like(p)

    if estimand == "ate":
        weights[treated] = 1.0 / p[treated]
        weights[~treated] = 1.0 / (1 - p[~treated])
    elif estimand == "att":
        weights[treated] = 1.0
        weights[~treated] = p[~treated] / (1 - p[~treated])
    elif estimand == "atc":
        weights[treated] = (1 - p[treated]) / p[treated]
        weights[~treated] = 1.0
    elif estimand == "atm":
        smaller = np.minimum(p, 1 - p)
        weights[treated] = smaller[treated] / p[treated]
        weights[~treated] = smaller[~treated] / (1 - p[~treated])
    else:
        weights[treated] = 1 - p[treated]
        weights[~treated] = p[~treated]

    if stabilize:
        treatment_prob = treated.mean()
        weights[treated] *= treatment_prob
        weights[~treated] *= 1 - treatment_prob

    return weights


def summarize_weights(weights: np.ndarray) -> dict[str, float]:
    """
    Summarize a weight distribution.

    Heavy weights inflate variance; the Kish effective sample size,
    (sum w)^2 / sum w^2, shows how many unweighted rows they are worth.
    """
    weights = np.asarray(weights, dtype=float)

    summary = {
        "mean": float(weights.mean()),
        "std": float(weights.std()),
        "min": float(weights.min()),
        "max": float(weights.max()),
        "effective_sample_size": float(weights.sum() ** 2 / np.sum(weights**2)),
    }

    logger.info(f"IPW weights - mean: {summary['mean']:.3f}, std: {summary['std']:.3f}")
    logger.info(f"IPW weights - range: [{summary['min']:.3f}, {summary['max']:.3f}]")
    logger.info(
        f"Effective sample size: {summary['effective_sample_size']:.1f} of {len(weights)}"
    )

    return summary


def augment_with_weights(
    df: pd.DataFrame,
    treatment_col: str,
    covariates: list[str],
    propensity_config: dict | None = None,
    weights_config: dict | None = None,
    score_col: str = "propensity_score",
    weights_col: str = "wts",
) -> pd.DataFrame:
    """
    Fit the propensity model on df and return a copy with scores and weights.

    Scores and weights always come from a model fit on this same table.

    Args:
        df: Observation table
        treatment_col: Name of treatment column
        covariates: Covariate columns
        propensity_config: The 'propensity' config section
        weights_config: The 'weights' config section
        score_col: Name of the propensity score column to add
        weights_col: Name of the weight column to add

    Returns:
        Copy of df with score_col and weights_col added
    """
    weights_config = weights_config or {}

    _, scores = fit_propensity_model(df, treatment_col, covariates, propensity_config)

    df_wts = df.copy()
    df_wts[score_col] = scores
    df_wts[weights_col] = compute_ipw_weights(
        df_wts[treatment_col].astype(int).to_numpy(),
        scores,
        estimand=weights_config.get("estimand", "ate"),
        stabilize=weights_config.get("stabilize", False),
        clip_epsilon=weights_config.get("clip_epsilon"),
    )

    return df_wts


def assess_overlap(
    propensity_scores: np.ndarray,
    T: np.ndarray,
    threshold: float = 0.1,
) -> dict[str, float]:
    """
    Assess overlap in propensity score distributions.

    Lack of overlap means some treated units have no comparable controls
    (or vice versa), and their weights carry the estimate.

    Args:
        propensity_scores: Propensity scores
        T: Treatment indicator
        threshold: Threshold for defining poor overlap

    Returns:
        Dictionary of overlap metrics
    """
    p_treated = propensity_scores[T == 1]
    p_control = propensity_scores[T == 0]

    common_min = max(p_treated.min(), p_control.min())
    common_max = min(p_treated.max(), p_control.max())

    in_support_treated = np.mean((p_treated >= common_min) & (p_treated <= common_max))
    in_support_control = np.mean((p_control >= common_min) & (p_control <= common_max))

    overlap_metrics = {
        "common_support_min": float(common_min),
        "common_support_max": float(common_max),
        "common_support_range": float(common_max - common_min),
        "treated_in_support": float(in_support_treated),
        "control_in_support": float(in_support_control),
        "treated_poor_overlap": float(np.mean(p_treated > (1 - threshold))),
        "control_poor_overlap": float(np.mean(p_control < threshold)),
    }

    logger.info(f"Overlap assessment - common support: [{common_min:.3f}, {common_max:.3f}]")
    logger.info(f"Treated in support: {in_support_treated:.1%}")
    logger.info(f"Control in support: {in_support_control:.1%}")

    return overlap_metrics
