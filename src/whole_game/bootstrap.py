"""
Bootstrap inference for IPW estimates.

The IPW point estimate depends on an estimated propensity model, so a valid
bootstrap has to refit that model and rebuild the weights inside every
resample (`fit_ipw`). Reusing weights computed once on the original data
(`fit_ipw_not_quite_right`) treats them as known and is kept only to show
the difference.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional

import numpy as np
import pandas as pd
from joblib import Parallel, delayed

from .ate import estimate_ate_ipw, fit_outcome_model
from .exceptions import ConvergenceError, DataError, DomainError

logger = logging.getLogger(__name__)

APPARENT_ID = "Apparent"
RESAMPLE_ERRORS = (DataError, DomainError, ConvergenceError)


@dataclass(frozen=True, eq=False)
class Split:
    """One bootstrap resample: row indices into the shared, read-only original table."""

    data: pd.DataFrame
    in_id: np.ndarray
    id: str

    @property
    def is_apparent(self) -> bool:
        return self.id == APPARENT_ID

    def analysis(self) -> pd.DataFrame:
        """Materialize the resampled table (a fresh copy)."""
        return self.data.iloc[self.in_id].reset_index(drop=True)


def bootstraps(
    df: pd.DataFrame,
    times: int = 1000,
    apparent: bool = True,
    random_state: Optional[int] = None,
) -> Iterator[Split]:
    """
    Generate bootstrap resamples lazily, one at a time.

    Each resample draws len(df) rows with replacement. With apparent=True
    the original table is yielded first as resample 0 (id 'Apparent');
    the others are 'Bootstrap01', 'Bootstrap02', ... zero-padded to the
    width of times.

    Args:
        df: Original observation table
        times: Number of bootstrap resamples
        apparent: Whether to include the original sample
        random_state: Random seed

    Yields:
        Split objects
    """
    if times < 1:
        raise ValueError(f"times must be positive, got {times}")

    rng = np.random.default_rng(random_state)
    n = len(df)
    width = len(str(times))

    if apparent:
        yield Split(df, np.arange(n), APPARENT_ID)

    for i in range(1, times + 1):
        yield Split(df, rng.integers(0, n, size=n), f"Bootstrap{i:0{width}d}")


def fit_ipw(
    split: Split,
    treatment_col: str,
    outcome_col: str,
    covariates: list[str],
    config: dict | None = None,
) -> pd.DataFrame:
    """
    Correct bootstrap fit: refit propensity model and weights inside the resample.

    Args:
        split: Bootstrap resample
        treatment_col: Name of treatment column
        outcome_col: Name of outcome column
        covariates: Covariates for the propensity model
        config: Full configuration dictionary

    Returns:
        Tidy coefficient table of the weighted outcome model
    """
    return estimate_ate_ipw(split.analysis(), treatment_col, outcome_col, covariates, config)


def fit_ipw_not_quite_right(
    split: Split,
    treatment_col: str,
    outcome_col: str,
    weights_col: str = "wts",
    config: dict | None = None,
) -> pd.DataFrame:
    """
    NOT QUITE RIGHT: reuse weights computed once on the original sample.

    The split's table must already carry weights_col from a propensity model
    fit on the full data. Resampling rows with their old weights ignores the
    uncertainty of the propensity model, so intervals built from these fits
    are not valid. Use fit_ipw instead.
    """
    config = config or {}
    return fit_outcome_model(
        split.analysis(),
        outcome_col,
        treatment_col,
        weights=weights_col,
        conf_level=config.get("ate", {}).get("conf_level", 0.95),
    )


@dataclass
class BootstrapResults:
    """Per-resample fits plus an account of the resamples that were dropped."""

    estimates: pd.DataFrame
    failures: pd.DataFrame
    n_resamples: int
    apparent: bool
    fit_name: str = ""
    n_succeeded: int = field(init=False)

    def __post_init__(self):
        if self.estimates.empty:
            self.n_succeeded = 0
        else:
            ids = self.estimates["id"].unique()
            self.n_succeeded = int(np.sum(ids != APPARENT_ID))

    @property
    def n_failed(self) -> int:
        return self.n_resamples - self.n_succeeded

    def summary(self) -> str:
        return f"{self.n_succeeded}/{self.n_resamples} resamples succeeded"


def _fit_split(fit_fn: Callable, split: Split, fit_kwargs: dict):
    try:
        tidy = fit_fn(split, **fit_kwargs)
    except RESAMPLE_ERRORS as e:
        return split.id, None, (type(e).__name__, str(e))
    return split.id, tidy, None


def run_bootstrap(
    df: pd.DataFrame,
    fit_fn: Callable[..., pd.DataFrame],
    times: int = 1000,
    apparent: bool = True,
    random_state: Optional[int] = None,
    n_jobs: int = 1,
    **fit_kwargs,
) -> BootstrapResults:
    """
    Fit fit_fn on every bootstrap resample of df.

    Resamples are independent, so they can run in parallel (n_jobs > 1);
    results do not depend on it. A DataError, DomainError or
    ConvergenceError in one resample drops that resample and is recorded;
    any other exception propagates.

    Args:
        df: Original observation table
        fit_fn: Function (split, **fit_kwargs) -> tidy coefficient table
        times: Number of bootstrap resamples
        apparent: Whether to also fit the original sample
        random_state: Random seed for resampling
        n_jobs: Number of joblib workers
        **fit_kwargs: Passed to fit_fn

    Returns:
        BootstrapResults
    """
    fit_name = getattr(fit_fn, "__name__", str(fit_fn))
    logger.info(f"Running {times} bootstrap resamples with {fit_name} (n_jobs={n_jobs})...")

    outputs = Parallel(n_jobs=n_jobs)(
        delayed(_fit_split)(fit_fn, split, fit_kwargs)
        for split in bootstraps(df, times=times, apparent=apparent, random_state=random_state)
    )

    fits = []
    failures = []
    for split_id, tidy, failure in outputs:
        if failure is not None:
            error, message = failure
            logger.warning(f"Resample {split_id} dropped: {error}: {message}")
            failures.append({"id": split_id, "error": error, "message": message})
            continue
        fits.append(tidy.assign(id=split_id))

    estimates = pd.concat(fits, ignore_index=True) if fits else pd.DataFrame(columns=["id"])
    results = BootstrapResults(
        estimates=estimates,
        failures=pd.DataFrame(failures, columns=["id", "error", "message"]),
        n_resamples=times,
        apparent=apparent,
        fit_name=fit_name,
    )

    if results.n_failed:
        logger.warning(f"Bootstrap: {results.summary()}")
    else:
        logger.info(f"Bootstrap: {results.summary()}")

    return results


def _term_estimates(results: BootstrapResults, term: str) -> pd.DataFrame:
    if results.estimates.empty:
        raise ValueError(f"No successful resamples: {results.summary()}")

    term_rows = results.estimates[results.estimates["term"] == term]
    if term_rows.empty:
        raise KeyError(f"Term '{term}' not found in bootstrap fits")

    return term_rows


def int_t(
    results: BootstrapResults,
    term: str,
    alpha: float = 0.05,
    include_apparent: bool = False,
) -> pd.DataFrame:
    """
    Studentized (bootstrap-t) confidence interval for one term.

    With the apparent-sample estimate theta and standard error se, each
    resample gives z_b = (theta_b - theta) / se_b. The interval is
    [theta - q(1 - alpha/2) * se, theta - q(alpha/2) * se] where q are
    quantiles of z_b. The reported estimate is the mean of theta_b.

    Args:
        results: Output of run_bootstrap (must include the apparent sample)
        term: Coefficient name, e.g. the treatment column
        alpha: 1 - confidence level
        include_apparent: Whether the apparent fit also enters the
            z distribution and the mean

    Returns:
        One-row DataFrame with term, lower, estimate, upper, alpha, method
    """
    term_rows = _term_estimates(results, term)

    apparent_rows = term_rows[term_rows["id"] == APPARENT_ID]
    if apparent_rows.empty:
        raise ValueError("The studentized interval needs the apparent (original) sample fit")

    theta_obs = float(apparent_rows["estimate"].iloc[0])
    se_obs = float(apparent_rows["std_error"].iloc[0])

    boot_rows = term_rows if include_apparent else term_rows[term_rows["id"] != APPARENT_ID]
    stats = boot_rows["estimate"].to_numpy(dtype=float)
    std_err = boot_rows["std_error"].to_numpy(dtype=float)

    z_dist = (stats - theta_obs) / std_err
    z_dist = z_dist[np.isfinite(z_dist)]
    if len(z_dist) < 2:
        raise ValueError(f"Too few usable resamples for an interval: {results.summary()}")
    if len(z_dist) < 500:
        logger.warning(
            f"Only {len(z_dist)} usable bootstrap resamples; at least 1000 are recommended"
        )

    z_pntl = np.quantile(z_dist, [alpha / 2, 1 - alpha / 2])
    ci = theta_obs - z_pntl * se_obs

    return pd.DataFrame(
        [
            {
                "term": term,
                "lower": float(ci.min()),
                "estimate": float(np.mean(stats)),
                "upper": float(ci.max()),
                "alpha": alpha,
                "method": "student-t",
            }
        ]
    )


def int_pctl(
    results: BootstrapResults,
    term: str,
    alpha: float = 0.05,
    include_apparent: bool = False,
) -> pd.DataFrame:
    """Percentile confidence interval for one term."""
    term_rows = _term_estimates(results, term)
    if not include_apparent:
        term_rows = term_rows[term_rows["id"] != APPARENT_ID]

    stats = term_rows["estimate"].to_numpy(dtype=float)
    if len(stats) < 2:
        raise ValueError(f"Too few usable resamples for an interval: {results.summary()}")

    lower, upper = np.quantile(stats, [alpha / 2, 1 - alpha / 2])

    return pd.DataFrame(
        [
            {
                "term": term,
                "lower": float(lower),
                "estimate": float(np.mean(stats)),
                "upper": float(upper),
                "alpha": alpha,
                "method": "percentile",
            }
        ]
    )
