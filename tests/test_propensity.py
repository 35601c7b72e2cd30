"""
Tests for propensity score estimation and IPW weights.
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import numpy as np
import pandas as pd
import pytest

from whole_game import ate, data, propensity
from whole_game.exceptions import ConvergenceError, DataError, DomainError

COVARIATES = ["x1", "x2", "x3"]


@pytest.fixture
def synthetic_df():
    """Confounded synthetic data with known propensity scores."""
    df, _ = data.generate_synthetic_data(
        n_samples=2000, true_ate=5.0, confounding_strength=1.0, random_state=7
    )
    return df


def test_ate_weight_formula():
    """Treated rows get 1/p, control rows get 1/(1-p)."""
    T = np.array([1, 0, 1, 0])
    p = np.array([0.2, 0.2, 0.8, 0.5])

    weights = propensity.compute_ipw_weights(T, p)

    np.testing.assert_allclose(weights, [5.0, 1.25, 1.25, 2.0])


def test_ate_weights_at_least_one():
    """Unstabilized ATE weights are never below 1."""
    rng = np.random.default_rng(0)
    p = rng.uniform(0.001, 0.999, 5000)
    T = rng.binomial(1, 0.5, 5000)

    weights = propensity.compute_ipw_weights(T, p)

    assert (weights >= 1).all()


@pytest.mark.parametrize("p", [0.0, 1.0])
def test_boundary_score_raises_domain_error(p):
    """A propensity score of exactly 0 or 1 has no finite weight."""
    T = np.array([1, 0, 1])
    scores = np.array([0.5, 0.5, p])

    with pytest.raises(DomainError):
        propensity.compute_ipw_weights(T, scores)


def test_clip_epsilon_moves_scores_off_the_bounds():
    """With clip_epsilon, boundary scores are clipped instead of raising."""
    T = np.array([1, 0])
    p = np.array([0.0, 1.0])

    weights = propensity.compute_ipw_weights(T, p, clip_epsilon=0.01)

    np.testing.assert_allclose(weights, [100.0, 100.0])


def test_stabilized_weights():
    """Stabilization scales each group by its marginal probability."""
    T = np.array([1, 1, 0, 0])
    p = np.array([0.5, 0.25, 0.5, 0.75])

    raw = propensity.compute_ipw_weights(T, p)
    stabilized = propensity.compute_ipw_weights(T, p, stabilize=True)

    np.testing.assert_allclose(stabilized, raw * 0.5)


def test_att_and_overlap_weights():
    """ATT weights leave treated rows at 1; overlap weights are 1-p and p."""
    T = np.array([1, 0])
    p = np.array([0.25, 0.75])

    np.testing.assert_allclose(propensity.compute_ipw_weights(T, p, estimand="att"), [1.0, 3.0])
    np.testing.assert_allclose(propensity.compute_ipw_weights(T, p, estimand="ato"), [0.75, 0.75])

    with pytest.raises(ValueError):
        propensity.compute_ipw_weights(T, p, estimand="unknown")


def test_propensity_model_tracks_true_scores(synthetic_df):
    """A correctly specified logistic model recovers the true propensity."""
    model, scores = propensity.fit_propensity_model(synthetic_df, "treatment", COVARIATES)

    assert model.converged_
    assert ((scores > 0) & (scores < 1)).all()

    corr = np.corrcoef(scores, synthetic_df["true_propensity"])[0, 1]
    assert corr > 0.95, f"Propensity scores should track the truth, corr={corr:.3f}"

    diagnostics = model.compute_diagnostics(synthetic_df["treatment"].to_numpy())
    assert diagnostics["auc"] > 0.6


def test_invalid_tables_raise_data_error(synthetic_df):
    """Schema problems are reported as DataError."""
    non_binary = synthetic_df.assign(treatment=synthetic_df["treatment"] * 2)
    with pytest.raises(DataError):
        propensity.fit_propensity_model(non_binary, "treatment", COVARIATES)

    missing = synthetic_df.copy()
    missing.loc[0, "x1"] = np.nan
    with pytest.raises(DataError):
        propensity.fit_propensity_model(missing, "treatment", COVARIATES)

    text_covariate = synthetic_df.assign(x3="a")
    with pytest.raises(DataError):
        propensity.fit_propensity_model(text_covariate, "treatment", COVARIATES)

    with pytest.raises(DataError):
        propensity.fit_propensity_model(synthetic_df, "treatment", ["x1", "not_a_column"])

    one_group = synthetic_df[synthetic_df["treatment"] == 1]
    with pytest.raises(DataError):
        propensity.fit_propensity_model(one_group, "treatment", COVARIATES)


def test_boolean_treatment_is_accepted(synthetic_df):
    """A bool treatment column is treated as 0/1."""
    as_bool = synthetic_df.assign(treatment=synthetic_df["treatment"].astype(bool))

    _, scores_bool = propensity.fit_propensity_model(as_bool, "treatment", COVARIATES)
    _, scores_int = propensity.fit_propensity_model(synthetic_df, "treatment", COVARIATES)

    np.testing.assert_allclose(scores_bool, scores_int)


def test_perfect_separation_is_tolerated():
    """Separated data gives extreme scores without raising."""
    x = np.concatenate([np.linspace(-3, -1, 20), np.linspace(1, 3, 20)])
    T = np.array([0] * 20 + [1] * 20)
    df = pd.DataFrame({"x": x, "treatment": T})

    _, scores = propensity.fit_propensity_model(df, "treatment", ["x"])

    assert scores[T == 1].max() > 0.99
    assert scores[T == 0].min() < 0.01

    weights = propensity.compute_ipw_weights(T, scores, clip_epsilon=1e-6)
    assert np.isfinite(weights).all()


def test_nonconvergence_can_raise(synthetic_df):
    """on_nonconvergence='raise' turns an unfinished fit into ConvergenceError."""
    config = {"max_iter": 1, "on_nonconvergence": "raise"}

    with pytest.raises(ConvergenceError):
        propensity.fit_propensity_model(synthetic_df, "treatment", COVARIATES, config)


def test_refit_is_deterministic(synthetic_df):
    """Rerunning the non-resampling path gives bit-identical output."""
    first = propensity.augment_with_weights(synthetic_df, "treatment", COVARIATES)
    second = propensity.augment_with_weights(synthetic_df, "treatment", COVARIATES)

    assert np.array_equal(first["propensity_score"], second["propensity_score"])
    assert np.array_equal(first["wts"], second["wts"])

    est_first = ate.estimate_ate_ipw(synthetic_df, "treatment", "outcome", COVARIATES)
    est_second = ate.estimate_ate_ipw(synthetic_df, "treatment", "outcome", COVARIATES)
    pd.testing.assert_frame_equal(est_first, est_second)


def test_augment_does_not_mutate_input(synthetic_df):
    """Scores and weights go on a copy."""
    columns_before = list(synthetic_df.columns)

    augmented = propensity.augment_with_weights(synthetic_df, "treatment", COVARIATES)

    assert list(synthetic_df.columns) == columns_before
    assert {"propensity_score", "wts"} <= set(augmented.columns)


def test_weight_summary_effective_sample_size():
    """Equal weights keep the full effective sample size."""
    summary = propensity.summarize_weights(np.full(50, 2.0))

    assert summary["effective_sample_size"] == pytest.approx(50.0)
    assert summary["min"] == summary["max"] == 2.0


def test_overlap_assessment(synthetic_df):
    """Overlap metrics are proportions and a valid support range."""
    _, scores = propensity.fit_propensity_model(synthetic_df, "treatment", COVARIATES)
    T = synthetic_df["treatment"].to_numpy()

    overlap = propensity.assess_overlap(scores, T)

    assert 0 <= overlap["common_support_min"] < overlap["common_support_max"] <= 1
    assert 0 <= overlap["treated_in_support"] <= 1
    assert 0 <= overlap["control_in_support"] <= 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
