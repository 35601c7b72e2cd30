"""
Tests for tipping-point and confounder-adjustment formulas.
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import numpy as np
import pandas as pd
import pytest

from whole_game import sensitivity
from whole_game.exceptions import DomainError


def test_tip_coef_solves_for_outcome_effect():
    """effect_observed = exposure effect * outcome effect at the tipping point."""
    tips = sensitivity.tip_coef(-8.0, exposure_confounder_effect=[1, 2, 4])

    np.testing.assert_allclose(tips["confounder_outcome_effect"], [-8.0, -4.0, -2.0])
    assert (tips["effect_adjusted"] == 0).all()
    assert (tips["n_unmeasured_confounders"] == 1).all()
    np.testing.assert_allclose(
        tips["exposure_confounder_effect"] * tips["confounder_outcome_effect"], -8.0
    )


def test_tip_coef_solves_for_exposure_effect():
    """Giving the outcome effect solves for the exposure effect instead."""
    tips = sensitivity.tip_coef(3.0, confounder_outcome_effect=1.5)

    assert len(tips) == 1
    assert tips["exposure_confounder_effect"].iloc[0] == pytest.approx(2.0)


def test_tip_coef_strength_shrinks_as_exposure_effect_grows():
    """A stronger exposure-confounder link needs a weaker outcome link to tip."""
    tips = sensitivity.tip_coef(-8.0, exposure_confounder_effect=[1, 2, 3, 4, 5])

    magnitude = tips["confounder_outcome_effect"].abs().to_numpy()
    assert (np.diff(magnitude) < 0).all()


def test_tip_coef_needs_exactly_one_effect():
    """Both or neither confounder effect is an error."""
    with pytest.raises(ValueError):
        sensitivity.tip_coef(-8.0)

    with pytest.raises(ValueError):
        sensitivity.tip_coef(-8.0, exposure_confounder_effect=1, confounder_outcome_effect=1)


def test_tip_coef_zero_effect_is_domain_error():
    """A zero effect has no tipping point."""
    with pytest.raises(DomainError):
        sensitivity.tip_coef(-8.0, exposure_confounder_effect=[1, 0])


def test_adjust_coef():
    """Continuous confounder shifts the effect by the product of its effects."""
    adjusted = sensitivity.adjust_coef([-10.0, -12.0], 0.5, -4.0)

    np.testing.assert_allclose(adjusted["effect_adjusted"], [-8.0, -10.0])
    np.testing.assert_allclose(adjusted["effect_observed"], [-10.0, -12.0])


def test_adjust_coef_with_binary_linear():
    """Prevalences 0.26 vs 0.05 and outcome effect -10 shift effects by +2.1."""
    observed = [-12.5, -13.4, -11.6]

    adjusted = sensitivity.adjust_coef_with_binary(
        observed,
        exposed_confounder_prev=0.26,
        unexposed_confounder_prev=0.05,
        confounder_outcome_effect=-10,
    )

    np.testing.assert_allclose(adjusted["effect_adjusted"], np.array(observed) + 2.1)
    assert list(adjusted.columns[:2]) == ["effect_adjusted", "effect_observed"]


def test_adjust_coef_with_binary_loglinear():
    """On the log-linear scale a null confounder leaves the effect alone."""
    unchanged = sensitivity.adjust_coef_with_binary(
        0.4, 0.3, 0.1, confounder_outcome_effect=0.0, loglinear=True
    )
    assert unchanged["effect_adjusted"].iloc[0] == pytest.approx(0.4)

    adjusted = sensitivity.adjust_coef_with_binary(
        0.4, 0.3, 0.1, confounder_outcome_effect=np.log(2), loglinear=True
    )
    expected = 0.4 - np.log((2 * 0.3 + 0.7) / (2 * 0.1 + 0.9))
    assert adjusted["effect_adjusted"].iloc[0] == pytest.approx(expected)


def test_equal_prevalences_mean_no_confounding():
    """If the confounder is equally common in both groups nothing changes."""
    adjusted = sensitivity.adjust_coef_with_binary(-10.0, 0.2, 0.2, confounder_outcome_effect=-5)

    assert adjusted["effect_adjusted"].iloc[0] == pytest.approx(-10.0)


@pytest.mark.parametrize("exposed,unexposed", [(1.2, 0.05), (0.26, -0.1)])
def test_invalid_prevalence_is_domain_error(exposed, unexposed):
    """Prevalences must be proportions."""
    with pytest.raises(DomainError):
        sensitivity.adjust_coef_with_binary(-10.0, exposed, unexposed, confounder_outcome_effect=-10)


def test_tip_coef_with_binary():
    """Outcome effect of a binary confounder that moves -2.1 to zero."""
    tips = sensitivity.tip_coef_with_binary(-2.1, 0.26, 0.05)

    assert tips["confounder_outcome_effect"].iloc[0] == pytest.approx(-10.0)

    # Feeding the tipping point back in lands exactly on the null
    adjusted = sensitivity.adjust_coef_with_binary(
        -2.1, 0.26, 0.05, confounder_outcome_effect=tips["confounder_outcome_effect"].iloc[0]
    )
    assert adjusted["effect_adjusted"].iloc[0] == pytest.approx(0.0)

    with pytest.raises(DomainError):
        sensitivity.tip_coef_with_binary(-2.1, 0.26, [0.05, 0.26])


def test_nonfinite_effect_is_domain_error():
    """NaN inputs are rejected rather than propagated."""
    with pytest.raises(DomainError):
        sensitivity.adjust_coef([np.nan], 1.0, 1.0)


def test_outputs_are_dataframes():
    """Each helper returns a table."""
    assert isinstance(sensitivity.tip_coef(-1.0, exposure_confounder_effect=1), pd.DataFrame)
    assert isinstance(sensitivity.adjust_coef(-1.0, 1.0, 1.0), pd.DataFrame)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
