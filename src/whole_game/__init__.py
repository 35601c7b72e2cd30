"""
Whole-Game Causal Inference

Propensity scores, inverse probability weighting, balance diagnostics,
bootstrap inference and sensitivity analysis for observational data.
"""

__version__ = "0.1.0"

from . import ate, balance, bootstrap, data, exceptions, propensity, sensitivity, utils, workflow

__all__ = [
    "ate",
    "balance",
    "bootstrap",
    "data",
    "exceptions",
    "propensity",
    "sensitivity",
    "utils",
    "workflow",
]
