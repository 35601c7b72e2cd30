"""
Utility functions for the whole-game causal workflow.
"""

import logging
import random
from pathlib import Path
from typing import Any

import joblib
import numpy as np
import yaml


def setup_logging(level: str = "INFO", log_format: str | None = None) -> logging.Logger:
    """
    Setup logging configuration.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Custom log format string

    Returns:
        Configured logger instance
    """
    if log_format is None:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format=log_format,
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    return logging.getLogger("whole_game")


def set_random_seed(seed: int = 42) -> None:
    """
    Set the global random seeds.

    Resampling in this package takes explicit ``random_state`` arguments;
    this only pins code that falls back on the global generators.
    """
    random.seed(seed)
    np.random.seed(seed)


def load_config(config_path: str) -> dict[str, Any]:
    """
    Load YAML configuration file.

    Args:
        config_path: Path to YAML config file

    Returns:
        Configuration dictionary
    """
    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_file) as f:
        config = yaml.safe_load(f)

    return config or {}


def ensure_dir(path: str | Path) -> Path:
    """Ensure directory exists, create if needed."""
    dir_path = Path(path)
    dir_path.mkdir(parents=True, exist_ok=True)
    return dir_path


def save_artifact(obj: Any, path: str, logger: logging.Logger | None = None) -> None:
    """
    Save Python object to disk using joblib.

    Args:
        obj: Object to save
        path: Output file path
        logger: Optional logger instance
    """
    ensure_dir(Path(path).parent)
    joblib.dump(obj, path)
    if logger:
        logger.info(f"Saved artifact to {path}")


def load_artifact(path: str, logger: logging.Logger | None = None) -> Any:
    """
    Load Python object from disk using joblib.

    Args:
        path: Input file path
        logger: Optional logger instance

    Returns:
        Loaded object
    """
    if not Path(path).exists():
        raise FileNotFoundError(f"Artifact not found: {path}")

    obj = joblib.load(path)
    if logger:
        logger.info(f"Loaded artifact from {path}")

    return obj


def weighted_mean_var(x: np.ndarray, weights: np.ndarray | None = None) -> tuple[float, float]:
    """Mean and (population) variance of x, optionally weighted."""
    if weights is None:
        return float(np.mean(x)), float(np.var(x))

    mean = np.average(x, weights=weights)
    var = np.average((x - mean) ** 2, weights=weights)
    return float(mean), float(var)


def compute_standardized_mean_difference(
    x_treated: np.ndarray,
    x_control: np.ndarray,
    weights_treated: np.ndarray | None = None,
    weights_control: np.ndarray | None = None,
) -> float:
    """
    Compute the signed standardized mean difference (SMD) for a single covariate.

    SMD = (mean_treated - mean_control) / sqrt((var_treated + var_control) / 2)

    Args:
        x_treated: Covariate values for treated group
        x_control: Covariate values for control group
        weights_treated: Optional weights for treated group
        weights_control: Optional weights for control group

    Returns:
        Standardized mean difference (0.0 when both groups are constant)
    """
    mean_treated, var_treated = weighted_mean_var(x_treated, weights_treated)
    mean_control, var_control = weighted_mean_var(x_control, weights_control)

    pooled_std = np.sqrt((var_treated + var_control) / 2)

    if pooled_std < 1e-10:
        return 0.0

    return float((mean_treated - mean_control) / pooled_std)


def format_number(value: float, precision: int = 2, prefix: str = "", suffix: str = "") -> str:
    """Format number for display with optional prefix/suffix."""
    return f"{prefix}{value:,.{precision}f}{suffix}"


def format_ci(
    point: float,
    lower: float,
    upper: float,
    precision: int = 2,
    prefix: str = "",
    suffix: str = "",
) -> str:
    """
    Format point estimate with confidence interval.

    Returns:
        Formatted string like "-12.54 [-13.64, -11.36]"
    """
    point_str = format_number(point, precision, prefix, suffix)
    lower_str = format_number(lower, precision, prefix, suffix)
    upper_str = format_number(upper, precision, prefix, suffix)

    return f"{point_str} [{lower_str}, {upper_str}]"
