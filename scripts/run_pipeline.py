"""
Main CLI pipeline for the whole-game causal workflow.

Runs end-to-end:  data → propensity → weights → balance → ATE → bootstrap → sensitivity
"""

import argparse
import logging
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pandas as pd

from whole_game import data, utils, workflow


def parse_args():
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(description="Whole-Game Causal Inference Pipeline")

    parser.add_argument(
        "--config",
        type=str,
        default="config/default.yaml",
        help="Path to configuration file",
    )
    parser.add_argument(
        "--input",
        type=str,
        default=None,
        help="Path to input CSV/parquet file (overrides data.source)",
    )

    return parser.parse_args()


def load_data(config, input_path=None):
    """Load the observation table from a file or the simulator."""
    data_config = config.get("data", {})

    if input_path is None and data_config.get("source", "simulated") == "file":
        input_path = data_config["path"]

    if input_path is not None:
        return data.load_observational_data(
            input_path,
            treatment_col=data_config.get("treatment", "net"),
            outcome_col=data_config.get("outcome", "malaria_risk"),
            covariates=data_config.get("covariates"),
        )

    return data.simulate_net_data(
        n_samples=data_config.get("n_samples", 1752),
        random_state=config.get("random_state", 42),
    )


def save_tables(config, results):
    """Write result tables to CSV."""
    logger = logging.getLogger("whole_game")
    tables_path = utils.ensure_dir(config["paths"]["tables"])

    tables = {
        "outcome_by_group": results["outcome_by_group"],
        "naive_model": results["naive_model"],
        "weighted_model": results["weighted_model"],
        "smd": results["smd"],
        "mirror_histogram": results["mirror_histogram"],
        "bootstrap_fits": results["bootstrap"].estimates,
        "bootstrap_failures": results["bootstrap"].failures,
        "boot_estimate": results["boot_estimate"],
        "tipping_points": results["tipping_points"],
        "adjusted_estimates": results["adjusted_estimates"],
    }
    if "boot_estimate_not_quite_right" in results:
        tables["boot_estimate_not_quite_right"] = results["boot_estimate_not_quite_right"]

    for name, table in tables.items():
        table.to_csv(tables_path / f"{name}.csv", index=False)

    pd.DataFrame([results["weight_summary"]]).to_csv(
        tables_path / "weight_summary.csv", index=False
    )

    utils.save_artifact(
        results["data_with_weights"],
        str(Path(config["paths"]["models"]) / "data_with_weights.joblib"),
        logger=logger,
    )

    logger.info(f"Tables saved to {tables_path}/")


def main():
    """Main pipeline execution."""
    args = parse_args()

    config = utils.load_config(args.config)
    utils.set_random_seed(config["random_state"])

    logger = utils.setup_logging(
        level=config["logging"]["level"],
        log_format=config["logging"]["format"],
    )

    logger.info("Whole-Game Causal Inference Pipeline")
    logger.info(f"Config: {args.config}")

    df = load_data(config, args.input)
    results = workflow.run_whole_game(df, config)
    save_tables(config, results)

    logger.info("=" * 80)
    logger.info(f"PIPELINE COMPLETE! {results['bootstrap_summary']}")
    logger.info("=" * 80)


if __name__ == "__main__":
    main()
