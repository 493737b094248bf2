# ============================================================
# scripts/predict.py
# Batch prediction: loads the saved encoder state and network,
# encodes a customer CSV and writes the predictions CSV.
# ============================================================

import sys                                         # System-specific parameters
from pathlib import Path                           # Object-oriented file paths

# Add the project root to Python path for module imports
project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

import argparse                                    # Command-line argument parsing
from loguru import logger                          # Structured logging library
from datetime import datetime                      # Date and time utilities

from src.utils.helpers import load_config, setup_logging, load_model  # Utility functions
from src.data.loader import DataLoader             # CSV ingestion
from src.data.validator import DataValidator       # Ingestion-boundary checks
from src.features.encoder import FeatureEncoder    # Feature encoding
from src.models.exporter import PredictionExporter  # Predictions CSV


def parse_args(argv=None):
    """
    Parse command-line arguments for the prediction script.

    Returns
    -------
    argparse.Namespace
        Parsed arguments with input, output, artifacts dir and threshold.
    """
    parser = argparse.ArgumentParser(description="Batch churn prediction script")
    parser.add_argument("--input", "-i", type=str, required=True,
                        help="Path to the input CSV file with customer data")
    parser.add_argument("--output", "-o", type=str, default=None,
                        help="Path to save the predictions CSV (default: from config)")
    parser.add_argument("--artifacts", "-a", type=str, default=None,
                        help="Directory holding encoder_state/churn_network/threshold (default: from config)")
    parser.add_argument("--threshold", "-t", type=float, default=None,
                        help="Decision threshold (default: the threshold saved at training time)")
    parser.add_argument("--config", "-c", type=str, default=None,
                        help="Path to config.yaml")
    return parser.parse_args(argv)


def load_prediction_resources(artifacts_dir):
    """
    Load the fitted encoder, trained network and saved threshold.

    Returns
    -------
    tuple
        (encoder, network, threshold)
    """
    artifacts_dir = Path(artifacts_dir)
    encoder = FeatureEncoder.from_state(load_model(artifacts_dir / "encoder_state.joblib"))
    network = load_model(artifacts_dir / "churn_network.joblib")
    threshold_path = artifacts_dir / "threshold.joblib"
    if threshold_path.exists():
        threshold = load_model(threshold_path)
    else:
        threshold = 0.5
        logger.info(f"No saved threshold found, using default: {threshold:.2f}")
    return encoder, network, threshold


def run_batch_prediction(args):
    """Execute the batch prediction pipeline and return the output path."""
    config = load_config(args.config)
    setup_logging(config.get("logging", {}).get("dir", "logs"))
    logger.info("=" * 60)
    logger.info("BATCH PREDICTION PIPELINE")
    logger.info(f"Started at: {datetime.now().isoformat()}")
    logger.info(f"Input file: {args.input}")
    logger.info("=" * 60)

    artifacts_dir = args.artifacts or config.get("artifacts", {}).get("dir", "models")
    encoder, network, threshold = load_prediction_resources(artifacts_dir)
    if args.threshold is not None:
        threshold = args.threshold
        logger.info(f"Using command-line threshold: {threshold:.3f}")

    loader = DataLoader(config)
    rows = loader.load_rows(args.input, split_name="test")
    DataValidator(config).require_schema(rows, require_target=False)

    X = encoder.transform_all(rows)
    probabilities = network.predict_proba(X)[:, 1]

    exporter = PredictionExporter(config)
    predictions = exporter.build_predictions(loader.customer_ids(rows), probabilities, threshold)
    output_path = exporter.export_predictions(predictions, args.output)

    churners = int(predictions["prediction"].sum())
    logger.info("=" * 60)
    logger.info("BATCH PREDICTION COMPLETE")
    logger.info(f"Total customers: {len(predictions)}")
    logger.info(f"Predicted churn: {churners} ({churners / len(predictions) * 100:.1f}%)")
    logger.info(f"Output file: {output_path}")
    logger.info("=" * 60)
    return output_path


# ============================================================
# Entry Point
# ============================================================
if __name__ == "__main__":
    run_batch_prediction(parse_args())
