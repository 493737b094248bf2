# ============================================================
# scripts/train.py
# End-to-end training pipeline: load train/test CSVs, validate,
# explore, encode, train the network, evaluate at a threshold,
# export test predictions and persist the fitted artifacts.
# ============================================================

import sys                                         # System-specific parameters
from pathlib import Path                           # Object-oriented file paths

# Add the project root to Python path for module imports
project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

import argparse                                    # Command-line argument parsing
import json                                        # Metrics report serialization
import numpy as np                                 # Numerical computing library
import pandas as pd                                # Data manipulation library
from loguru import logger                          # Structured logging library
from datetime import datetime                      # Date and time utilities

from src.utils.helpers import (                    # Utility functions
    load_config,
    setup_logging,
    ensure_directory,
    save_model,
)
from src.data.loader import DataLoader             # CSV ingestion
from src.data.validator import DataValidator       # Ingestion-boundary checks
from src.data.explorer import DataExplorer         # EDA statistics
from src.features.encoder import FeatureEncoder    # Feature encoding
from src.models.trainer import ModelTrainer, split_by_order, split_index  # Network training
from src.models.evaluator import ClassificationEvaluator     # Threshold metrics / ROC
from src.models.exporter import PredictionExporter           # Predictions CSV


def parse_args(argv=None):
    """Parse command-line arguments for the training pipeline."""
    parser = argparse.ArgumentParser(description="Train the telco churn network")
    parser.add_argument("--config", "-c", type=str, default=None,
                        help="Path to config.yaml (default: config/config.yaml)")
    parser.add_argument("--train", type=str, default=None,
                        help="Training CSV with a Churn column (default: from config)")
    parser.add_argument("--test", type=str, default=None,
                        help="Test CSV to score (default: from config)")
    parser.add_argument("--threshold", "-t", type=float, default=None,
                        help="Decision threshold in [0, 1] (default: from config)")
    parser.add_argument("--output", "-o", type=str, default=None,
                        help="Predictions CSV path (default: from config)")
    parser.add_argument("--skip-eda", action="store_true",
                        help="Skip the exploratory statistics step")
    return parser.parse_args(argv)


def run_training_pipeline(args):
    """
    Execute the full pipeline and return a summary dictionary.

    Steps:
    1. Load and normalize train/test rows
    2. Validate required keys at the ingestion boundary
    3. Exploratory statistics (optional)
    4. Fit the encoder on the leading 80% of training rows, encode every split
    5. Split train/validation 80/20 by row order and train
    6. Evaluate on the validation split
    7. Score the test split and export predictions
    8. Persist encoder state, network and threshold
    """
    config = load_config(args.config)
    setup_logging(config.get("logging", {}).get("dir", "logs"))
    logger.info("=" * 60)
    logger.info("CHURN NETWORK TRAINING PIPELINE")
    logger.info(f"Started at: {datetime.now().isoformat()}")
    logger.info("=" * 60)

    features = config["features"]
    artifacts_dir = ensure_directory(config.get("artifacts", {}).get("dir", "models"))

    # ----------------------------------------------------------
    # Step 1: Load Data
    # ----------------------------------------------------------
    logger.info("Step 1: Loading data...")
    loader = DataLoader(config)
    train_path = args.train or loader.train_path
    test_path = args.test or loader.test_path
    if args.train is None and not Path(train_path).exists():
        logger.warning(f"Data files not found at {train_path}. Generating synthetic data...")
        write_synthetic_split(train_path, test_path, random_state=config["data"].get("random_state", 42))

    train_rows = loader.load_rows(train_path, split_name="train")
    test_rows = loader.load_rows(test_path, split_name="test")

    # ----------------------------------------------------------
    # Step 2: Validate Data
    # ----------------------------------------------------------
    logger.info("Step 2: Validating data...")
    validator = DataValidator(config)
    validator.require_schema(train_rows, require_target=True)
    validator.require_schema(test_rows, require_target=False)
    for check, passed in validator.run_all_validations(train_rows).items():
        if passed:
            logger.info(f"  {check}: PASSED")
        else:
            logger.warning(f"  {check}: FAILED")

    # ----------------------------------------------------------
    # Step 3: Exploratory Statistics
    # ----------------------------------------------------------
    if not args.skip_eda:
        logger.info("Step 3: Exploring training data...")
        eda = DataExplorer(config).run(train_rows)
        logger.info(f"Numeric summary:\n{eda['numeric_summary'].to_string(index=False)}")
        for column, table in eda["churn_by_category"].items():
            logger.info(f"Churn by {column}:\n{table.to_string(index=False)}")
        for column, hist in eda["histograms"].items():
            logger.info(f"{column} histogram (retained / churned): {hist['no']} / {hist['yes']}")

    # ----------------------------------------------------------
    # Step 4: Encode Features
    # ----------------------------------------------------------
    logger.info("Step 4: Encoding features...")
    train_fraction = config["data"].get("train_fraction", 0.8)
    # Only the leading training split feeds the encoder statistics
    fit_rows = train_rows[:split_index(len(train_rows), train_fraction)]
    encoder = FeatureEncoder()
    state = encoder.fit(
        fit_rows,
        numeric_columns=features["numeric_columns"],
        categorical_columns=features["categorical_columns"],
        binary_columns=features["binary_columns"],
    )
    X = encoder.transform_all(train_rows)
    y = np.asarray(loader.labels(train_rows), dtype=float)
    X_test = encoder.transform_all(test_rows)
    test_ids = loader.customer_ids(test_rows)

    # ----------------------------------------------------------
    # Step 5: Train
    # ----------------------------------------------------------
    logger.info("Step 5: Training network...")
    X_train, y_train, X_val, y_val = split_by_order(X, y, train_fraction)
    trainer = ModelTrainer(config)
    history = trainer.train(X_train, y_train, X_val, y_val)
    logger.info(f"Model ready. Input dim: {state.width}. Params: {trainer.count_params()}")

    # ----------------------------------------------------------
    # Step 6: Evaluate
    # ----------------------------------------------------------
    logger.info("Step 6: Evaluating on validation split...")
    evaluator = ClassificationEvaluator(config)
    threshold = evaluator.threshold if args.threshold is None else args.threshold
    val_proba = trainer.predict_proba(X_val)
    report = evaluator.evaluate(val_proba, y_val, threshold=threshold, split_name="validation")

    # ----------------------------------------------------------
    # Step 7: Predict & Export
    # ----------------------------------------------------------
    logger.info("Step 7: Scoring test split...")
    exporter = PredictionExporter(config)
    predictions = exporter.build_predictions(test_ids, trainer.predict_proba(X_test), threshold)
    logger.info(f"Prediction preview:\n{exporter.preview(predictions).to_string(index=False)}")
    output_path = exporter.export_predictions(predictions, args.output)

    # ----------------------------------------------------------
    # Step 8: Save Artifacts
    # ----------------------------------------------------------
    logger.info("Step 8: Saving artifacts...")
    save_model(state, artifacts_dir / "encoder_state.joblib")
    save_model(trainer.model, artifacts_dir / "churn_network.joblib")
    save_model(threshold, artifacts_dir / "threshold.joblib")
    history.to_dataframe().to_csv(artifacts_dir / "training_history.csv", index=False)
    with open(artifacts_dir / "validation_metrics.json", "w") as f:
        json.dump(report, f, indent=2)

    logger.info("=" * 60)
    logger.info("TRAINING PIPELINE COMPLETE")
    logger.info(f"Epochs run: {history.epochs} (early stop: {history.stopped_early})")
    logger.info(f"Validation ROC-AUC: {report['roc_auc']:.4f}, F1: {report['f1']:.4f}")
    logger.info(f"Completed at: {datetime.now().isoformat()}")
    logger.info("=" * 60)

    return {
        "threshold": threshold,
        "metrics": report,
        "epochs": history.epochs,
        "predictions_path": str(output_path),
    }


def generate_synthetic_data(n_samples=7043, random_state=42):
    """
    Generate synthetic Telco Customer Churn data for demonstration.

    Parameters
    ----------
    n_samples : int, default=7043
        Number of customers to generate.
    random_state : int, default=42
        Random seed for reproducibility.

    Returns
    -------
    pd.DataFrame
        A DataFrame mimicking the Telco Customer Churn dataset, with
        Yes/No churn labels and a few blank TotalCharges cells.
    """
    rng = np.random.default_rng(random_state)
    logger.info(f"Generating {n_samples} synthetic customer records...")

    def yes_no(p_yes):
        return rng.choice(["Yes", "No"], n_samples, p=[p_yes, 1 - p_yes])

    internet = rng.choice(["DSL", "Fiber optic", "No"], n_samples, p=[0.34, 0.44, 0.22])

    def internet_dependent():
        # Services that require internet are "No internet service" otherwise
        return np.where(internet == "No", "No internet service", rng.choice(["Yes", "No"], n_samples))

    phone = yes_no(0.90)
    tenure = rng.integers(0, 73, n_samples)
    contract = rng.choice(["Month-to-month", "One year", "Two year"], n_samples, p=[0.55, 0.21, 0.24])
    payment = rng.choice(
        ["Electronic check", "Mailed check", "Bank transfer (automatic)", "Credit card (automatic)"],
        n_samples, p=[0.34, 0.23, 0.22, 0.21],
    )
    tech_support = internet_dependent()
    online_security = internet_dependent()

    monthly = 20.0 + rng.normal(0, 5, n_samples)
    monthly += np.where(internet == "Fiber optic", 50, np.where(internet == "DSL", 30, 0))
    monthly = np.round(np.clip(monthly, 18.25, 118.75), 2)
    total = np.round(np.maximum(tenure * monthly + rng.normal(0, 50, n_samples), monthly), 2)
    # Zero-tenure customers have a blank TotalCharges, as in the real dataset
    total_charges = np.where(tenure == 0, " ", total.astype(str))

    # Churn probability driven by contract, tenure, internet and payment type
    churn_prob = 0.05 + np.where(contract == "Month-to-month", 0.25, 0)
    churn_prob += np.where(contract == "Two year", -0.05, 0)
    churn_prob += np.where(tenure < 12, 0.15, 0) + np.where(tenure > 48, -0.05, 0)
    churn_prob += np.where(internet == "Fiber optic", 0.10, 0)
    churn_prob += np.where(payment == "Electronic check", 0.10, 0)
    churn_prob += np.where(tech_support == "Yes", -0.05, 0)
    churn_prob = np.clip(churn_prob + rng.normal(0, 0.05, n_samples), 0.02, 0.90)

    df = pd.DataFrame({
        "customerID": [f"CUST-{i:05d}" for i in range(n_samples)],
        "gender": rng.choice(["Male", "Female"], n_samples),
        "SeniorCitizen": rng.choice([0, 1], n_samples, p=[0.84, 0.16]),
        "Partner": yes_no(0.48),
        "Dependents": yes_no(0.30),
        "tenure": tenure,
        "PhoneService": phone,
        "MultipleLines": np.where(phone == "No", "No phone service", rng.choice(["Yes", "No"], n_samples)),
        "InternetService": internet,
        "OnlineSecurity": online_security,
        "OnlineBackup": internet_dependent(),
        "DeviceProtection": internet_dependent(),
        "TechSupport": tech_support,
        "StreamingTV": internet_dependent(),
        "StreamingMovies": internet_dependent(),
        "Contract": contract,
        "PaperlessBilling": yes_no(0.60),
        "PaymentMethod": payment,
        "MonthlyCharges": monthly,
        "TotalCharges": total_charges,
        "Churn": np.where(rng.random(n_samples) < churn_prob, "Yes", "No"),
    })
    logger.info(f"Synthetic data churn rate: {(df['Churn'] == 'Yes').mean():.1%}")
    return df


def write_synthetic_split(train_path, test_path, test_fraction=0.2, random_state=42):
    """Write synthetic train.csv (with Churn) and test.csv (without Churn)."""
    df = generate_synthetic_data(random_state=random_state)
    cut = int(len(df) * (1 - test_fraction))
    ensure_directory(Path(train_path).parent)
    ensure_directory(Path(test_path).parent)
    df.iloc[:cut].to_csv(train_path, index=False)
    df.iloc[cut:].drop(columns=["Churn"]).to_csv(test_path, index=False)
    logger.info(f"Synthetic data saved to {train_path} and {test_path}")


# ============================================================
# Entry Point
# ============================================================
if __name__ == "__main__":
    result = run_training_pipeline(parse_args())
    print(f"\n{'=' * 60}")
    print("Training complete!")
    print(f"Validation ROC-AUC: {result['metrics']['roc_auc']:.4f}")
    print(f"Threshold: {result['threshold']:.2f}")
    print(f"Predictions: {result['predictions_path']}")
    print(f"{'=' * 60}")
