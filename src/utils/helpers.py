# ============================================================
# src/utils/helpers.py
# Shared utility functions: config loading, logging setup,
# artifact persistence and directory handling.
# ============================================================

import math                                        # Finite-number checks
import yaml                                        # YAML parser for reading config files
import joblib                                      # Serialization for fitted encoders and networks
from pathlib import Path                           # Object-oriented filesystem paths
from loguru import logger                          # Enhanced logging with colors, rotation, and formatting


def get_project_root() -> Path:
    """
    Return the absolute path to the project root directory.
    Walks up from this file's location until it finds the 'config' folder.
    """
    # Start from the directory containing this helpers.py file
    current = Path(__file__).resolve().parent
    # Walk upward until we find the config/ directory (project root marker)
    while current != current.parent:
        if (current / "config").exists():
            return current
        current = current.parent
    # Fallback: two levels up from src/utils/
    return Path(__file__).resolve().parent.parent.parent


def load_config(config_path: str = None) -> dict:
    """
    Load the YAML configuration file and return it as a dictionary.

    Parameters
    ----------
    config_path : str, optional
        Explicit path to config.yaml. If None, uses the default
        location at <project_root>/config/config.yaml.

    Returns
    -------
    dict
        Parsed configuration dictionary with all project settings.
    """
    # If no explicit path provided, build the default path
    if config_path is None:
        config_path = get_project_root() / "config" / "config.yaml"
    else:
        config_path = Path(config_path)

    # Verify the config file actually exists before trying to read it
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found at: {config_path}")

    # yaml.safe_load prevents arbitrary code execution from YAML
    with open(config_path, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f)

    logger.info(f"Configuration loaded from: {config_path}")
    return config


def save_model(model, filepath: str) -> None:
    """
    Serialize a fitted artifact (encoder state or trained network) with joblib.

    Parameters
    ----------
    model : object
        The object to persist.
    filepath : str
        Destination file path.
    """
    filepath = Path(filepath)
    # Create parent directories if they don't exist (e.g., models/)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    joblib.dump(model, filepath)
    logger.info(f"Artifact saved to: {filepath}")


def load_model(filepath: str):
    """
    Load a serialized artifact from disk.

    Parameters
    ----------
    filepath : str
        Path to the serialized file.

    Returns
    -------
    object
        The deserialized object.
    """
    filepath = Path(filepath)
    if not filepath.exists():
        raise FileNotFoundError(f"Artifact file not found at: {filepath}")
    model = joblib.load(filepath)
    logger.info(f"Artifact loaded from: {filepath}")
    return model


def setup_logging(log_dir: str = "logs", log_file: str = "pipeline.log") -> None:
    """
    Configure loguru for rotated file logging and console output.

    Parameters
    ----------
    log_dir : str
        Directory where log files will be stored.
    log_file : str
        Name of the log file.
    """
    # Build the full path to the log file
    log_path = Path(get_project_root()) / log_dir / log_file
    log_path.parent.mkdir(parents=True, exist_ok=True)
    # Remove any existing loguru handlers to avoid duplicate logs
    logger.remove()
    # Console handler with colorized output and INFO level
    logger.add(
        sink=lambda msg: print(msg, end=""),
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
               "<level>{level: <8}</level> | "
               "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
               "<level>{message}</level>",
        level="INFO",
        colorize=True,
    )
    # File handler with rotation and retention policies
    logger.add(
        sink=str(log_path),
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | {message}",
        level="DEBUG",
        rotation="10 MB",
        retention="30 days",
        compression="zip",
    )
    logger.info("Logging configured successfully.")


def ensure_directory(path: str) -> Path:
    """Create ``path`` (and parents) if needed and return it as a Path."""
    dir_path = Path(path)
    dir_path.mkdir(parents=True, exist_ok=True)
    return dir_path


def is_missing(value) -> bool:
    """Return True for None, NaN, and empty/whitespace-only strings."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, float):
        return math.isnan(value)
    return False


def to_number(value):
    """
    Coerce a cell value to a finite float.

    Returns None when the value is missing, non-numeric, or infinite.
    Booleans are not treated as numbers.
    """
    if is_missing(value) or isinstance(value, bool):
        return None
    try:
        number = float(value.strip() if isinstance(value, str) else value)
    except (TypeError, ValueError):
        return None
    # Reject inf/-inf and NaN produced from strings such as "nan"
    if not math.isfinite(number):
        return None
    return number
