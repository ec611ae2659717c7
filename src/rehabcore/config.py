"""
Configuration constants for the rehab pose core.

Centralizes model paths, landmark layout, scoring thresholds, and
environment variable loading.
"""

import logging
import os
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Project paths
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_PATH = PROJECT_ROOT / ".env"
load_dotenv(_ENV_PATH)

ACTIVITY_MODEL_PATH = Path(
    os.environ.get(
        "ACTIVITY_MODEL_PATH",
        str(PROJECT_ROOT / "models" / "xgb_activity_model.json"),
    )
)
REHAB_CONFIG_PATH = Path(
    os.environ.get("REHAB_CONFIG_PATH", str(PROJECT_ROOT / "config" / "rehab.yaml"))
)

LOG_LEVEL: str = os.environ.get("REHAB_LOG_LEVEL", "INFO")

# HTTP sessions idle longer than this are dropped; at most MAX_SESSIONS live at once.
SESSION_TTL_S: float = float(os.environ.get("REHAB_SESSION_TTL_S", "900"))
MAX_SESSIONS: int = int(os.environ.get("REHAB_MAX_SESSIONS", "64"))

# ---------------------------------------------------------------------------
# Landmark layout
# ---------------------------------------------------------------------------
NUM_LANDMARKS: int = 33
RAW_FEATURE_DIM: int = NUM_LANDMARKS * 4   # x, y, z, visibility
DERIVED_FEATURE_DIM: int = 9
ACTIVITY_FEATURE_DIM: int = RAW_FEATURE_DIM + DERIVED_FEATURE_DIM

EPS: float = 1e-6

# ---------------------------------------------------------------------------
# Activity classifier
# ---------------------------------------------------------------------------
# Order matches the label encoder used at training time
# (berdiri, duduk, jatuh).
ACTIVITY_LABELS: tuple[str, ...] = ("Standing", "Sitting", "Fall Detected")

# ---------------------------------------------------------------------------
# Form scoring thresholds
# ---------------------------------------------------------------------------
DEVIATION_THRESHOLD: float = 15.0       # degrees of MAE before "fix form"
STATIC_ANGLE_TOLERANCE: float = 12.0    # degrees above the ideal static angle
DYNAMIC_ANGLE_BUFFER: float = 10.0      # degrees of free overshoot per bound


# ---------------------------------------------------------------------------
# YAML overrides
# ---------------------------------------------------------------------------

def load_rehab_config(config_path: Optional[Path] = None) -> dict:
    """Load tuning overrides from YAML config.

    Returns an empty dict when the file does not exist so the built-in
    defaults apply.
    """
    path = Path(config_path) if config_path is not None else REHAB_CONFIG_PATH
    if not path.exists():
        logger.warning("Rehab config not found at %s, using built-in defaults.", path)
        return {}
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


_REHAB_CONFIG: Optional[dict] = None


def get_rehab_config() -> dict:
    """Lazy-load and cache the YAML config."""
    global _REHAB_CONFIG
    if _REHAB_CONFIG is None:
        _REHAB_CONFIG = load_rehab_config()
    return _REHAB_CONFIG
