from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# App identity
# ---------------------------------------------------------------------------

APP_NAME = "ESG Assessment Scoring Engine"
APP_VERSION = "0.1.0"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


# ---------------------------------------------------------------------------
# Scoring
#
# Some legacy assessments carry a total_score but no max_score. Their overall
# percentage is computed against DEFAULT_MAX_SCORE, which matches the
# three-pillar template (3 x 100 points).
# ---------------------------------------------------------------------------

DEFAULT_MAX_SCORE = _env_float("ESG_DEFAULT_MAX_SCORE", 300.0)

ESG_CATEGORIES = ("Environment", "Social", "Governance")

# Labels used when a grouping value or a score is missing
UNKNOWN_KEY = "Unknown"
NOT_AVAILABLE = "N/A"

# ---------------------------------------------------------------------------
# Admin REST backend (data loader only; the scoring core never does I/O)
# ---------------------------------------------------------------------------

API_BASE_URL = os.getenv("ESG_API_BASE_URL", "").strip().rstrip("/")
API_TOKEN = os.getenv("ESG_API_TOKEN", "").strip()
API_TIMEOUT_SECONDS = _env_int("ESG_API_TIMEOUT_SECONDS", 60)

FIRMS_ENDPOINT = "/management/users"
ASSESSMENTS_ENDPOINT = "/assessment/user/v2/get-responses-2"

# ---------------------------------------------------------------------------
# View model memo
# ---------------------------------------------------------------------------

VIEW_MODEL_CACHE_SIZE = _env_int("ESG_VIEW_MODEL_CACHE_SIZE", 32)
