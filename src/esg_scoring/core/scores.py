from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from esg_scoring.config import DEFAULT_MAX_SCORE, ESG_CATEGORIES
from esg_scoring.core.stats import (
    clamp,
    is_number,
    mean_or_none,
    round_int,
    to_float,
)

logger = logging.getLogger(__name__)

TOTAL_SCORE_KEY = "total_score"
MAX_SCORE_KEY = "max_score"
CATEGORY_MAX_KEY = "category_max"

# The legacy three-pillar shape is recognised by this key alone
LEGACY_MARKER_KEY = "Environment"


@dataclass(frozen=True)
class ScoringOptions:
    """
    Knobs for score extraction.

    default_max_score is only used for records that carry total_score
    without max_score.
    """
    default_max_score: float = DEFAULT_MAX_SCORE
    categories: Tuple[str, ...] = ESG_CATEGORIES


DEFAULT_OPTIONS = ScoringOptions()


class ScoreShape(str, Enum):
    """Recognised layouts of the assessment `score` object."""
    TOTALED = "totaled"            # total_score / max_score (+ category_max)
    CATEGORY_MAX = "category_max"  # per-category points + category_max, no total
    LEGACY_PILLARS = "legacy"      # {Environment: %, Social: %, Governance: %}
    UNKNOWN = "unknown"


# ---------------------------------------------------------------------------
# Shape detection
# ---------------------------------------------------------------------------

def _score_object(assessment: Any) -> Optional[Mapping[str, Any]]:
    if not isinstance(assessment, Mapping):
        return None
    score = assessment.get("score")
    if not isinstance(score, Mapping) or not score:
        return None
    return score


def has_total_score(score: Any) -> bool:
    return isinstance(score, Mapping) and score.get(TOTAL_SCORE_KEY) is not None


def has_category_max(score: Any, category: Optional[str] = None) -> bool:
    if not isinstance(score, Mapping):
        return False
    cat_max = score.get(CATEGORY_MAX_KEY)
    if not isinstance(cat_max, Mapping):
        return False
    if category is None:
        return bool(cat_max)
    return category in cat_max


def is_legacy_pillar_shape(score: Any) -> bool:
    return (
        isinstance(score, Mapping)
        and score.get(LEGACY_MARKER_KEY) is not None
        and not has_total_score(score)
        and not has_category_max(score)
    )


def detect_score_shape(score: Any) -> ScoreShape:
    if has_total_score(score):
        return ScoreShape.TOTALED
    if has_category_max(score):
        return ScoreShape.CATEGORY_MAX
    if is_legacy_pillar_shape(score):
        return ScoreShape.LEGACY_PILLARS
    return ScoreShape.UNKNOWN


# ---------------------------------------------------------------------------
# Category scores
# ---------------------------------------------------------------------------

def _score_from_responses(responses: Sequence[Any], category: str) -> Optional[float]:
    earned = 0.0
    possible = 0.0
    matched = 0
    for response in responses:
        if not isinstance(response, Mapping) or response.get("category") != category:
            continue
        if response.get("question_score") is None or response.get("question_max") is None:
            continue
        matched += 1
        earned += to_float(response.get("question_score")) or 0.0
        possible += to_float(response.get("question_max")) or 0.0

    if matched == 0 or possible <= 0:
        return None
    return 100.0 * earned / possible


def _score_from_category_max(score: Mapping[str, Any], category: str) -> Optional[float]:
    earned = to_float(score.get(category)) or 0.0
    possible = to_float(score[CATEGORY_MAX_KEY].get(category))
    if possible is None:
        possible = 1.0
    if possible <= 0:
        return None
    return 100.0 * earned / possible


def category_score_precise(assessment: Any, category: str) -> Optional[float]:
    """
    Percentage (0-100) earned by one assessment in one category, unrounded.

    Resolution order:
      1. question responses: 100 * sum(question_score) / sum(question_max)
      2. score[category] against score.category_max[category]
      3. legacy score[category], already a percentage
    Returns None when the category cannot be assessed. A zero maximum is
    "no data", never 0%.
    """
    if not isinstance(assessment, Mapping):
        return None

    responses = assessment.get("responses")
    if isinstance(responses, Sequence) and not isinstance(responses, (str, bytes)) and responses:
        from_responses = _score_from_responses(responses, category)
        if from_responses is not None:
            return clamp(from_responses)

    score = _score_object(assessment)
    if score is None:
        return None

    if has_category_max(score, category):
        value = _score_from_category_max(score, category)
        return clamp(value) if value is not None else None

    legacy = score.get(category)
    if is_number(legacy):
        return clamp(float(legacy))

    return None


def category_score(assessment: Any, category: str) -> Optional[int]:
    """Display variant of category_score_precise (nearest integer)."""
    return round_int(category_score_precise(assessment, category))


# ---------------------------------------------------------------------------
# Overall score
# ---------------------------------------------------------------------------

def overall_score_precise(
    assessment: Any,
    options: Optional[ScoringOptions] = None,
) -> Optional[float]:
    """
    Overall percentage of one assessment, unrounded.

    New shape: 100 * total_score / max_score, with options.default_max_score
    standing in for a missing max_score. Legacy shape: mean of the numeric
    values stored directly under `score`.
    """
    opts = options or DEFAULT_OPTIONS
    score = _score_object(assessment)
    if score is None:
        return None

    shape = detect_score_shape(score)

    if shape is ScoreShape.TOTALED:
        total = to_float(score.get(TOTAL_SCORE_KEY))
        if total is None:
            logger.debug("Unparseable total_score %r", score.get(TOTAL_SCORE_KEY))
            return None
        max_score = to_float(score.get(MAX_SCORE_KEY))
        if max_score is None:
            logger.warning(
                "Assessment %s has total_score without max_score; using default max %s.",
                assessment.get("id", "?"),
                opts.default_max_score,
            )
            max_score = opts.default_max_score
        if max_score <= 0:
            return None
        return 100.0 * total / max_score

    if score.get(LEGACY_MARKER_KEY) is not None:
        return mean_or_none(float(v) for v in score.values() if is_number(v))

    logger.debug("Unrecognised score shape with keys %s", sorted(map(str, score.keys())))
    return None


def overall_score(
    assessment: Any,
    options: Optional[ScoringOptions] = None,
) -> Optional[int]:
    """Display variant of overall_score_precise (nearest integer)."""
    return round_int(overall_score_precise(assessment, options))


def score_record(
    assessment: Any,
    options: Optional[ScoringOptions] = None,
) -> Tuple[Optional[float], Dict[str, Optional[float]]]:
    """Precise overall score plus one precise score per configured category."""
    opts = options or DEFAULT_OPTIONS
    categories = {c: category_score_precise(assessment, c) for c in opts.categories}
    return overall_score_precise(assessment, opts), categories
