from __future__ import annotations

from enum import Enum
from typing import Any, Tuple

from esg_scoring.core.stats import to_float


class Tier(str, Enum):
    """ESG maturity tiers. The value is the badge text shown to users."""
    NOT_AVAILABLE = "N/A"
    YET_TO_START = "YET TO START"
    BASIC = "BASIC"
    DEVELOPING = "DEVELOPING"
    INTERMEDIATE = "INTERMEDIATE"
    ADVANCED = "ADVANCED"

    @property
    def label(self) -> str:
        return self.value

    @property
    def distribution_label(self) -> str:
        return _DISTRIBUTION_LABELS[self]


_DISTRIBUTION_LABELS = {
    Tier.NOT_AVAILABLE: "N/A",
    Tier.YET_TO_START: "Yet To Start (0%)",
    Tier.BASIC: "Basic (0-30%)",
    Tier.DEVELOPING: "Developing (30-50%)",
    Tier.INTERMEDIATE: "Intermediate (50-80%)",
    Tier.ADVANCED: "Advanced (80-100%)",
}

# Display order of the tier donut chart
DISTRIBUTION_TIERS: Tuple[Tier, ...] = (
    Tier.ADVANCED,
    Tier.INTERMEDIATE,
    Tier.DEVELOPING,
    Tier.BASIC,
    Tier.YET_TO_START,
)


def classify(score: Any) -> Tier:
    """
    Map an overall percentage to its tier.

      None / NaN       -> N/A
      0                -> YET TO START
      (0, 30]          -> BASIC
      (30, 50]         -> DEVELOPING
      (50, 80]         -> INTERMEDIATE
      > 80             -> ADVANCED

    Negative values have no tier of their own and fall back to N/A.
    """
    value = to_float(score)
    if value is None or value < 0:
        return Tier.NOT_AVAILABLE
    if value == 0:
        return Tier.YET_TO_START
    if value <= 30:
        return Tier.BASIC
    if value <= 50:
        return Tier.DEVELOPING
    if value <= 80:
        return Tier.INTERMEDIATE
    return Tier.ADVANCED


def parse_tier(label: str) -> Tier:
    """Case-insensitive lookup by badge text ("basic", "Yet to start", ...)."""
    wanted = (label or "").strip().upper()
    for tier in Tier:
        if tier.value == wanted:
            return tier
    raise ValueError(f"Unknown status tier: {label!r}")
