from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

import pandas as pd

from esg_scoring.config import ESG_CATEGORIES, NOT_AVAILABLE, UNKNOWN_KEY
from esg_scoring.core.errors import DimensionError
from esg_scoring.core.models import Firm
from esg_scoring.core.stats import (
    display_percent,
    mean_or_none,
    round_half_up,
    round_int,
)
from esg_scoring.core.status import DISTRIBUTION_TIERS, Tier, classify
from esg_scoring.core.year_resolver import ResolvedDataset

logger = logging.getLogger(__name__)

# Columns of the resolved frame
FIRM_ID_COL = "firm_id"
YEAR_COL = "year"
OVERALL_COL = "overall"
KEY_COL = "__bucket_key__"
RAW_KEY_COL = "__raw_key__"

ALL_KEY = "All"


class Dimension(str, Enum):
    """Organisational grouping used to slice population aggregates."""
    SECTOR = "sector"
    INDUSTRY = "industry"
    INDUSTRY_CATEGORY = "industry_category"
    BUSINESS_SIZE = "business_size"
    LOCATION = "location"
    STATUS = "status"
    NONE = "none"

    @classmethod
    def parse(cls, value: Any) -> "Dimension":
        if isinstance(value, cls):
            return value
        wanted = str(value or "").strip().lower().replace("-", "_").replace(" ", "_")
        if wanted in {"", "all"}:
            return cls.NONE
        if wanted in {"size", "business_size"}:
            return cls.BUSINESS_SIZE
        if wanted in {"industry_main_category", "industry_category"}:
            return cls.INDUSTRY_CATEGORY
        if wanted in {"state", "location"}:
            return cls.LOCATION
        for dim in cls:
            if dim.value == wanted:
                return dim
        raise DimensionError(f"Unknown aggregation dimension: {value!r}")


GROUPING_DIMENSIONS: Tuple[Dimension, ...] = (
    Dimension.SECTOR,
    Dimension.INDUSTRY,
    Dimension.INDUSTRY_CATEGORY,
    Dimension.BUSINESS_SIZE,
    Dimension.LOCATION,
    Dimension.STATUS,
)


def _clean_key(value: Optional[str]) -> str:
    text = (value or "").strip()
    return text or UNKNOWN_KEY


def industry_main_category(industry: Optional[str]) -> str:
    """'Manufacturing: Textiles' -> 'Manufacturing'."""
    text = _clean_key(industry)
    if ":" in text:
        return _clean_key(text.split(":", 1)[0])
    return text


def dimension_key(firm: Firm, dimension: Dimension, overall_score: Optional[float] = None) -> str:
    """Bucket key of one resolved record for the given dimension."""
    if dimension is Dimension.SECTOR:
        return _clean_key(firm.sector)
    if dimension is Dimension.INDUSTRY:
        return _clean_key(firm.industry)
    if dimension is Dimension.INDUSTRY_CATEGORY:
        return industry_main_category(firm.industry)
    if dimension is Dimension.BUSINESS_SIZE:
        return _clean_key(firm.business_size)
    if dimension is Dimension.LOCATION:
        return _clean_key(firm.location)
    if dimension is Dimension.STATUS:
        # Rounded, like the firm badge and the tier distribution
        return classify(round_int(overall_score)).label
    return ALL_KEY


def _raw_member(firm: Firm, dimension: Dimension) -> str:
    # Distinct raw values folded into a bucket (industry subcategories)
    if dimension is Dimension.INDUSTRY_CATEGORY:
        return _clean_key(firm.industry)
    return ""


# ---------------------------------------------------------------------------
# Resolved frame
# ---------------------------------------------------------------------------

def _category_col(category: str) -> str:
    return category.lower()


def resolved_frame(
    dataset: ResolvedDataset,
    categories: Tuple[str, ...] = ESG_CATEGORIES,
) -> pd.DataFrame:
    """
    One row per resolved (firm, year) record with precise scores.

    Missing scores are NaN, so pandas' count/sum/min/max skip them.
    """
    columns = [FIRM_ID_COL, YEAR_COL, OVERALL_COL] + [_category_col(c) for c in categories]
    rows: List[Dict[str, Any]] = []
    for firm, rec in dataset:
        row: Dict[str, Any] = {
            FIRM_ID_COL: firm.id,
            YEAR_COL: rec.year,
            OVERALL_COL: rec.overall_score,
        }
        for c in categories:
            row[_category_col(c)] = rec.category_scores.get(c)
        rows.append(row)

    df = pd.DataFrame.from_records(rows, columns=columns)
    score_cols = [OVERALL_COL] + [_category_col(c) for c in categories]
    for col in score_cols:
        df[col] = pd.to_numeric(df[col], errors="coerce").astype(float)
    return df


def _nan_to_none(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        f = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(f) else f


# ---------------------------------------------------------------------------
# Dimension buckets
# ---------------------------------------------------------------------------

@dataclass
class AggregateBucket:
    key: str
    count: int = 0            # records with an overall score
    record_count: int = 0     # all resolved records in the bucket
    sum: float = 0.0
    min: Optional[float] = None
    max: Optional[float] = None
    median: Optional[float] = None
    firm_ids: FrozenSet[str] = field(default_factory=frozenset)
    members: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def average(self) -> float:
        return self.sum / self.count if self.count else 0.0

    @property
    def firm_count(self) -> int:
        return len(self.firm_ids)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "key": self.key,
            "averageScore": round_int(self.average),
            "firmCount": self.firm_count,
            "assessmentCount": self.record_count,
            "min": round_half_up(self.min, 2),
            "max": round_half_up(self.max, 2),
            "median": round_half_up(self.median, 2),
        }
        if self.members:
            out["subcategoryCount"] = len(self.members)
        return out


def aggregate(dataset: ResolvedDataset, dimension: Any) -> List[AggregateBucket]:
    """
    Group resolved records by a firm dimension and summarise overall scores.

    Buckets are ordered by descending precise average; equal averages keep the
    order in which their keys first appeared.
    """
    dim = Dimension.parse(dimension)
    if len(dataset) == 0:
        return []

    df = resolved_frame(dataset)
    df[KEY_COL] = [dimension_key(firm, dim, rec.overall_score) for firm, rec in dataset]
    df[RAW_KEY_COL] = [_raw_member(firm, dim) for firm, _ in dataset]

    buckets: List[AggregateBucket] = []
    for key, grp in df.groupby(KEY_COL, sort=False):
        scores = grp[OVERALL_COL]
        members = frozenset(m for m in grp[RAW_KEY_COL] if m)
        buckets.append(
            AggregateBucket(
                key=str(key),
                count=int(scores.count()),
                record_count=int(len(grp)),
                sum=float(scores.sum(min_count=0)),
                min=_nan_to_none(scores.min()),
                max=_nan_to_none(scores.max()),
                median=_nan_to_none(scores.median()),
                firm_ids=frozenset(grp[FIRM_ID_COL]),
                members=members,
            )
        )

    # sorted() is stable: ties keep first-appearance order
    return sorted(buckets, key=lambda b: -b.average)


# ---------------------------------------------------------------------------
# Population rollup
# ---------------------------------------------------------------------------

@dataclass
class ScoreTotals:
    sum: float = 0.0
    rounded_sum: float = 0.0
    count: int = 0
    scores: List[float] = field(default_factory=list)

    def add(self, value: Optional[float]) -> None:
        if value is None:
            return
        self.sum += value
        self.rounded_sum += round_half_up(value, 2) or 0.0
        self.count += 1
        self.scores.append(value)

    @property
    def average(self) -> float:
        return self.sum / self.count if self.count else 0.0

    def _series(self) -> pd.Series:
        return pd.Series(self.scores, dtype=float)

    @property
    def min(self) -> Optional[float]:
        return _nan_to_none(self._series().min())

    @property
    def max(self) -> Optional[float]:
        return _nan_to_none(self._series().max())

    @property
    def median(self) -> Optional[float]:
        return _nan_to_none(self._series().median())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sum": round_half_up(self.sum, 2),
            "roundedSum": round_half_up(self.rounded_sum, 2),
            "count": self.count,
            "average": display_percent(self.average),
            "min": round_half_up(self.min, 2),
            "max": round_half_up(self.max, 2),
            "median": round_half_up(self.median, 2),
        }


@dataclass
class PopulationRollup:
    total_assessments: int = 0
    total_firms: int = 0
    firms_with_assessments: int = 0
    overall: ScoreTotals = field(default_factory=ScoreTotals)
    categories: Dict[str, ScoreTotals] = field(default_factory=dict)
    latest_year: Optional[int] = None

    def category(self, name: str) -> ScoreTotals:
        return self.categories.get(name) or ScoreTotals()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalAssessments": self.total_assessments,
            "totalFirms": self.total_firms,
            "firmsWithAssessments": self.firms_with_assessments,
            "averageESGScore": display_percent(self.overall.average),
            "environmentAverage": display_percent(self.category("Environment").average),
            "socialAverage": display_percent(self.category("Social").average),
            "governanceAverage": display_percent(self.category("Governance").average),
            "latestYear": str(self.latest_year) if self.latest_year is not None else NOT_AVAILABLE,
        }


def population_rollup(
    dataset: ResolvedDataset,
    total_firms: Optional[int] = None,
    categories: Tuple[str, ...] = ESG_CATEGORIES,
) -> PopulationRollup:
    """
    Whole-population figures. Each category is averaged over the records that
    have that category, independently of the overall count.
    """
    rollup = PopulationRollup(
        total_firms=len(dataset.firms) if total_firms is None else int(total_firms),
        categories={c: ScoreTotals() for c in categories},
    )
    firm_ids = set()
    for firm, rec in dataset:
        rollup.total_assessments += 1
        firm_ids.add(firm.id)
        rollup.overall.add(rec.overall_score)
        for c in categories:
            rollup.categories[c].add(rec.category_scores.get(c))

    rollup.firms_with_assessments = len(firm_ids)
    rollup.latest_year = dataset.latest_year
    return rollup


# ---------------------------------------------------------------------------
# Per-firm metrics
# ---------------------------------------------------------------------------

@dataclass
class FirmMetrics:
    firm_id: str
    total_assessments: int = 0
    latest_year: Optional[int] = None
    overall_precise: Optional[float] = None
    category_precise: Dict[str, Optional[float]] = field(default_factory=dict)

    @property
    def overall_score(self) -> Optional[int]:
        return round_int(self.overall_precise)

    def category_score(self, category: str) -> Optional[int]:
        return round_int(self.category_precise.get(category))

    @property
    def status(self) -> Tier:
        # Same rounded figure the firm card shows next to the badge
        return classify(self.overall_score)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalAssessments": self.total_assessments,
            "latestYear": str(self.latest_year) if self.latest_year is not None else NOT_AVAILABLE,
            "overallScore": self.overall_score,
            "envScore": self.category_score("Environment"),
            "socialScore": self.category_score("Social"),
            "govScore": self.category_score("Governance"),
            "status": self.status.label,
        }


def firm_metrics(
    dataset: ResolvedDataset,
    firms: Optional[Iterable[Firm]] = None,
    categories: Tuple[str, ...] = ESG_CATEGORIES,
) -> Dict[str, FirmMetrics]:
    """
    Cross-year averages per firm, from the precise per-year scores.

    Firms without resolved records still get an entry (no scores).
    """
    by_firm: Dict[str, List[Any]] = {}
    for firm in (dataset.firms if firms is None else firms):
        by_firm.setdefault(firm.id, [])
    for firm, rec in dataset:
        by_firm.setdefault(firm.id, []).append(rec)

    out: Dict[str, FirmMetrics] = {}
    for firm_id, records in by_firm.items():
        out[firm_id] = FirmMetrics(
            firm_id=firm_id,
            total_assessments=len(records),
            latest_year=max((r.year for r in records), default=None),
            overall_precise=mean_or_none(r.overall_score for r in records),
            category_precise={
                c: mean_or_none(r.category_scores.get(c) for r in records) for c in categories
            },
        )
    return out


# ---------------------------------------------------------------------------
# Status distribution (firm level)
# ---------------------------------------------------------------------------

@dataclass
class StatusDistribution:
    counts: Dict[Tier, int] = field(default_factory=lambda: {t: 0 for t in DISTRIBUTION_TIERS})
    unscored: int = 0

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    def to_dict(self) -> Dict[str, int]:
        return {tier.distribution_label: self.counts.get(tier, 0) for tier in DISTRIBUTION_TIERS}


def status_distribution(metrics: Mapping[str, FirmMetrics]) -> StatusDistribution:
    """
    Count firms per tier of their cross-year average. This is a firm-level
    figure; it is not derived from the per-record buckets.
    """
    dist = StatusDistribution()
    for m in metrics.values():
        tier = m.status
        if tier is Tier.NOT_AVAILABLE:
            dist.unscored += 1
            continue
        dist.counts[tier] += 1
    return dist
