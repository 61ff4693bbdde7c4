from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from esg_scoring.config import NOT_AVAILABLE
from esg_scoring.core.aggregator import FirmMetrics
from esg_scoring.core.errors import ComparisonError
from esg_scoring.core.models import Firm
from esg_scoring.core.status import Tier, parse_tier

SORT_COLUMNS = (
    "firmName",
    "totalAssessments",
    "latestYear",
    "sector",
    "size",
    "industry",
    "location",
    "overallScore",
)


@dataclass
class ComparisonRow:
    number: int
    firm: Firm
    metrics: FirmMetrics

    @property
    def status(self) -> Tier:
        return self.metrics.status

    def to_dict(self) -> Dict[str, Any]:
        """Export columns of the firm comparison sheet."""
        f = self.firm
        m = self.metrics
        return {
            "No.": self.number,
            "Firm Name": f.firm or NOT_AVAILABLE,
            "Email": f.email or NOT_AVAILABLE,
            "Sector": f.sector or NOT_AVAILABLE,
            "Size": f.business_size or NOT_AVAILABLE,
            "Industry": f.industry or NOT_AVAILABLE,
            "Location": f.location or NOT_AVAILABLE,
            "Total Assessments": m.total_assessments,
            "Latest Year": str(m.latest_year) if m.latest_year is not None else NOT_AVAILABLE,
            "Overall Score (%)": m.overall_score,
            "Environment Score (%)": m.category_score("Environment"),
            "Social Score (%)": m.category_score("Social"),
            "Governance Score (%)": m.category_score("Governance"),
            "Status": self.status.label,
            "Registration Date": (f.created_at or "")[:10] or NOT_AVAILABLE,
        }


def _lower(value: Optional[str]) -> str:
    return (value or "").lower()


def _sort_key(column: str) -> Callable[[Firm, FirmMetrics], Any]:
    keys: Dict[str, Callable[[Firm, FirmMetrics], Any]] = {
        "firmName": lambda f, m: _lower(f.firm),
        "totalAssessments": lambda f, m: m.total_assessments,
        "latestYear": lambda f, m: m.latest_year or 0,
        "sector": lambda f, m: _lower(f.sector),
        "size": lambda f, m: _lower(f.business_size),
        "industry": lambda f, m: _lower(f.industry),
        "location": lambda f, m: _lower(f.location),
        "overallScore": lambda f, m: m.overall_precise if m.overall_precise is not None else -1.0,
    }
    try:
        return keys[column]
    except KeyError:
        raise ComparisonError(
            f"Cannot sort firm comparison by {column!r}. Expected one of {list(SORT_COLUMNS)}."
        ) from None


def _matches_search(firm: Firm, term: str) -> bool:
    if not term:
        return True
    fields = (firm.firm, firm.email, firm.sector, firm.business_size, firm.industry, firm.location)
    return any(term in _lower(v) for v in fields)


def compare_firms(
    firms: Iterable[Firm],
    metrics: Mapping[str, FirmMetrics],
    search: str = "",
    status: Optional[str] = None,
    sector: str = "",
    business_size: str = "",
    industry: str = "",
    location: str = "",
    sort_by: str = "overallScore",
    descending: bool = True,
) -> List[ComparisonRow]:
    """
    Firm comparison table: free-text search, tier filter, case-insensitive
    substring filters per dimension, then a stable sort on one column.
    """
    key = _sort_key(sort_by)
    term = _lower(search).strip()
    wanted_tier = parse_tier(status) if status and status.lower() != "all" else None

    substring_filters = (
        (sector, lambda f: f.sector),
        (business_size, lambda f: f.business_size),
        (industry, lambda f: f.industry),
        (location, lambda f: f.location),
    )

    selected: List[tuple] = []
    for firm in firms:
        m = metrics.get(firm.id) or FirmMetrics(firm_id=firm.id)
        if not _matches_search(firm, term):
            continue
        if wanted_tier is not None and m.status is not wanted_tier:
            continue
        if any(needle and _lower(needle) not in _lower(get(firm)) for needle, get in substring_filters):
            continue
        selected.append((firm, m))

    selected.sort(key=lambda pair: key(*pair), reverse=descending)
    return [ComparisonRow(number=i, firm=f, metrics=m) for i, (f, m) in enumerate(selected, 1)]
