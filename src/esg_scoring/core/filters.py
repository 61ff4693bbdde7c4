from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

from esg_scoring.core.models import Firm
from esg_scoring.core.year_resolver import parse_year


@dataclass(frozen=True)
class DashboardFilters:
    """
    Admin dashboard filter bar. Empty / None means "no filter".

    Dimension filters are exact matches. The year filter keeps firms that own
    at least one assessment for that year; their other years still count.
    """
    sector: Optional[str] = None
    business_size: Optional[str] = None
    industry: Optional[str] = None
    location: Optional[str] = None
    year: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return not any([self.sector, self.business_size, self.industry, self.location, self.year])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sector": self.sector or "",
            "business_size": self.business_size or "",
            "industry": self.industry or "",
            "location": self.location or "",
            "year": self.year,
        }


@dataclass
class FilterOptions:
    sectors: List[str] = field(default_factory=list)
    business_sizes: List[str] = field(default_factory=list)
    industries: List[str] = field(default_factory=list)
    locations: List[str] = field(default_factory=list)
    years: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sectors": list(self.sectors),
            "sizes": list(self.business_sizes),
            "industries": list(self.industries),
            "locations": list(self.locations),
            "years": [str(y) for y in self.years],
        }


def _has_year(assessments: Optional[Iterable[Any]], year: int) -> bool:
    return any(parse_year(a) == year for a in assessments or [])


def firm_matches(
    firm: Firm,
    filters: DashboardFilters,
    assessments: Optional[Iterable[Any]] = None,
) -> bool:
    if filters.sector and firm.sector != filters.sector:
        return False
    if filters.business_size and firm.business_size != filters.business_size:
        return False
    if filters.industry and firm.industry != filters.industry:
        return False
    if filters.location and firm.location != filters.location:
        return False
    if filters.year and not _has_year(assessments, int(filters.year)):
        return False
    return True


def filter_firms(
    firms: Iterable[Firm],
    assessments_by_firm: Mapping[str, Iterable[Any]],
    filters: Optional[DashboardFilters] = None,
) -> List[Firm]:
    """Firms passing the filter bar, in input order."""
    if filters is None or filters.is_empty:
        return list(firms)
    return [f for f in firms if firm_matches(f, filters, assessments_by_firm.get(f.id))]


def filter_options(
    firms: Iterable[Firm],
    assessments_by_firm: Mapping[str, Iterable[Any]],
) -> FilterOptions:
    """Distinct values for the filter dropdowns; years newest first."""
    firm_list = list(firms)
    years = set()
    for f in firm_list:
        for a in assessments_by_firm.get(f.id) or []:
            y = parse_year(a)
            if y is not None:
                years.add(y)

    return FilterOptions(
        sectors=sorted({f.sector for f in firm_list if f.sector}),
        business_sizes=sorted({f.business_size for f in firm_list if f.business_size}),
        industries=sorted({f.industry for f in firm_list if f.industry}),
        locations=sorted({f.location for f in firm_list if f.location}),
        years=sorted(years, reverse=True),
    )
