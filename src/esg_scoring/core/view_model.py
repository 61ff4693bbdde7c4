from __future__ import annotations

import copy
import hashlib
import json
import logging
from collections import OrderedDict
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

from esg_scoring.config import VIEW_MODEL_CACHE_SIZE
from esg_scoring.core.aggregator import (
    GROUPING_DIMENSIONS,
    AggregateBucket,
    Dimension,
    FirmMetrics,
    PopulationRollup,
    StatusDistribution,
    aggregate,
    firm_metrics,
    population_rollup,
    status_distribution,
)
from esg_scoring.core.audit import CalculationAudit, build_calculation_audit
from esg_scoring.core.comparison import ComparisonRow, compare_firms
from esg_scoring.core.filters import DashboardFilters, FilterOptions, filter_firms, filter_options
from esg_scoring.core.models import Firm
from esg_scoring.core.scores import DEFAULT_OPTIONS, ScoringOptions
from esg_scoring.core.year_resolver import ResolvedDataset, resolve_population

logger = logging.getLogger(__name__)

# In-memory memo keyed by input content hash (LRU)
_VIEW_MODEL_CACHE: "OrderedDict[str, DashboardViewModel]" = OrderedDict()


@dataclass
class DashboardViewModel:
    """
    Everything the admin dashboard renders, derived from one ResolvedDataset.
    """
    filters: DashboardFilters
    filter_options: FilterOptions
    dataset: ResolvedDataset
    metrics: PopulationRollup
    buckets: Dict[Dimension, List[AggregateBucket]]
    firm_metrics: Dict[str, FirmMetrics]
    status_distribution: StatusDistribution
    comparison: List[ComparisonRow]
    audit: CalculationAudit
    content_hash: str = field(default="", repr=False)

    def dimension(self, dimension: Any) -> List[AggregateBucket]:
        return self.buckets.get(Dimension.parse(dimension), [])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filters": self.filters.to_dict(),
            "filterOptions": self.filter_options.to_dict(),
            "metrics": self.metrics.to_dict(),
            "buckets": {dim.value: [b.to_dict() for b in rows] for dim, rows in self.buckets.items()},
            "firmMetrics": {fid: m.to_dict() for fid, m in self.firm_metrics.items()},
            "statusDistribution": self.status_distribution.to_dict(),
            "unscoredFirms": self.status_distribution.unscored,
            "comparison": [row.to_dict() for row in self.comparison],
            "calculation": self.audit.to_dict(),
        }


def content_hash(
    firms: Iterable[Firm],
    assessments_by_firm: Mapping[str, List[Any]],
    filters: DashboardFilters,
    options: ScoringOptions,
) -> str:
    """SHA-256 over a canonical JSON rendering of every input."""
    payload = {
        "firms": [f.to_dict() for f in firms],
        "assessments": {str(k): v for k, v in assessments_by_firm.items()},
        "filters": filters.to_dict(),
        "options": asdict(options),
    }
    blob = json.dumps(payload, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(blob.encode("utf-8")).hexdigest()


def _build(
    firms: List[Firm],
    assessments_by_firm: Mapping[str, Iterable[Any]],
    filters: DashboardFilters,
    options: ScoringOptions,
) -> DashboardViewModel:
    selected = filter_firms(firms, assessments_by_firm, filters)

    # Resolved exactly once; everything below reads this dataset
    dataset = resolve_population(selected, assessments_by_firm, options=options)

    per_firm = firm_metrics(dataset, selected, categories=options.categories)
    return DashboardViewModel(
        filters=filters,
        filter_options=filter_options(firms, assessments_by_firm),
        dataset=dataset,
        metrics=population_rollup(dataset, total_firms=len(selected), categories=options.categories),
        buckets={dim: aggregate(dataset, dim) for dim in GROUPING_DIMENSIONS},
        firm_metrics=per_firm,
        status_distribution=status_distribution(per_firm),
        comparison=compare_firms(selected, per_firm),
        audit=build_calculation_audit(dataset, categories=options.categories),
    )


def compute_dashboard_view_model(
    firms: Iterable[Firm],
    assessments_by_firm: Mapping[str, Iterable[Any]],
    filters: Optional[DashboardFilters] = None,
    options: Optional[ScoringOptions] = None,
    use_cache: bool = True,
) -> DashboardViewModel:
    """
    Pure entry point for the presentation layer.

    Call it whenever firms, assessments or filters change. Identical inputs
    (by content, not identity) are served from the memo. Every call gets its
    own copy, so callers may sort or trim the result freely.
    """
    firm_list = list(firms)
    assessments = {str(k): list(v or []) for k, v in assessments_by_firm.items()}
    flt = filters or DashboardFilters()
    opts = options or DEFAULT_OPTIONS

    key = content_hash(firm_list, assessments, flt, opts)
    if use_cache and key in _VIEW_MODEL_CACHE:
        _VIEW_MODEL_CACHE.move_to_end(key)
        return copy.deepcopy(_VIEW_MODEL_CACHE[key])

    logger.info("Computing dashboard view model for %d firms (filters=%s)", len(firm_list), flt)
    vm = _build(firm_list, assessments, flt, opts)
    vm.content_hash = key

    if use_cache and VIEW_MODEL_CACHE_SIZE > 0:
        _VIEW_MODEL_CACHE[key] = vm
        while len(_VIEW_MODEL_CACHE) > VIEW_MODEL_CACHE_SIZE:
            _VIEW_MODEL_CACHE.popitem(last=False)
        return copy.deepcopy(vm)
    return vm


def clear_view_model_cache() -> None:
    _VIEW_MODEL_CACHE.clear()
