from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from esg_scoring.core.models import Firm, ResolvedYearRecord
from esg_scoring.core.scores import ScoringOptions, score_record
from esg_scoring.core.stats import is_number

logger = logging.getLogger(__name__)

YEAR_FIELDS = ("year", "assessment_year")

SOLE = "sole"
SELECTED = "selected"
LATEST_TIMESTAMP = "latest_timestamp"
INPUT_ORDER = "input_order"

_INT_RE = re.compile(r"^[+-]?\d+$")


def _parse_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if is_number(value):
        return int(value) if float(value).is_integer() else None
    if isinstance(value, str):
        text = value.strip()
        if _INT_RE.match(text):
            return int(text)
    return None


def parse_year(assessment: Any) -> Optional[int]:
    """Reporting year of a record: `year`, else `assessment_year`; None if neither parses."""
    if not isinstance(assessment, Mapping):
        return None
    for key in YEAR_FIELDS:
        year = _parse_int(assessment.get(key))
        if year is not None:
            return year
    return None


def _timestamp(assessment: Mapping[str, Any]) -> str:
    # ISO-8601 strings sort chronologically; compared as text on purpose
    value = assessment.get("submitted_at") or assessment.get("created_at") or ""
    return str(value)


def _select(group: Sequence[Mapping[str, Any]], firm_id: str, year: int) -> Tuple[Mapping[str, Any], str]:
    if len(group) == 1:
        return group[0], SOLE

    flagged = [a for a in group if a.get("is_selected") is True]
    if len(flagged) == 1:
        return flagged[0], SELECTED

    candidates = flagged or list(group)
    if len(flagged) > 1:
        logger.warning(
            "Firm %s year %s: %d assessments flagged is_selected; using the latest of them.",
            firm_id, year, len(flagged),
        )

    # max() keeps the first of equal keys, which gives the input-order tie-break
    best = max(candidates, key=_timestamp)
    best_ts = _timestamp(best)
    ties = sum(1 for a in candidates if _timestamp(a) == best_ts)
    if ties > 1:
        logger.warning(
            "Firm %s year %s: %d candidate assessments share timestamp %r; "
            "falling back to input order.",
            firm_id, year, ties, best_ts or None,
        )
        return best, INPUT_ORDER

    if not flagged:
        logger.info(
            "Firm %s year %s: no assessment flagged is_selected among %d; using latest submission.",
            firm_id, year, len(group),
        )
    return best, (SELECTED if flagged else LATEST_TIMESTAMP)


def group_by_year(assessments: Iterable[Any]) -> Dict[int, List[Mapping[str, Any]]]:
    """Bucket records by reporting year, preserving input order inside each year."""
    groups: Dict[int, List[Mapping[str, Any]]] = {}
    for assessment in assessments or []:
        year = parse_year(assessment)
        if year is None:
            logger.debug("Dropping assessment %r with unparseable year.", _record_id(assessment))
            continue
        groups.setdefault(year, []).append(assessment)
    return groups


def _record_id(assessment: Any) -> Any:
    if isinstance(assessment, Mapping):
        return assessment.get("id", assessment.get("_id"))
    return None


def resolve_canonical_per_year(
    assessments: Iterable[Any],
    firm_id: str = "",
    options: Optional[ScoringOptions] = None,
) -> Dict[int, ResolvedYearRecord]:
    """
    Choose exactly one assessment per reporting year for a single firm.

    Rules inside one year:
      - a lone record is used as is, whatever its is_selected flag
      - otherwise the record with is_selected == True
      - otherwise the greatest submitted_at (created_at when absent)
      - remaining ties go to the first record in input order

    The result is keyed by year in ascending order and is the only place
    where canonical records are decided.
    """
    resolved: Dict[int, ResolvedYearRecord] = {}
    for year, group in sorted(group_by_year(assessments).items()):
        chosen, reason = _select(group, firm_id, year)
        overall, categories = score_record(chosen, options)
        resolved[year] = ResolvedYearRecord(
            firm_id=firm_id,
            year=year,
            assessment=chosen,
            overall_score=overall,
            category_scores=categories,
            selection_reason=reason,
            candidate_count=len(group),
        )
    return resolved


@dataclass(frozen=True)
class ResolvedDataset:
    """
    Every canonical (firm, year) record of one aggregation pass.

    Cards, charts, tables and exports all read from the same instance so that
    they cannot disagree about which submission represents a year.
    """
    entries: Tuple[Tuple[Firm, ResolvedYearRecord], ...] = ()
    firms: Tuple[Firm, ...] = field(default=(), repr=False)

    def __iter__(self) -> Iterator[Tuple[Firm, ResolvedYearRecord]]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def records_for(self, firm_id: str) -> List[ResolvedYearRecord]:
        return [rec for firm, rec in self.entries if firm.id == firm_id]

    @property
    def firm_ids(self) -> List[str]:
        seen: Dict[str, None] = {}
        for firm, _ in self.entries:
            seen.setdefault(firm.id, None)
        return list(seen)

    @property
    def years(self) -> List[int]:
        return sorted({rec.year for _, rec in self.entries})

    @property
    def latest_year(self) -> Optional[int]:
        years = self.years
        return years[-1] if years else None


def resolve_population(
    firms: Iterable[Firm],
    assessments_by_firm: Mapping[str, Iterable[Any]],
    options: Optional[ScoringOptions] = None,
) -> ResolvedDataset:
    """Resolve every firm once; entries follow firm order, then ascending year."""
    firm_list = tuple(firms)
    entries: List[Tuple[Firm, ResolvedYearRecord]] = []
    for firm in firm_list:
        raw = assessments_by_firm.get(firm.id) or []
        for record in resolve_canonical_per_year(raw, firm_id=firm.id, options=options).values():
            entries.append((firm, record))
    return ResolvedDataset(entries=tuple(entries), firms=firm_list)
