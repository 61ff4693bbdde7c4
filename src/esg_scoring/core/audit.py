from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

import math

from esg_scoring.config import ESG_CATEGORIES, NOT_AVAILABLE
from esg_scoring.core.aggregator import ScoreTotals
from esg_scoring.core.models import ResolvedYearRecord
from esg_scoring.core.stats import round_half_up
from esg_scoring.core.year_resolver import ResolvedDataset


@dataclass
class AuditTrendFact:
    """
    Change of a firm's overall score between two consecutive resolved years.
    """
    year_start: int
    year_end: int
    value_start: float
    value_end: float
    delta: float
    direction: str  # 'increase', 'decrease', 'no_change'


@dataclass
class AssessmentDetail:
    firm_id: str
    firm_name: str
    year: int
    is_selected: bool
    submitted_at: str
    selection_reason: str
    scores: Dict[str, Optional[float]]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "firmName": self.firm_name,
            "year": self.year,
            "isSelected": self.is_selected,
            "submittedAt": self.submitted_at,
            "selectionReason": self.selection_reason,
            **{k: round_half_up(v, 2) for k, v in self.scores.items()},
        }


@dataclass
class CalculationAudit:
    """
    The numbers behind the dashboard cards.

    Every figure here comes from the same ResolvedDataset as the cards and
    charts, so an admin can trace an average back to the records it uses.
    """
    total_assessments: int
    score_totals: Dict[str, ScoreTotals]
    details: List[AssessmentDetail]
    firms: List[Tuple[str, List[AssessmentDetail]]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalAssessments": self.total_assessments,
            "scoreTotals": {k: v.to_dict() for k, v in self.score_totals.items()},
            "assessmentDetails": [d.to_dict() for d in self.details],
            "firms": [
                {"firmName": name, "assessments": [d.to_dict() for d in rows]}
                for name, rows in self.firms
            ],
        }


def _direction_from_delta(delta: float, tolerance: float = 0.1) -> str:
    """
    Interpret a numeric delta as 'increase', 'decrease', or 'no_change'.

    Tolerance is used to treat very small changes as 'no_change' to avoid
    over-interpreting small fluctuations.
    """
    if math.isnan(delta):
        return "no_change"
    if delta > tolerance:
        return "increase"
    if delta < -tolerance:
        return "decrease"
    return "no_change"


def build_firm_trend(
    records: Iterable[ResolvedYearRecord],
    tolerance: float = 0.1,
) -> List[AuditTrendFact]:
    """
    Year-over-year facts for one firm's resolved records.

    Years without an overall score are skipped; the next scored year is
    compared with the last scored one.
    """
    facts: List[AuditTrendFact] = []
    prev: Optional[ResolvedYearRecord] = None

    for rec in sorted(records, key=lambda r: r.year):
        if rec.overall_score is None:
            continue
        if prev is not None:
            delta = rec.overall_score - prev.overall_score
            facts.append(
                AuditTrendFact(
                    year_start=prev.year,
                    year_end=rec.year,
                    value_start=prev.overall_score,
                    value_end=rec.overall_score,
                    delta=delta,
                    direction=_direction_from_delta(delta, tolerance=tolerance),
                )
            )
        prev = rec

    return facts


def build_calculation_audit(
    dataset: ResolvedDataset,
    categories: Tuple[str, ...] = ESG_CATEGORIES,
) -> CalculationAudit:
    """
    Build the calculation breakdown:
      - one detail row per resolved record
      - the same rows grouped per firm
      - sum / rounded sum / count / min / max / median per score column
    """
    totals: Dict[str, ScoreTotals] = {"overall": ScoreTotals()}
    for c in categories:
        totals[c.lower()] = ScoreTotals()

    details: List[AssessmentDetail] = []
    grouped: Dict[str, Tuple[str, List[AssessmentDetail]]] = {}

    for firm, rec in dataset:
        scores: Dict[str, Optional[float]] = {"overall": rec.overall_score}
        for c in categories:
            scores[c.lower()] = rec.category_scores.get(c)
        for k, v in scores.items():
            totals[k].add(v)

        detail = AssessmentDetail(
            firm_id=firm.id,
            firm_name=firm.firm or NOT_AVAILABLE,
            year=rec.year,
            is_selected=rec.is_selected,
            submitted_at=rec.submitted_at or NOT_AVAILABLE,
            selection_reason=rec.selection_reason,
            scores=scores,
        )
        details.append(detail)
        grouped.setdefault(firm.id, (detail.firm_name, []))[1].append(detail)

    return CalculationAudit(
        total_assessments=len(details),
        score_totals=totals,
        details=details,
        firms=list(grouped.values()),
    )
