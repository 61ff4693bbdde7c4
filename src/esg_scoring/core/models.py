from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    s = str(value).replace("\u00A0", " ").strip()
    return s or None


@dataclass(frozen=True)
class Firm:
    """
    A registered firm as returned by the admin backend.

    Only the grouping fields matter to the engine; identity/display fields are
    carried through for the comparison table.
    """
    id: str
    firm: Optional[str] = None
    email: Optional[str] = None
    sector: Optional[str] = None
    business_size: Optional[str] = None
    industry: Optional[str] = None
    location: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Firm":
        address = record.get("address")
        location = record.get("location")
        if not location and isinstance(address, Mapping):
            location = address.get("location")
        raw_id = record.get("id", record.get("_id"))
        return cls(
            id=str(raw_id) if raw_id is not None else "",
            firm=_text(record.get("firm")),
            email=_text(record.get("email")),
            sector=_text(record.get("sector")),
            business_size=_text(record.get("business_size")),
            industry=_text(record.get("industry")),
            location=_text(location),
            created_at=_text(record.get("created_at")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "firm": self.firm,
            "email": self.email,
            "sector": self.sector,
            "business_size": self.business_size,
            "industry": self.industry,
            "location": self.location,
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class ResolvedYearRecord:
    """
    The one assessment that represents a firm for a calendar year.

    `assessment` is the untouched raw record. Scores are precise (unrounded).
    """
    firm_id: str
    year: int
    assessment: Mapping[str, Any] = field(repr=False, compare=False)
    overall_score: Optional[float]
    category_scores: Mapping[str, Optional[float]]
    selection_reason: str
    candidate_count: int = 1

    @property
    def is_selected(self) -> bool:
        return self.assessment.get("is_selected") is True

    @property
    def submitted_at(self) -> Optional[str]:
        return self.assessment.get("submitted_at") or self.assessment.get("created_at")
