from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from esg_scoring.config import (
    API_BASE_URL,
    API_TIMEOUT_SECONDS,
    API_TOKEN,
    ASSESSMENTS_ENDPOINT,
    FIRMS_ENDPOINT,
)
from esg_scoring.core.models import Firm

logger = logging.getLogger(__name__)


class DataLoaderError(Exception):
    """Raised when admin backend calls fail or return unexpected shapes."""


def _build_retry_session() -> requests.Session:
    """
    Build a requests Session with conservative retries.
    The admin backend can be slow right after deploys.
    """
    session = requests.Session()

    retry = Retry(
        total=5,
        connect=5,
        read=5,
        status=5,
        backoff_factor=0.6,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=frozenset({"GET"}),
        raise_on_status=False,
    )

    adapter = HTTPAdapter(max_retries=retry, pool_connections=10, pool_maxsize=10)
    session.mount("https://", adapter)
    session.mount("http://", adapter)

    return session


_SESSION: Optional[requests.Session] = None


def _get_session() -> requests.Session:
    global _SESSION
    if _SESSION is None:
        _SESSION = _build_retry_session()
    return _SESSION


def _get_json(
    path: str,
    *,
    params: Optional[Dict[str, Any]] = None,
    base_url: Optional[str] = None,
    token: Optional[str] = None,
    timeout_seconds: Optional[int] = None,
) -> Any:
    base = (base_url if base_url is not None else API_BASE_URL).rstrip("/")
    if not base:
        raise DataLoaderError("Missing backend URL. Set ESG_API_BASE_URL or pass base_url.")

    headers = {"Accept": "application/json"}
    bearer = token if token is not None else API_TOKEN
    if bearer:
        headers["Authorization"] = f"Bearer {bearer}"

    url = f"{base}{path}"
    logger.info("GET %s params=%s", url, params)
    try:
        resp = _get_session().get(
            url,
            params=params,
            headers=headers,
            timeout=timeout_seconds or API_TIMEOUT_SECONDS,
        )
    except requests.RequestException as exc:
        raise DataLoaderError(f"HTTP error while calling {url}: {exc}") from exc

    if resp.status_code >= 400:
        preview = (resp.text or "")[:200]
        raise DataLoaderError(f"{url} returned status {resp.status_code}. Preview: {preview}")

    try:
        return resp.json()
    except ValueError as exc:
        preview = (resp.text or "")[:200]
        raise DataLoaderError(f"Non-JSON response from {url} (status={resp.status_code}). Preview: {preview}") from exc


# ---------------------------------------------------------------------------
# Payload normalisation
# ---------------------------------------------------------------------------

def flatten_assessment_payload(payload: Any) -> List[Dict[str, Any]]:
    """
    Turn the per-year responses payload into flat RawAssessment records.

    Expected shape:
      [ { "years": [ { "year": 2024, "data": [ {...}, {...} ],
                       "score": {...}, "last_updated": "..." }, ... ] } ]

    Every submission in `data` becomes one record (copied, never mutated),
    with year / assessment_year / score / submitted_at filled from the year
    object when the submission lacks them. A year object with no `data` is
    itself the only submission for that year.

    No canonical selection happens here; that belongs to year_resolver.
    """
    if not isinstance(payload, list) or not payload:
        return []
    first = payload[0]
    if not isinstance(first, Mapping):
        raise DataLoaderError(f"Unexpected assessments payload item: {type(first)}")

    years = first.get("years") or []
    if not isinstance(years, list):
        raise DataLoaderError("Assessments payload 'years' is not a list")

    flat: List[Dict[str, Any]] = []
    for year_obj in years:
        if not isinstance(year_obj, Mapping):
            continue
        data = year_obj.get("data")
        if isinstance(data, list) and data:
            for item in data:
                if not isinstance(item, Mapping):
                    continue
                record = dict(item)
                record["year"] = year_obj.get("year") or item.get("assessment_year")
                record["assessment_year"] = item.get("assessment_year") or year_obj.get("year")
                record["score"] = item.get("score") or year_obj.get("score")
                record["submitted_at"] = item.get("submitted_at") or year_obj.get("last_updated")
                flat.append(record)
        else:
            record = {k: v for k, v in year_obj.items() if k != "data"}
            record["is_selected"] = True
            record["submitted_at"] = year_obj.get("last_updated")
            record["assessment_year"] = year_obj.get("year")
            flat.append(record)
    return flat


# ---------------------------------------------------------------------------
# Public fetchers
# ---------------------------------------------------------------------------

def fetch_firms(**kwargs: Any) -> List[Firm]:
    data = _get_json(FIRMS_ENDPOINT, **kwargs)
    users = data.get("users") if isinstance(data, Mapping) else None
    if users is None:
        users = []
    if not isinstance(users, list):
        raise DataLoaderError("Firms response 'users' is not a list")
    return [Firm.from_record(u) for u in users if isinstance(u, Mapping)]


def fetch_firm_assessments(firm_id: str, **kwargs: Any) -> List[Dict[str, Any]]:
    data = _get_json(ASSESSMENTS_ENDPOINT, params={"user_id": firm_id}, **kwargs)
    return flatten_assessment_payload(data)


def load_population(
    firms: Optional[Iterable[Firm]] = None,
    **kwargs: Any,
) -> Tuple[List[Firm], Dict[str, List[Dict[str, Any]]]]:
    """
    Fetch firms (unless given) and every firm's raw assessments.

    A firm whose assessments cannot be fetched is logged and kept with an
    empty list, so one broken account does not blank the whole dashboard.
    """
    firm_list = list(firms) if firms is not None else fetch_firms(**kwargs)
    assessments: Dict[str, List[Dict[str, Any]]] = {}
    for firm in firm_list:
        try:
            assessments[firm.id] = fetch_firm_assessments(firm.id, **kwargs)
        except DataLoaderError as exc:
            logger.warning("Could not load assessments for firm %s: %s", firm.id, exc)
            assessments[firm.id] = []
    return firm_list, assessments
