"""Shared fixtures for scoring engine tests."""

import pytest

from esg_scoring.core.models import Firm
from esg_scoring.core.view_model import clear_view_model_cache

from factories import totaled


@pytest.fixture(autouse=True)
def _fresh_view_model_cache():
    clear_view_model_cache()
    yield
    clear_view_model_cache()


@pytest.fixture
def firm_a():
    return Firm(
        id="a",
        firm="Alpha Textiles",
        email="ops@alpha.example",
        sector="Manufacturing",
        business_size="Small",
        industry="Manufacturing: Textiles",
        location="Selangor",
        created_at="2023-02-01T08:00:00Z",
    )


@pytest.fixture
def firm_b():
    return Firm(
        id="b",
        firm="Beta Foods",
        email="hello@beta.example",
        sector="Services",
        business_size="Medium",
        industry="Food: Catering",
        location="Johor",
        created_at="2023-05-10T08:00:00Z",
    )


@pytest.fixture
def firm_c():
    return Firm(id="c", firm="Gamma Works", sector=None, business_size="Small", industry="Manufacturing: Metals")


@pytest.fixture
def population(firm_a, firm_b, firm_c):
    """
    Firm A: 2023 has two submissions (40% and selected 60%), 2024 sole 80%.
    Firm B: 2024 has two unflagged submissions, the later one scores 30%.
    Firm C: no assessments.
    """
    assessments = {
        "a": [
            totaled(120, year=2023, id="a-2023-1", submitted_at="2023-03-01T00:00:00Z"),
            totaled(180, year=2023, id="a-2023-2", is_selected=True, submitted_at="2023-02-01T00:00:00Z"),
            totaled(240, year=2024, id="a-2024", is_selected=False),
        ],
        "b": [
            totaled(150, year=2024, id="b-2024-1", submitted_at="2024-01-01T00:00:00Z"),
            totaled(90, year=2024, id="b-2024-2", submitted_at="2024-06-01T00:00:00Z"),
        ],
        "c": [],
    }
    return [firm_a, firm_b, firm_c], assessments
