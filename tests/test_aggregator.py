import math

import pytest

from esg_scoring.core.aggregator import (
    Dimension,
    ScoreTotals,
    aggregate,
    dimension_key,
    firm_metrics,
    industry_main_category,
    population_rollup,
    resolved_frame,
    status_distribution,
)
from esg_scoring.core.errors import DimensionError
from esg_scoring.core.models import Firm
from esg_scoring.core.status import Tier
from esg_scoring.core.year_resolver import ResolvedDataset, resolve_population

from factories import legacy, totaled


@pytest.fixture
def dataset(population):
    firms, assessments = population
    return resolve_population(firms, assessments)


class TestDimensionKeys:
    def test_industry_main_category(self):
        assert industry_main_category("Manufacturing: Textiles") == "Manufacturing"
        assert industry_main_category("  Food :Catering: Halal ") == "Food"
        assert industry_main_category("Retail") == "Retail"
        assert industry_main_category(None) == "Unknown"
        assert industry_main_category(": orphan") == "Unknown"

    def test_missing_values_bucket_as_unknown(self):
        firm = Firm(id="x", sector="  ", location=None)
        assert dimension_key(firm, Dimension.SECTOR) == "Unknown"
        assert dimension_key(firm, Dimension.LOCATION) == "Unknown"

    def test_values_are_trimmed(self):
        firm = Firm(id="x", location="  Penang ")
        assert dimension_key(firm, Dimension.LOCATION) == "Penang"

    def test_status_dimension_uses_record_score(self):
        firm = Firm(id="x")
        assert dimension_key(firm, Dimension.STATUS, 65.0) == "INTERMEDIATE"
        assert dimension_key(firm, Dimension.STATUS, None) == "N/A"

    def test_status_dimension_classifies_rounded_score(self):
        firm = Firm(id="x")
        assert dimension_key(firm, Dimension.STATUS, 30.4) == "BASIC"
        assert dimension_key(firm, Dimension.STATUS, 30.5) == "DEVELOPING"
        assert dimension_key(firm, Dimension.STATUS, 0.4) == "YET TO START"

    @pytest.mark.parametrize(
        "name, expected",
        [
            ("sector", Dimension.SECTOR),
            ("industry-main-category", Dimension.INDUSTRY_CATEGORY),
            ("size", Dimension.BUSINESS_SIZE),
            ("State", Dimension.LOCATION),
            ("", Dimension.NONE),
            (Dimension.STATUS, Dimension.STATUS),
        ],
    )
    def test_parse(self, name, expected):
        assert Dimension.parse(name) is expected

    def test_parse_unknown(self):
        with pytest.raises(DimensionError):
            Dimension.parse("colour")


class TestResolvedFrame:
    def test_columns_and_nan(self, dataset):
        df = resolved_frame(dataset)
        assert list(df.columns) == ["firm_id", "year", "overall", "environment", "social", "governance"]
        assert len(df) == 3
        assert df["environment"].isna().all()
        assert df["overall"].tolist() == pytest.approx([60.0, 80.0, 30.0])

    def test_empty(self):
        df = resolved_frame(ResolvedDataset())
        assert df.empty


class TestAggregate:
    def test_sector_buckets_sorted_by_average(self, dataset):
        buckets = aggregate(dataset, "sector")
        assert [b.key for b in buckets] == ["Manufacturing", "Services"]

        manufacturing = buckets[0]
        assert manufacturing.count == 2
        assert manufacturing.record_count == 2
        assert manufacturing.sum == pytest.approx(140.0)
        assert manufacturing.average == pytest.approx(70.0)
        assert manufacturing.min == pytest.approx(60.0)
        assert manufacturing.max == pytest.approx(80.0)
        assert manufacturing.median == pytest.approx(70.0)
        # two years, one firm
        assert manufacturing.firm_count == 1

    def test_to_dict(self, dataset):
        out = aggregate(dataset, Dimension.SECTOR)[0].to_dict()
        assert out["key"] == "Manufacturing"
        assert out["averageScore"] == 70
        assert out["firmCount"] == 1
        assert out["assessmentCount"] == 2

    def test_industry_category_collects_subcategories(self):
        firms = [
            Firm(id="1", industry="Manufacturing: Textiles"),
            Firm(id="2", industry="Manufacturing: Metals"),
        ]
        assessments = {"1": [totaled(150)], "2": [totaled(90)]}
        buckets = aggregate(resolve_population(firms, assessments), "industry_category")
        assert len(buckets) == 1
        assert buckets[0].key == "Manufacturing"
        assert buckets[0].members == {"Manufacturing: Textiles", "Manufacturing: Metals"}
        assert buckets[0].to_dict()["subcategoryCount"] == 2

    def test_ties_keep_first_appearance_order(self):
        firms = [Firm(id="1", sector="Zeta"), Firm(id="2", sector="Alpha"), Firm(id="3", sector="Mid")]
        assessments = {"1": [totaled(150)], "2": [totaled(150)], "3": [totaled(240)]}
        buckets = aggregate(resolve_population(firms, assessments), "sector")
        assert [b.key for b in buckets] == ["Mid", "Zeta", "Alpha"]

    def test_records_without_score_count_for_firms_only(self):
        firms = [Firm(id="1", sector="S"), Firm(id="2", sector="S")]
        assessments = {"1": [totaled(150)], "2": [{"year": 2024, "score": {"oops": 1}}]}
        bucket = aggregate(resolve_population(firms, assessments), "sector")[0]
        assert bucket.count == 1
        assert bucket.record_count == 2
        assert bucket.firm_count == 2
        assert bucket.average == pytest.approx(50.0)

    def test_bucket_with_no_scores_averages_zero(self):
        firms = [Firm(id="1", sector="S")]
        bucket = aggregate(resolve_population(firms, {"1": [{"year": 2024}]}), "sector")[0]
        assert bucket.count == 0
        assert bucket.sum == 0.0
        assert bucket.average == 0.0
        assert bucket.min is None and bucket.median is None

    def test_none_dimension_single_bucket(self, dataset):
        buckets = aggregate(dataset, "none")
        assert len(buckets) == 1
        assert buckets[0].key == "All"
        assert buckets[0].firm_count == 2

    @pytest.mark.parametrize("dimension", list(Dimension))
    def test_empty_dataset(self, dimension):
        assert aggregate(ResolvedDataset(), dimension) == []

    @pytest.mark.parametrize("dimension", list(Dimension))
    def test_partition_matches_population(self, dataset, dimension):
        buckets = aggregate(dataset, dimension)
        rollup = population_rollup(dataset)
        assert sum(b.count for b in buckets) == rollup.overall.count
        assert sum(b.record_count for b in buckets) == rollup.total_assessments
        assert sum(b.sum for b in buckets) == pytest.approx(rollup.overall.sum)


class TestScoreTotals:
    def test_statistics_skip_missing_values(self):
        totals = ScoreTotals()
        for value in (40.0, None, 10.0, 25.5, 90.0):
            totals.add(value)
        assert totals.count == 4
        assert totals.min == pytest.approx(10.0)
        assert totals.max == pytest.approx(90.0)
        assert totals.median == pytest.approx(32.75)
        assert totals.to_dict()["median"] == 32.75

    def test_empty(self):
        totals = ScoreTotals()
        assert totals.min is None
        assert totals.max is None
        assert totals.median is None
        assert totals.average == 0.0


class TestPopulationRollup:
    def test_figures(self, dataset):
        rollup = population_rollup(dataset)
        assert rollup.total_assessments == 3
        assert rollup.total_firms == 3
        assert rollup.firms_with_assessments == 2
        assert rollup.overall.average == pytest.approx(170.0 / 3)
        assert rollup.latest_year == 2024

        out = rollup.to_dict()
        assert out["averageESGScore"] == 56.67
        assert out["environmentAverage"] == 0
        assert out["latestYear"] == "2024"

    def test_category_averages_are_independent(self):
        firms = [Firm(id="1"), Firm(id="2")]
        assessments = {
            "1": [legacy(40, 60, 80)],
            "2": [{"year": 2024, "score": {"Environment": 80, "Social": 20}}],
        }
        rollup = population_rollup(resolve_population(firms, assessments))
        assert rollup.overall.count == 2
        assert rollup.category("Environment").average == pytest.approx(60.0)
        assert rollup.category("Governance").count == 1
        assert rollup.category("Governance").average == pytest.approx(80.0)

    def test_empty_population(self):
        rollup = population_rollup(ResolvedDataset())
        out = rollup.to_dict()
        assert out == {
            "totalAssessments": 0,
            "totalFirms": 0,
            "firmsWithAssessments": 0,
            "averageESGScore": 0,
            "environmentAverage": 0,
            "socialAverage": 0,
            "governanceAverage": 0,
            "latestYear": "N/A",
        }
        assert not any(isinstance(v, float) and math.isnan(v) for v in out.values())

    def test_total_firms_override(self, dataset):
        assert population_rollup(dataset, total_firms=10).total_firms == 10


class TestFirmMetrics:
    def test_cross_year_average_scenario(self, dataset):
        metrics = firm_metrics(dataset)
        a = metrics["a"]
        assert a.total_assessments == 2
        assert a.latest_year == 2024
        assert a.overall_precise == pytest.approx(70.0)
        assert a.overall_score == 70
        assert a.status is Tier.INTERMEDIATE

    def test_firm_without_records(self, dataset):
        c = firm_metrics(dataset)["c"]
        assert c.total_assessments == 0
        assert c.overall_score is None
        assert c.status is Tier.NOT_AVAILABLE
        assert c.to_dict()["latestYear"] == "N/A"

    def test_to_dict(self):
        firms = [Firm(id="1")]
        assessments = {"1": [legacy(40, 61, 80, year=2023), legacy(50, 70, 90, year=2024)]}
        out = firm_metrics(resolve_population(firms, assessments))["1"].to_dict()
        assert out == {
            "totalAssessments": 2,
            "latestYear": "2024",
            "overallScore": 65,
            "envScore": 45,
            "socialScore": 66,
            "govScore": 85,
            "status": "INTERMEDIATE",
        }


class TestStatusDistribution:
    def test_counts_firms_not_records(self, dataset):
        dist = status_distribution(firm_metrics(dataset))
        out = dist.to_dict()
        assert out["Intermediate (50-80%)"] == 1
        assert out["Basic (0-30%)"] == 1
        assert out["Advanced (80-100%)"] == 0
        assert dist.total == 2
        assert dist.unscored == 1

    def test_matches_status_buckets_for_single_year_firm(self):
        firms = [Firm(id="1")]
        dataset = resolve_population(firms, {"1": [totaled(91.2)]})
        metrics = firm_metrics(dataset)
        assert [b.key for b in aggregate(dataset, "status")] == [metrics["1"].status.label] == ["BASIC"]
        assert status_distribution(metrics).to_dict()["Basic (0-30%)"] == 1

    def test_zero_score_is_yet_to_start(self):
        firms = [Firm(id="1")]
        dist = status_distribution(firm_metrics(resolve_population(firms, {"1": [totaled(0)]})))
        assert dist.to_dict()["Yet To Start (0%)"] == 1
