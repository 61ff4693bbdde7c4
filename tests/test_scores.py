import pytest

from esg_scoring.core.scores import (
    ScoreShape,
    ScoringOptions,
    category_score,
    category_score_precise,
    detect_score_shape,
    has_category_max,
    has_total_score,
    is_legacy_pillar_shape,
    overall_score,
    overall_score_precise,
    score_record,
)

from factories import legacy, response, totaled


class TestShapeDetection:
    def test_totaled(self):
        assert detect_score_shape({"total_score": 10, "max_score": 20}) is ScoreShape.TOTALED
        assert has_total_score({"total_score": 0})

    def test_category_max_without_total(self):
        score = {"Environment": 5, "category_max": {"Environment": 10}}
        assert detect_score_shape(score) is ScoreShape.CATEGORY_MAX
        assert has_category_max(score, "Environment")
        assert not has_category_max(score, "Social")

    def test_legacy(self):
        score = {"Environment": 50, "Social": 60, "Governance": 70}
        assert is_legacy_pillar_shape(score)
        assert detect_score_shape(score) is ScoreShape.LEGACY_PILLARS

    @pytest.mark.parametrize("score", [None, "80", 42, [], {}, {"foo": 1}])
    def test_unknown(self, score):
        assert detect_score_shape(score) is ScoreShape.UNKNOWN


class TestCategoryScore:
    def test_responses_take_precedence(self):
        assessment = {
            "responses": [
                response("Environment", 3, 4),
                response("Environment", 1, 6),
                response("Social", 2, 2),
            ],
            "score": {"Environment": 10, "category_max": {"Environment": 10}},
        }
        assert category_score_precise(assessment, "Environment") == pytest.approx(40.0)
        assert category_score(assessment, "Social") == 100

    def test_responses_without_max_are_ignored(self):
        assessment = {
            "responses": [
                {"category": "Environment", "question_score": 5},
                response("Environment", 1, 2),
            ]
        }
        assert category_score_precise(assessment, "Environment") == pytest.approx(50.0)

    def test_responses_with_zero_max_fall_through(self):
        assessment = {
            "responses": [response("Governance", 0, 0)],
            "score": {"Governance": 3, "category_max": {"Governance": 4}},
        }
        assert category_score_precise(assessment, "Governance") == pytest.approx(75.0)

    def test_numeric_strings_in_responses(self):
        assessment = {"responses": [response("Social", "2.5", "5")]}
        assert category_score_precise(assessment, "Social") == pytest.approx(50.0)

    def test_category_max_shape(self):
        assessment = {"score": {"Social": 18, "category_max": {"Social": 24}}}
        assert category_score_precise(assessment, "Social") == pytest.approx(75.0)

    def test_category_max_missing_points_counts_as_zero(self):
        assessment = {"score": {"category_max": {"Social": 24}}}
        assert category_score_precise(assessment, "Social") == 0.0

    def test_zero_category_max_is_no_data(self):
        assessment = {"score": {"Social": 0, "category_max": {"Social": 0}}}
        assert category_score_precise(assessment, "Social") is None

    def test_legacy_percentage_returned_directly(self):
        assert category_score_precise(legacy(55.5, 60, 70), "Environment") == 55.5
        assert category_score(legacy(55.5, 60, 70), "Environment") == 56

    def test_missing_category(self):
        assert category_score_precise(legacy(50, 60, 70), "Climate") is None

    @pytest.mark.parametrize("assessment", [None, {}, {"score": None}, {"score": "oops"}, {"score": []}])
    def test_malformed_returns_none(self, assessment):
        assert category_score_precise(assessment, "Environment") is None
        assert category_score(assessment, "Environment") is None

    def test_clamped_to_percentage_range(self):
        assessment = {"responses": [response("Environment", 12, 10)]}
        assert category_score_precise(assessment, "Environment") == 100.0

    def test_rounded_agrees_with_precise(self):
        assessment = {"responses": [response("Social", 1, 3)]}
        precise = category_score_precise(assessment, "Social")
        assert precise == pytest.approx(33.3333, rel=1e-4)
        assert category_score(assessment, "Social") == 33

    def test_half_rounds_up(self):
        assessment = {"responses": [response("Social", 89, 200)]}
        assert category_score(assessment, "Social") == 45


class TestOverallScore:
    def test_total_over_max(self):
        assert overall_score_precise(totaled(150, 200)) == pytest.approx(75.0)
        assert overall_score(totaled(151, 300)) == 50

    def test_missing_max_uses_default(self):
        assessment = {"score": {"total_score": 150}}
        assert overall_score_precise(assessment) == pytest.approx(50.0)

    def test_missing_max_uses_configured_default(self):
        assessment = {"score": {"total_score": 150}}
        opts = ScoringOptions(default_max_score=200)
        assert overall_score_precise(assessment, opts) == pytest.approx(75.0)

    def test_zero_max_is_no_data(self):
        assert overall_score_precise(totaled(0, 0)) is None

    def test_legacy_mean_of_numeric_values(self):
        assert overall_score_precise(legacy(50, 60, 71)) == pytest.approx(60.333, rel=1e-3)
        assert overall_score(legacy(50, 60, 71)) == 60

    def test_legacy_ignores_non_numeric(self):
        assessment = {"score": {"Environment": 40, "Social": 80, "note": "draft", "flag": True}}
        assert overall_score_precise(assessment) == pytest.approx(60.0)

    @pytest.mark.parametrize("assessment", [None, {}, {"score": {"Social": 50}}, {"score": 12}])
    def test_unrecognised_returns_none(self, assessment):
        assert overall_score_precise(assessment) is None
        assert overall_score(assessment) is None

    def test_score_record(self):
        overall, categories = score_record(legacy(50, 60, 70))
        assert overall == pytest.approx(60.0)
        assert categories == {"Environment": 50.0, "Social": 60.0, "Governance": 70.0}
