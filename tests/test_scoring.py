"""
Tests for Weighted Scoring Engine and Complexity Estimator

Tests cover:
1. Weighted score formula, exclusion of unweighted keys, rounding, clamping
2. Weight loading with default fallback
3. Complexity components and regulatory detection
"""

import sys
from pathlib import Path

import pytest

# Add scripts directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "scripts"))

from evaluators.weighted_score import (
    calculate_weighted_score,
    load_weights,
    round_half_up,
    DEFAULT_CRITERIA_WEIGHTS
)
from evaluators.complexity import estimate_complexity, ComplexityScores
from storage.config_provider import ConfigProvider, GenerationConfig, StaticConfigProvider


class FailingConfigProvider(ConfigProvider):
    def load(self, profile_id=None):
        raise RuntimeError("config store unavailable")


# =============================================================================
# Weighted score
# =============================================================================

class TestWeightedScore:
    """Tests for calculate_weighted_score."""

    def test_uniform_seven_scores_seventy(self):
        """All criteria at 7 with weight 1 gives 70."""
        scores = {key: 7 for key in DEFAULT_CRITERIA_WEIGHTS}
        assert calculate_weighted_score(scores, DEFAULT_CRITERIA_WEIGHTS) == 70

    def test_uniform_eight_scores_eighty(self):
        scores = {key: 8 for key in DEFAULT_CRITERIA_WEIGHTS}
        assert calculate_weighted_score(scores, DEFAULT_CRITERIA_WEIGHTS) == 80

    def test_weights_shift_the_score(self):
        """Heavier criteria pull the result toward their score."""
        scores = {"marketSize": 10, "timeToMarket": 2}
        weights = {"marketSize": 3.0, "timeToMarket": 1.0}
        # (30 + 2) / 40 = 0.8
        assert calculate_weighted_score(scores, weights) == 80

    def test_unweighted_keys_are_excluded(self):
        """A key missing from the weight table affects neither numerator nor denominator."""
        scores = {"marketSize": 6, "mysteryCriterion": 1}
        weights = {"marketSize": 1.0}
        assert calculate_weighted_score(scores, weights) == 60

    def test_no_intersection_scores_zero(self):
        assert calculate_weighted_score({"a": 9}, {"b": 1.0}) == 0
        assert calculate_weighted_score({}, DEFAULT_CRITERIA_WEIGHTS) == 0

    def test_half_rounds_up(self):
        """12.5 rounds to 13, not to the even 12."""
        scores = {"a": 2, "b": 1}
        weights = {"a": 1.0, "b": 3.0}
        # (2 + 3) / 40 * 100 = 12.5
        assert calculate_weighted_score(scores, weights) == 13
        assert round_half_up(0.5) == 1
        assert round_half_up(2.4) == 2

    def test_result_is_clamped(self):
        assert calculate_weighted_score({"a": 15}, {"a": 1.0}) == 100
        assert calculate_weighted_score({"a": -3}, {"a": 1.0}) == 0

    def test_result_is_integer_in_range(self):
        scores = {"a": 3, "b": 9, "c": 6}
        weights = {"a": 0.5, "b": 2.0, "c": 1.3}
        result = calculate_weighted_score(scores, weights)
        assert isinstance(result, int)
        assert 0 <= result <= 100


class TestLoadWeights:
    """Tests for load_weights fallback behaviour."""

    def test_configured_weights(self, config_provider):
        weights = load_weights(config_provider)
        assert len(weights) == 10
        assert weights["timeToMarket"] == 1.0

    def test_empty_table_falls_back_to_defaults(self):
        weights = load_weights(StaticConfigProvider(GenerationConfig()))
        assert weights == DEFAULT_CRITERIA_WEIGHTS

    def test_loading_error_falls_back_to_defaults(self):
        weights = load_weights(FailingConfigProvider(), "missing-profile")
        assert weights == DEFAULT_CRITERIA_WEIGHTS

    def test_defaults_are_equal_weights(self):
        assert len(DEFAULT_CRITERIA_WEIGHTS) == 10
        assert set(DEFAULT_CRITERIA_WEIGHTS.values()) == {1.0}


# =============================================================================
# Complexity
# =============================================================================

class TestComplexityEstimator:
    """Tests for estimate_complexity."""

    def test_all_eights_without_regulatory_language(self):
        scores = {
            "technicalFeasibility": 8,
            "timeToMarket": 8,
            "marketSize": 8,
            "monetizationClarity": 8
        }
        details = {"timeToMarket": {"reasoning": "MVP in three months"}}
        result = estimate_complexity(scores, details)

        assert result == ComplexityScores(technical=3.0, regulatory=3.0, sales=3.0, total=9.0)

    def test_regulatory_language_uses_time_to_market(self):
        scores = {"technicalFeasibility": 8, "timeToMarket": 4}
        details = {"timeToMarket": {"reasoning": "Needs FDA approval before launch"}}
        result = estimate_complexity(scores, details)
        assert result.regulatory == 7.0

    def test_regulatory_pattern_ignores_case(self):
        scores = {"timeToMarket": 2}
        details = {"timeToMarket": {"reasoning": "Heavy COMPLIANCE work with HIPAA"}}
        assert estimate_complexity(scores, details).regulatory == 9.0

    def test_partial_word_matches(self):
        """Stems like "licens" match "licensing"."""
        scores = {"timeToMarket": 5}
        details = {"timeToMarket": {"reasoning": "State licensing takes a quarter"}}
        assert estimate_complexity(scores, details).regulatory == 6.0

    def test_missing_scores_default_to_five(self):
        result = estimate_complexity({}, {})
        assert result.technical == 6.0
        assert result.sales == 6.0
        assert result.regulatory == 3.0
        assert result.total == 15.0

    def test_sales_uses_mean_with_one_decimal(self):
        scores = {"marketSize": 7, "monetizationClarity": 8}
        assert estimate_complexity(scores, {}).sales == 3.5

    @pytest.mark.parametrize("score,reasoning,expected_total", [
        (1, "strict regulation everywhere", 30.0),
        (10, "permit already granted", 3.0),
    ])
    def test_total_stays_within_bounds(self, score, reasoning, expected_total):
        scores = {
            "technicalFeasibility": score,
            "timeToMarket": score,
            "marketSize": score,
            "monetizationClarity": score
        }
        result = estimate_complexity(scores, {"timeToMarket": {"reasoning": reasoning}})
        assert result.total == expected_total
        assert result.technical + result.regulatory + result.sales == result.total
