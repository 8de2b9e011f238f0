"""
Weighted Scoring Engine

Turns per-criterion 1-10 scores into a single 0-100 score using the
configured criterion weights:

    score = round(100 * sum(score_k * w_k) / sum(10 * w_k))

Only keys present in both the scores and the weight table count toward
numerator and denominator.
"""

import math
from typing import Dict, Optional

from storage.config_provider import ConfigProvider


MAX_CRITERION_SCORE = 10

DEFAULT_CRITERIA_WEIGHTS: Dict[str, float] = {
    "problemSeverity": 1.0,
    "marketSize": 1.0,
    "competitionLevel": 1.0,
    "monetizationClarity": 1.0,
    "technicalFeasibility": 1.0,
    "personalInterest": 1.0,
    "unfairAdvantage": 1.0,
    "timeToMarket": 1.0,
    "scalabilityPotential": 1.0,
    "networkEffects": 1.0,
}


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positives (Python's round() is banker's)."""
    return int(math.floor(value + 0.5))


def calculate_weighted_score(scores: Dict[str, float], weights: Dict[str, float]) -> int:
    """
    Compute the 0-100 weighted score.

    Args:
        scores: Criterion key -> score (1-10)
        weights: Criterion key -> positive weight

    Returns:
        Integer score clamped to [0, 100]; 0 when no key is weighted
    """
    total_weighted = 0.0
    max_possible = 0.0

    for key, score in scores.items():
        weight = weights.get(key)
        if weight is None:
            continue
        total_weighted += score * weight
        max_possible += MAX_CRITERION_SCORE * weight

    if max_possible <= 0:
        return 0

    result = round_half_up(total_weighted / max_possible * 100)
    return max(0, min(100, result))


def load_weights(
    config_provider: ConfigProvider,
    profile_id: Optional[str] = None
) -> Dict[str, float]:
    """Weight table from configuration, or the defaults when empty or unavailable."""
    try:
        weights = config_provider.load(profile_id).criteria_weights()
    except Exception as e:
        print(f"Warning: Could not load criteria weights, using defaults: {e}")
        return dict(DEFAULT_CRITERIA_WEIGHTS)

    if not weights:
        return dict(DEFAULT_CRITERIA_WEIGHTS)
    return weights
