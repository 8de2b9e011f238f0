"""
Complexity Estimator

Derives three 1-10 complexity components from criterion scores, where a
high criterion score means low complexity:

- technical: 11 - technicalFeasibility
- regulatory: 11 - timeToMarket, only when the timeToMarket reasoning
  mentions regulation / compliance / licensing; otherwise a fixed 3
- sales: 11 - mean(marketSize, monetizationClarity)

total is the sum of the three (3-30).
"""

import re
from dataclasses import dataclass, asdict
from typing import Dict, Any


DEFAULT_SCORE = 5
DEFAULT_REGULATORY = 3.0

REGULATORY_PATTERN = re.compile(r"regulat|complia|licens|legal|permit|approval|certif", re.IGNORECASE)


@dataclass
class ComplexityScores:
    technical: float
    regulatory: float
    sales: float
    total: float

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


def _score(scores: Dict[str, Any], key: str) -> float:
    value = scores.get(key)
    if value is None:
        return float(DEFAULT_SCORE)
    return float(value)


def estimate_complexity(
    scores: Dict[str, Any],
    evaluation_details: Dict[str, Dict[str, Any]]
) -> ComplexityScores:
    """
    Estimate implementation complexity of an idea.

    Args:
        scores: Criterion key -> score (1-10); missing keys count as 5
        evaluation_details: Criterion key -> {"reasoning": ...}

    Returns:
        ComplexityScores with one-decimal components
    """
    technical = round(11 - _score(scores, "technicalFeasibility"), 1)

    time_to_market = evaluation_details.get("timeToMarket") or {}
    reasoning = time_to_market.get("reasoning") or ""
    if REGULATORY_PATTERN.search(reasoning):
        regulatory = round(11 - _score(scores, "timeToMarket"), 1)
    else:
        regulatory = DEFAULT_REGULATORY

    market = _score(scores, "marketSize")
    monetization = _score(scores, "monetizationClarity")
    sales = round(11 - (market + monetization) / 2, 1)

    total = round(technical + regulatory + sales, 1)

    return ComplexityScores(
        technical=technical,
        regulatory=regulatory,
        sales=sales,
        total=total
    )
