"""
Gates module for scheduled idea generation

Provides the gates a model response must pass before an idea is saved:
- ResponseRepairParser: Heals and validates the model's JSON output
- SemanticDuplicateDetector: Rejects ideas too similar to stored ones
"""

from .response_parser import (
    ResponseRepairParser,
    ParsedIdea,
    CriterionEvaluation,
    repair_json,
    strip_code_fences,
    coerce_score,
    split_domain
)

from .duplicate_gate import (
    DuplicateDetector,
    SemanticDuplicateDetector,
    DisabledDuplicateDetector,
    DuplicateCandidate,
    DuplicateCheckResult,
    EmbeddingProvider,
    SentenceTransformerEmbedder,
    build_embedding_text,
    filter_similar
)

__all__ = [
    # Response parsing
    "ResponseRepairParser",
    "ParsedIdea",
    "CriterionEvaluation",
    "repair_json",
    "strip_code_fences",
    "coerce_score",
    "split_domain",
    # Duplicate detection
    "DuplicateDetector",
    "SemanticDuplicateDetector",
    "DisabledDuplicateDetector",
    "DuplicateCandidate",
    "DuplicateCheckResult",
    "EmbeddingProvider",
    "SentenceTransformerEmbedder",
    "build_embedding_text",
    "filter_similar"
]
