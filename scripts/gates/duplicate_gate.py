"""
Duplicate Gate for scheduled idea generation.

Rejects a candidate idea when a stored idea is semantically too close.
The candidate's domain, subdomain, problem, solution and summary are
embedded and compared (cosine) against stored idea embeddings; the first
stored idea at or above the threshold is the duplicate.

The computed embedding is returned with the result so the caller can
store it without embedding the same text twice.
"""

import numpy as np
from dataclasses import dataclass, field
from typing import List, Optional, Protocol

from storage.idea_memory import IdeaMemory, SimilarIdea


DEFAULT_SIMILARITY_THRESHOLD = 0.85
DEFAULT_TOP_K = 10
EMBEDDING_MODEL = "all-MiniLM-L6-v2"
EMBEDDING_DIMENSIONS = 384


@dataclass
class DuplicateCandidate:
    """The parts of an idea that define its meaning for similarity."""
    domain: str = ""
    subdomain: Optional[str] = None
    problem: str = ""
    solution: str = ""
    summary: str = ""


@dataclass
class DuplicateCheckResult:
    """Outcome of a duplicate check."""
    is_duplicate: bool
    duplicate_of: Optional[SimilarIdea] = None
    similar: List[SimilarIdea] = field(default_factory=list)
    embedding: Optional[List[float]] = None


def build_embedding_text(candidate: DuplicateCandidate) -> str:
    """Join the non-empty parts with " | "."""
    parts = [
        candidate.domain,
        candidate.subdomain,
        candidate.problem,
        candidate.solution,
        candidate.summary,
    ]
    return " | ".join(p for p in parts if p)


def filter_similar(candidates: List[SimilarIdea], threshold: float) -> List[SimilarIdea]:
    """Keep matches with similarity >= threshold, most similar first."""
    matches = [c for c in candidates if c.similarity >= threshold]
    return sorted(matches, key=lambda c: c.similarity, reverse=True)


class EmbeddingProvider(Protocol):
    def embed(self, text: str) -> List[float]:
        ...


class SentenceTransformerEmbedder:
    """Local sentence-transformers embeddings. The model loads on first use."""

    def __init__(self, model_name: str = EMBEDDING_MODEL):
        self.model_name = model_name
        self._model = None

    @property
    def model(self):
        if self._model is None:
            from sentence_transformers import SentenceTransformer
            print(f"[Embeddings] Loading model {self.model_name}")
            self._model = SentenceTransformer(self.model_name)
        return self._model

    def embed(self, text: str) -> List[float]:
        vector = self.model.encode(text, normalize_embeddings=True)
        return np.asarray(vector, dtype=float).tolist()


class DuplicateDetector:
    """Capability interface: decide whether a candidate duplicates a stored idea."""

    def check(self, candidate: DuplicateCandidate, exclude_id: Optional[str] = None) -> DuplicateCheckResult:
        raise NotImplementedError


class DisabledDuplicateDetector(DuplicateDetector):
    """Never reports duplicates and computes no embedding."""

    def check(self, candidate: DuplicateCandidate, exclude_id: Optional[str] = None) -> DuplicateCheckResult:
        return DuplicateCheckResult(is_duplicate=False)


class SemanticDuplicateDetector(DuplicateDetector):
    """Embedding similarity against stored ideas."""

    def __init__(
        self,
        embedder: EmbeddingProvider,
        memory: IdeaMemory,
        threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
        top_k: int = DEFAULT_TOP_K
    ):
        """
        Args:
            embedder: Turns text into a vector
            memory: Store holding previous idea embeddings
            threshold: Minimum cosine similarity for a duplicate (inclusive)
            top_k: Nearest neighbours fetched before thresholding
        """
        self.embedder = embedder
        self.memory = memory
        self.threshold = threshold
        self.top_k = top_k

    def check(self, candidate: DuplicateCandidate, exclude_id: Optional[str] = None) -> DuplicateCheckResult:
        embedding = self.embedder.embed(build_embedding_text(candidate))

        nearest = self.memory.find_similar(embedding, limit=self.top_k, exclude_id=exclude_id)
        similar = filter_similar(nearest, self.threshold)

        return DuplicateCheckResult(
            is_duplicate=bool(similar),
            duplicate_of=similar[0] if similar else None,
            similar=similar,
            embedding=embedding
        )
