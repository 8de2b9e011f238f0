"""
Shared fixtures for the idea generation pipeline tests.

Fakes stand in for the two network collaborators (model provider and
embedding model); SQLite runs on temp files and Qdrant in local
in-memory mode.
"""

import sys
import os
import json
import tempfile
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np
import pytest

# Add scripts directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "scripts"))

from qdrant_client import QdrantClient

from storage.config_provider import (
    GenerationConfig,
    CriterionConfig,
    Framework,
    DomainOption,
    StaticConfigProvider
)
from storage.idea_memory import IdeaMemory
from storage.generation_state import GenerationState


CRITERIA_NAMES = [
    "Problem Severity",
    "Market Size",
    "Competition Level",
    "Monetization Clarity",
    "Technical Feasibility",
    "Personal Interest",
    "Unfair Advantage",
    "Time To Market",
    "Scalability Potential",
    "Network Effects",
]

CRITERIA_KEYS = [
    "problemSeverity",
    "marketSize",
    "competitionLevel",
    "monetizationClarity",
    "technicalFeasibility",
    "personalInterest",
    "unfairAdvantage",
    "timeToMarket",
    "scalabilityPotential",
    "networkEffects",
]


class FakeModelProvider:
    """Returns a canned response and records every prompt."""

    name = "Fake Model"

    def __init__(self, response: str = "", configured: bool = True, error: Exception = None):
        self.response = response
        self.configured = configured
        self.error = error
        self.calls: List[Dict] = []

    def is_configured(self) -> bool:
        return self.configured

    def complete(self, prompt: str, temperature: float = 1.0, max_tokens: int = 16384) -> str:
        self.calls.append({"prompt": prompt, "temperature": temperature, "max_tokens": max_tokens})
        if self.error is not None:
            raise self.error
        return self.response


class FakeEmbedder:
    """Deterministic 8-dim embeddings; exact texts can be pinned to vectors."""

    def __init__(self, vectors: Optional[Dict[str, List[float]]] = None, error: Exception = None):
        self.vectors = vectors or {}
        self.error = error
        self.texts: List[str] = []

    def embed(self, text: str) -> List[float]:
        self.texts.append(text)
        if self.error is not None:
            raise self.error
        if text in self.vectors:
            return list(self.vectors[text])
        vector = np.zeros(8)
        for i, ch in enumerate(text):
            vector[(ord(ch) + i) % 8] += 1.0
        norm = np.linalg.norm(vector)
        return (vector / norm).tolist() if norm > 0 else vector.tolist()


def make_response_data(
    score: int = 8,
    keys: List[str] = None,
    reasoning: str = "Can launch an MVP in three months",
    domain: str = "Healthcare → Clinic Operations"
) -> Dict:
    """A well-formed model response payload."""
    keys = keys if keys is not None else CRITERIA_KEYS
    return {
        "name": "ClaimPilot",
        "domain": domain,
        "problem": "Clinics reconcile insurance claims by hand",
        "solution": "Automated claim reconciliation",
        "quickSummary": "Reconciles clinic insurance claims automatically.",
        "concreteExample": {
            "currentState": "A manager spends 6 hours a week on spreadsheets",
            "yourSolution": "Claims sync nightly and mismatches are flagged",
            "keyImprovement": "Saves 5 hours a week"
        },
        "evaluation": {
            key: {
                "score": score,
                "reasoning": reasoning,
                "questions": [{"question": f"Question about {key}?", "answer": "A detailed answer"}]
            }
            for key in keys
        },
        "tags": ["healthcare", "automation"]
    }


def make_response(**kwargs) -> str:
    return "```json\n" + json.dumps(make_response_data(**kwargs)) + "\n```"


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    with tempfile.NamedTemporaryFile(suffix='.db', delete=False) as f:
        db_path = f.name
    yield db_path
    os.unlink(db_path)


@pytest.fixture
def state(temp_db):
    return GenerationState(db_path=temp_db)


@pytest.fixture
def memory(temp_db):
    return IdeaMemory(db_path=temp_db, qdrant=QdrantClient(location=":memory:"))


@pytest.fixture
def generation_config():
    """Ten equally weighted criteria, two enabled frameworks, one disabled."""
    return GenerationConfig(
        criteria=[
            CriterionConfig(name=name, weight=1.0, questions=[f"Why {name}?"])
            for name in CRITERIA_NAMES
        ],
        frameworks=[
            Framework(name="Pain Point Mining", description="Start from a frustration"),
            Framework(name="Unbundling", template="[Platform] does [feature] poorly"),
            Framework(name="SCAMPER", enabled=False),
        ],
        domains=[
            DomainOption(name="Healthcare", subdomains=["Telemedicine", "Clinic Operations"]),
            DomainOption(name="Finance"),
            DomainOption(name="Education"),
        ],
        problem_types=["Time Consuming", "Error Prone"],
        solution_types=["Automation", "Marketplace"],
        monetization_models=["Subscription", "Commission"],
        target_audiences=["Small Businesses"]
    )


@pytest.fixture
def config_provider(generation_config):
    return StaticConfigProvider(generation_config)
