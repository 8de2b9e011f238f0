"""
Tests for the Idea Generation Orchestrator

Tests cover:
1. Happy path: scoring, complexity, persistence, status and logs
2. Failure attribution per stage and the no-partial-persistence rule
3. Duplicate gate behaviour (reject, skip, degrade)
"""

import sys
import json
import random
from pathlib import Path

import pytest

# Add scripts directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "scripts"))

from run_generation import (
    IdeaGenerationOrchestrator,
    GenerationRequest,
    PipelineConfig,
    stage_for_error
)
from gates.duplicate_gate import SemanticDuplicateDetector
from storage.generation_logger import GenerationStage
from pipeline_errors import (
    ConfigurationError,
    ExternalServiceError,
    ResponseParseError,
    IncompleteCriteriaError,
    MissingFieldsError,
    DuplicateIdeaError
)
from conftest import FakeModelProvider, FakeEmbedder, make_response, make_response_data, CRITERIA_KEYS


def build_orchestrator(config_provider, memory, state, model=None, detector=None):
    return IdeaGenerationOrchestrator(
        config_provider=config_provider,
        model_provider=model or FakeModelProvider(make_response()),
        memory=memory,
        state=state,
        duplicate_detector=detector,
        config=PipelineConfig(echo_logs=False),
        rng=random.Random(3)
    )


def stages_logged(state, session_id, level=None):
    return [
        entry["stage"]
        for entry in state.get_session_logs(session_id)
        if level is None or entry["level"] == level
    ]


# =============================================================================
# Happy path
# =============================================================================

class TestSuccessfulGeneration:
    """A well-formed response flows through every stage."""

    def test_idea_is_scored_and_saved(self, config_provider, memory, state):
        detector = SemanticDuplicateDetector(FakeEmbedder(), memory)
        orchestrator = build_orchestrator(config_provider, memory, state, detector=detector)

        result = orchestrator.generate_idea(GenerationRequest(session_id="s-1"))
        idea = result.idea

        assert idea.score == 80
        assert idea.complexity_scores == {"technical": 3.0, "regulatory": 3.0, "sales": 3.0, "total": 9.0}
        assert idea.domain == "Healthcare"
        assert idea.subdomain == "Clinic Operations"
        assert idea.status == "draft"

        stored = memory.get_idea(idea.id)
        assert stored["name"] == "ClaimPilot"
        assert stored["score"] == 80
        assert memory.get_history(idea.id)[0]["change_type"] == "created"
        assert memory.has_embeddings() is True

    def test_session_completes_with_idea_id(self, config_provider, memory, state):
        orchestrator = build_orchestrator(config_provider, memory, state)
        result = orchestrator.generate_idea(GenerationRequest(session_id="s-2"))

        status = state.get_session_status("s-2")
        assert status["status"] == "completed"
        assert status["current_stage"] == "complete"
        assert status["idea_id"] == result.idea.id
        assert status["completed_at"] is not None

        assert result.summary["success"] is True
        assert result.summary["final_status"] == "completed"
        assert result.summary["error_count"] == 0

    def test_stages_logged_in_order(self, config_provider, memory, state):
        orchestrator = build_orchestrator(config_provider, memory, state)
        orchestrator.generate_idea(GenerationRequest(session_id="s-3"))

        order = []
        for stage in stages_logged(state, "s-3"):
            if not order or order[-1] != stage:
                order.append(stage)
        assert order == [
            "init", "config_verify", "prompt_build", "api_call",
            "response_parse", "duplicate_check", "database_save", "complete"
        ]

    def test_named_framework_reaches_prompt(self, config_provider, memory, state):
        model = FakeModelProvider(make_response())
        orchestrator = build_orchestrator(config_provider, memory, state, model=model)

        result = orchestrator.generate_idea(GenerationRequest(framework="Unbundling"))

        assert result.idea.generation_framework == "Unbundling"
        assert len(model.calls) == 1
        assert model.calls[0]["prompt"] == result.idea.ai_prompt

    def test_slot_number_recorded(self, config_provider, memory, state):
        orchestrator = build_orchestrator(config_provider, memory, state)
        orchestrator.generate_idea(GenerationRequest(session_id="s-4", slot_number=2))
        assert state.get_session_status("s-4")["slot_number"] == 2


# =============================================================================
# Failures
# =============================================================================

class TestFailures:
    """Fatal errors are logged at their stage and persist nothing."""

    def test_unconfigured_provider(self, config_provider, memory, state):
        model = FakeModelProvider(make_response(), configured=False)
        orchestrator = build_orchestrator(config_provider, memory, state, model=model)

        with pytest.raises(ConfigurationError) as exc_info:
            orchestrator.generate_idea(GenerationRequest(session_id="f-1"))

        assert exc_info.value.provider == "AI Provider"
        assert model.calls == []

        status = state.get_session_status("f-1")
        assert status["status"] == "failed"
        assert status["current_stage"] == "failed"
        assert "API key" in status["error_message"]
        assert stages_logged(state, "f-1", level="error") == ["config_verify", "failed"]

    def test_unparseable_response(self, config_provider, memory, state):
        model = FakeModelProvider("I'm sorry, I can't produce JSON today.")
        orchestrator = build_orchestrator(config_provider, memory, state, model=model)

        with pytest.raises(ResponseParseError):
            orchestrator.generate_idea(GenerationRequest(session_id="f-2"))

        assert memory.get_recent_ideas() == []
        assert memory.has_embeddings() is False
        assert stages_logged(state, "f-2", level="error") == ["response_parse", "failed"]

    def test_incomplete_criteria_rejected(self, config_provider, memory, state):
        model = FakeModelProvider(make_response(keys=CRITERIA_KEYS[:9]))
        orchestrator = build_orchestrator(config_provider, memory, state, model=model)

        with pytest.raises(IncompleteCriteriaError):
            orchestrator.generate_idea(GenerationRequest(session_id="f-3"))
        assert memory.get_recent_ideas() == []
        assert state.get_session_status("f-3")["status"] == "failed"

    def test_non_text_summary_fails_at_parse(self, config_provider, memory, state):
        data = make_response_data()
        data["quickSummary"] = {"short": "Reconciles claims"}
        model = FakeModelProvider(json.dumps(data))
        orchestrator = build_orchestrator(config_provider, memory, state, model=model)

        with pytest.raises(MissingFieldsError):
            orchestrator.generate_idea(GenerationRequest(session_id="f-6"))

        assert memory.get_recent_ideas() == []
        assert stages_logged(state, "f-6", level="error") == ["response_parse", "failed"]

    def test_provider_failure(self, config_provider, memory, state):
        model = FakeModelProvider(error=ExternalServiceError("Claude API", "Rate limit exceeded"))
        orchestrator = build_orchestrator(config_provider, memory, state, model=model)

        with pytest.raises(ExternalServiceError):
            orchestrator.generate_idea(GenerationRequest(session_id="f-4"))

        status = state.get_session_status("f-4")
        assert status["error_message"] == "Claude API: Rate limit exceeded"
        assert stages_logged(state, "f-4", level="error") == ["api_call", "failed"]

    def test_unexpected_error_logged_at_failed_only(self, config_provider, memory, state):
        model = FakeModelProvider(error=RuntimeError("socket closed"))
        orchestrator = build_orchestrator(config_provider, memory, state, model=model)

        with pytest.raises(RuntimeError):
            orchestrator.generate_idea(GenerationRequest(session_id="f-5"))
        assert stages_logged(state, "f-5", level="error") == ["failed"]

    def test_stage_for_error(self):
        assert stage_for_error(DuplicateIdeaError("x", 0.9)) == GenerationStage.DUPLICATE_CHECK
        assert stage_for_error(ResponseParseError("bad", "")) == GenerationStage.RESPONSE_PARSE
        assert stage_for_error(ConfigurationError("no key")) == GenerationStage.CONFIG_VERIFY
        assert stage_for_error(ValueError()) == GenerationStage.FAILED


# =============================================================================
# Duplicate gate
# =============================================================================

class TestDuplicateHandling:
    """Duplicate rejection, skipping and graceful degradation."""

    def test_second_identical_idea_is_rejected(self, config_provider, memory, state):
        detector = SemanticDuplicateDetector(FakeEmbedder(), memory)
        orchestrator = build_orchestrator(config_provider, memory, state, detector=detector)

        first = orchestrator.generate_idea(GenerationRequest(session_id="d-1"))
        with pytest.raises(DuplicateIdeaError) as exc_info:
            orchestrator.generate_idea(GenerationRequest(session_id="d-2"))

        assert exc_info.value.existing_id == first.idea.id
        assert exc_info.value.similarity >= 0.85
        assert len(memory.get_recent_ideas()) == 1
        assert stages_logged(state, "d-2", level="error") == ["duplicate_check", "failed"]

    def test_skip_duplicate_check(self, config_provider, memory, state):
        detector = SemanticDuplicateDetector(FakeEmbedder(), memory)
        orchestrator = build_orchestrator(config_provider, memory, state, detector=detector)

        orchestrator.generate_idea(GenerationRequest(session_id="d-3"))
        orchestrator.generate_idea(GenerationRequest(session_id="d-4", skip_duplicate_check=True))

        assert len(memory.get_recent_ideas()) == 2
        warnings = [
            entry["message"] for entry in state.get_session_logs("d-4")
            if entry["level"] == "warning"
        ]
        assert "Duplicate check skipped" in warnings

    def test_broken_detector_degrades_to_warning(self, config_provider, memory, state):
        detector = SemanticDuplicateDetector(FakeEmbedder(error=RuntimeError("model offline")), memory)
        orchestrator = build_orchestrator(config_provider, memory, state, detector=detector)

        result = orchestrator.generate_idea(GenerationRequest(session_id="d-5"))

        assert memory.get_idea(result.idea.id) is not None
        assert state.get_session_status("d-5")["status"] == "completed"
        assert "duplicate_check" in stages_logged(state, "d-5", level="warning")
        assert result.summary["warning_count"] >= 1

    def test_embedding_store_failure_degrades_to_warning(self, config_provider, memory, state, monkeypatch):
        def fail(*args, **kwargs):
            raise RuntimeError("qdrant unavailable")

        monkeypatch.setattr(memory, "store_embedding", fail)
        detector = SemanticDuplicateDetector(FakeEmbedder(), memory)
        orchestrator = build_orchestrator(config_provider, memory, state, detector=detector)

        result = orchestrator.generate_idea(GenerationRequest(session_id="d-6"))

        assert memory.get_idea(result.idea.id) is not None
        assert state.get_session_status("d-6")["status"] == "completed"

        save_warnings = [
            entry for entry in state.get_session_logs("d-6")
            if entry["stage"] == "database_save" and entry["level"] == "warning"
        ]
        assert len(save_warnings) == 1
        assert save_warnings[0]["message"] == "Failed to store embedding"
        assert save_warnings[0]["details"] == {"error": "qdrant unavailable"}
