"""
Idea Generation Orchestrator

Runs one generation request through the stage state machine:

    INIT -> CONFIG_VERIFY -> PROMPT_BUILD -> API_CALL -> RESPONSE_PARSE
         -> DUPLICATE_CHECK -> DB_SAVE -> COMPLETE

Any fatal error is logged at the stage it belongs to and at FAILED, the
session status is set to failed, and the error is re-raised. There are
no automatic retries; the scheduler's next cycle is the retry.

Usage:
    orchestrator = IdeaGenerationOrchestrator(
        config_provider=JsonConfigProvider(),
        model_provider=AnthropicModelProvider(state),
        memory=IdeaMemory(),
        state=state,
        duplicate_detector=SemanticDuplicateDetector(embedder, memory)
    )
    result = orchestrator.generate_idea(GenerationRequest(framework="SCAMPER"))
"""

# Path setup for distribution package
import sys
from pathlib import Path
_SCRIPT_DIR = Path(__file__).parent.resolve()
if str(_SCRIPT_DIR) not in sys.path:
    sys.path.insert(0, str(_SCRIPT_DIR))

import random
import time
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any

from pipeline_errors import (
    PipelineError,
    ConfigurationError,
    ExternalServiceError,
    ValidationError,
    DuplicateIdeaError
)
from storage.config_provider import ConfigProvider
from storage.idea_memory import IdeaMemory, IdeaRecord
from storage.generation_state import GenerationState, STATUS_COMPLETED, STATUS_FAILED
from storage.generation_logger import GenerationLogger, GenerationStage, LogEntry
from generators.prompt_assembler import PromptAssembler
from gates.response_parser import ResponseRepairParser, ParsedIdea
from gates.duplicate_gate import (
    DuplicateDetector,
    DisabledDuplicateDetector,
    DuplicateCandidate,
    EmbeddingProvider,
    build_embedding_text
)
from evaluators.weighted_score import calculate_weighted_score, load_weights
from evaluators.complexity import estimate_complexity
from llm_provider import ModelProvider


AI_PROVIDER_NAME = "AI Provider"


@dataclass(frozen=True)
class GenerationRequest:
    """One request to generate an idea. Immutable."""
    framework: Optional[str] = None
    domain: Optional[str] = None
    skip_duplicate_check: bool = False
    session_id: Optional[str] = None
    profile_id: Optional[str] = None
    slot_number: Optional[int] = None


@dataclass
class GenerationResult:
    """Saved idea plus the session's log and summary."""
    idea: IdeaRecord
    logs: List[LogEntry]
    summary: Dict[str, Any]


@dataclass
class PipelineConfig:
    """Configuration for the generation orchestrator."""
    # Echo log entries to the console
    echo_logs: bool = True

    # Fallback model settings when the profile has none
    default_temperature: float = 1.0
    default_max_tokens: int = 16384

    # Embedding payload stored alongside each idea vector
    embedding_payload_fields: List[str] = field(default_factory=lambda: ["name", "domain", "score"])


def _candidate(parsed: ParsedIdea) -> DuplicateCandidate:
    return DuplicateCandidate(
        domain=parsed.domain,
        subdomain=parsed.subdomain,
        problem=parsed.problem,
        solution=parsed.solution,
        summary=parsed.quick_summary
    )


def stage_for_error(error: Exception) -> GenerationStage:
    """Stage a fatal error is attributed to."""
    if isinstance(error, DuplicateIdeaError):
        return GenerationStage.DUPLICATE_CHECK
    if isinstance(error, ValidationError):
        return GenerationStage.RESPONSE_PARSE
    if isinstance(error, ExternalServiceError):
        return GenerationStage.API_CALL
    if isinstance(error, ConfigurationError):
        return GenerationStage.CONFIG_VERIFY
    return GenerationStage.FAILED


class IdeaGenerationOrchestrator:
    """
    Sequences prompt assembly, the model call, parsing, scoring,
    duplicate detection and persistence for one idea.
    """

    def __init__(
        self,
        config_provider: ConfigProvider,
        model_provider: ModelProvider,
        memory: IdeaMemory,
        state: GenerationState,
        duplicate_detector: Optional[DuplicateDetector] = None,
        embedder: Optional[EmbeddingProvider] = None,
        config: Optional[PipelineConfig] = None,
        rng: Optional[random.Random] = None
    ):
        self.config_provider = config_provider
        self.model_provider = model_provider
        self.memory = memory
        self.state = state
        self.duplicate_detector = duplicate_detector or DisabledDuplicateDetector()
        self.embedder = embedder or getattr(self.duplicate_detector, "embedder", None)
        self.config = config or PipelineConfig()
        self.rng = rng or random.Random()
        self.parser = ResponseRepairParser()

    def generate_idea(self, request: GenerationRequest) -> GenerationResult:
        """
        Run the full pipeline for one request.

        Args:
            request: What to generate

        Returns:
            GenerationResult with the saved idea

        Raises:
            PipelineError subclasses for expected failures; anything else
            unexpected is re-raised unchanged after being logged
        """
        session_id = request.session_id or str(uuid.uuid4())
        logger = GenerationLogger(
            session_id,
            state=self.state,
            slot_number=request.slot_number,
            echo=self.config.echo_logs
        )

        try:
            idea = self._run(request, logger)
        except Exception as e:
            self._fail(logger, e)
            raise

        logger.finish(STATUS_COMPLETED, idea_id=idea.id)
        return GenerationResult(idea=idea, logs=list(logger.logs), summary=logger.get_summary())

    # =========================================================================
    # Stages
    # =========================================================================

    def _run(self, request: GenerationRequest, logger: GenerationLogger) -> IdeaRecord:
        logger.info(GenerationStage.INIT, "Starting idea generation", {
            "framework": request.framework or "random",
            "domain": request.domain,
            "skipDuplicateCheck": request.skip_duplicate_check,
            "profileId": request.profile_id,
            "slotNumber": request.slot_number
        })

        # CONFIG_VERIFY
        if not self.model_provider.is_configured():
            raise ConfigurationError(
                "No active AI model configured. Please configure an API key.",
                provider=AI_PROVIDER_NAME
            )
        gen_config = self.config_provider.load(request.profile_id)
        logger.success(GenerationStage.CONFIG_VERIFY, "AI provider configured", {
            "provider": getattr(self.model_provider, "name", AI_PROVIDER_NAME),
            "criteriaCount": len(gen_config.criteria),
            "enabledFrameworks": len(gen_config.enabled_frameworks)
        })

        # PROMPT_BUILD
        assembled = PromptAssembler(gen_config, self.rng).assemble(
            framework_name=request.framework,
            domain_hint=request.domain
        )
        logger.success(GenerationStage.PROMPT_BUILD,
                       f"Prompt built using framework: {assembled.framework_name}", {
                           "promptLength": len(assembled.prompt),
                           "framework": assembled.framework_name
                       })

        # API_CALL
        temperature = gen_config.temperature or self.config.default_temperature
        max_tokens = gen_config.max_tokens or self.config.default_max_tokens
        logger.info(GenerationStage.API_CALL, "Calling AI model", {
            "temperature": temperature,
            "maxTokens": max_tokens
        })
        call_start = time.monotonic()
        raw_response = self.model_provider.complete(assembled.prompt, temperature, max_tokens)
        logger.success(GenerationStage.API_CALL, "Received response from AI model", {
            "durationMs": int((time.monotonic() - call_start) * 1000),
            "responseLength": len(raw_response)
        })

        # RESPONSE_PARSE
        parsed = self.parser.parse(raw_response, expected_keys=gen_config.criteria_keys)
        if parsed.repaired:
            logger.warning(GenerationStage.RESPONSE_PARSE, "Initial JSON parse failed, repaired truncated JSON")
            logger.success(GenerationStage.RESPONSE_PARSE, "Successfully repaired malformed JSON")
        for warning in parsed.warnings:
            logger.warning(GenerationStage.RESPONSE_PARSE, warning)
        logger.success(GenerationStage.RESPONSE_PARSE, "Response parsed successfully", {
            "ideaName": parsed.name,
            "domain": parsed.domain,
            "subdomain": parsed.subdomain,
            "criteriaCount": len(parsed.evaluation)
        })

        weights = load_weights(self.config_provider, request.profile_id)
        score = calculate_weighted_score(parsed.scores, weights)
        complexity = estimate_complexity(parsed.scores, parsed.evaluation_details)

        # DUPLICATE_CHECK
        embedding = self._check_duplicates(request, parsed, logger)

        # DB_SAVE
        idea = IdeaRecord(
            name=parsed.name,
            domain=parsed.domain,
            subdomain=parsed.subdomain,
            problem=parsed.problem,
            solution=parsed.solution,
            quick_summary=parsed.quick_summary,
            concrete_example=parsed.concrete_example,
            scores=parsed.scores,
            evaluation_details=parsed.evaluation_details,
            complexity_scores=complexity.to_dict(),
            score=score,
            tags=parsed.tags,
            generation_framework=assembled.framework_name,
            raw_ai_response=raw_response,
            ai_prompt=assembled.prompt,
            idea_components=parsed.idea_components,
            quick_notes=parsed.quick_notes,
            action_plan=parsed.action_plan
        )
        self.memory.save_idea(idea)
        self._store_embedding(idea, parsed, embedding, logger)
        logger.success(GenerationStage.DB_SAVE, "Idea saved to database", {
            "ideaId": idea.id,
            "score": idea.score,
            "complexity": idea.complexity_scores["total"]
        })

        # COMPLETE
        total_ms = logger.elapsed_ms()
        logger.success(GenerationStage.COMPLETE, f"Idea generation completed in {total_ms}ms", {
            "ideaId": idea.id,
            "ideaName": idea.name,
            "totalDurationMs": total_ms
        })
        return idea

    def _check_duplicates(
        self,
        request: GenerationRequest,
        parsed: ParsedIdea,
        logger: GenerationLogger
    ) -> Optional[List[float]]:
        """Returns the embedding computed during the check, if any."""
        if request.skip_duplicate_check:
            logger.warning(GenerationStage.DUPLICATE_CHECK, "Duplicate check skipped")
            return None

        try:
            result = self.duplicate_detector.check(_candidate(parsed))
        except Exception as e:
            logger.warning(GenerationStage.DUPLICATE_CHECK,
                           "Duplicate check failed, continuing without it", {"error": str(e)})
            return None

        if result.is_duplicate:
            match = result.duplicate_of
            raise DuplicateIdeaError(
                existing_id=match.idea_id,
                similarity=match.similarity,
                existing_name=match.name,
                details={"similarCount": len(result.similar)}
            )

        logger.success(GenerationStage.DUPLICATE_CHECK, "No duplicates found")
        return result.embedding

    def _store_embedding(
        self,
        idea: IdeaRecord,
        parsed: ParsedIdea,
        embedding: Optional[List[float]],
        logger: GenerationLogger
    ) -> None:
        try:
            if embedding is None:
                if self.embedder is None:
                    logger.warning(GenerationStage.DB_SAVE, "No embedding provider, embedding not stored")
                    return
                embedding = self.embedder.embed(build_embedding_text(_candidate(parsed)))
            payload = {key: getattr(idea, key) for key in self.config.embedding_payload_fields}
            self.memory.store_embedding(idea.id, embedding, payload)
        except Exception as e:
            logger.warning(GenerationStage.DB_SAVE, "Failed to store embedding", {"error": str(e)})

    def _fail(self, logger: GenerationLogger, error: Exception) -> None:
        stage = stage_for_error(error)
        details = error.to_dict() if isinstance(error, PipelineError) else {"type": type(error).__name__}
        message = str(error)

        logger.error(stage, message, details)
        if stage != GenerationStage.FAILED:
            logger.error(GenerationStage.FAILED, f"Idea generation failed: {message}")
        logger.finish(STATUS_FAILED, error_message=message)
