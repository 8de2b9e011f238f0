"""
Response Repair Parser

Turns raw model text into a validated ParsedIdea:

1. Strip surrounding markdown fences
2. Strict JSON parse; on failure append missing ] and } and retry once
3. Structural validation with typed errors
4. Normalization (domain split, score coercion, defaults)

Soft problems (a question without an answer, missing quick-notes
sections, incomplete idea components) are returned as warnings instead
of raising.
"""

import json
from dataclasses import dataclass, field
from typing import List, Dict, Optional, Any, Tuple

from pipeline_errors import (
    ResponseParseError,
    MissingFieldsError,
    MalformedExampleError,
    IncompleteCriteriaError
)


PARSE_PREVIEW_CHARS = 1000
COUNT_PREVIEW_CHARS = 500
DEFAULT_SCORE = 5
DOMAIN_SEPARATOR = "→"

REQUIRED_FIELDS = ["name", "quickSummary", "concreteExample", "evaluation"]
TEXT_FIELDS = ["name", "quickSummary", "problem", "solution"]
EXAMPLE_FIELDS = ["currentState", "yourSolution", "keyImprovement"]
COMPONENT_FIELDS = ["monetization", "targetAudience", "technology", "marketSize"]
QUICK_NOTE_SECTIONS = ["strengths", "weaknesses", "keyAssumptions", "nextSteps", "references"]


@dataclass
class CriterionEvaluation:
    """One evaluated criterion as returned by the model."""
    score: int
    reasoning: str = ""
    questions: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"score": self.score, "reasoning": self.reasoning, "questions": self.questions}


@dataclass
class ParsedIdea:
    """Validated, normalized model output."""
    name: str
    domain: str
    subdomain: Optional[str]
    problem: str
    solution: str
    quick_summary: str
    concrete_example: Dict[str, str]
    evaluation: Dict[str, CriterionEvaluation]
    tags: List[str] = field(default_factory=list)
    idea_components: Optional[Dict[str, Any]] = None
    quick_notes: Optional[Dict[str, Any]] = None
    action_plan: Optional[Dict[str, Any]] = None
    warnings: List[str] = field(default_factory=list)
    repaired: bool = False

    @property
    def scores(self) -> Dict[str, int]:
        return {key: c.score for key, c in self.evaluation.items()}

    @property
    def evaluation_details(self) -> Dict[str, Dict[str, Any]]:
        return {key: c.to_dict() for key, c in self.evaluation.items()}


def strip_code_fences(text: str) -> str:
    """Remove a leading ```json / ``` fence and a trailing ``` fence."""
    text = text.strip()
    if text.startswith("```json"):
        text = text[len("```json"):]
    elif text.startswith("```"):
        text = text[len("```"):]
    if text.endswith("```"):
        text = text[:-len("```")]
    return text.strip()


def repair_json(text: str) -> Tuple[Any, bool]:
    """
    Parse JSON, closing unbalanced brackets and braces if needed.

    Args:
        text: Raw model output, possibly fenced or truncated

    Returns:
        (parsed data, whether repair was needed)

    Raises:
        ResponseParseError: Still unparseable after one repair attempt
    """
    stripped = strip_code_fences(text)
    try:
        return json.loads(stripped), False
    except json.JSONDecodeError as first_error:
        missing_brackets = max(0, stripped.count("[") - stripped.count("]"))
        missing_braces = max(0, stripped.count("{") - stripped.count("}"))
        candidate = stripped + "]" * missing_brackets + "}" * missing_braces
        try:
            return json.loads(candidate), True
        except json.JSONDecodeError as retry_error:
            raise ResponseParseError(
                f"Failed to parse JSON even after repair: {retry_error}",
                preview=stripped[:PARSE_PREVIEW_CHARS],
                details={
                    "originalError": str(first_error),
                    "missingBrackets": missing_brackets,
                    "missingBraces": missing_braces
                }
            )


def coerce_score(value: Any) -> int:
    """Integer score clamped to 1-10; anything non-numeric becomes 5."""
    if isinstance(value, bool):
        return DEFAULT_SCORE
    try:
        score = int(round(float(value)))
    except (TypeError, ValueError):
        return DEFAULT_SCORE
    return max(1, min(10, score))


def split_domain(value: Any) -> Tuple[str, Optional[str]]:
    """ "Health → Telemedicine" -> ("Health", "Telemedicine") """
    if not isinstance(value, str) or not value.strip():
        return "Unknown", None
    parts = [p.strip() for p in value.split(DOMAIN_SEPARATOR)]
    domain = parts[0] or "Unknown"
    subdomain = parts[1] if len(parts) > 1 and parts[1] else None
    return domain, subdomain


class ResponseRepairParser:
    """Parses and validates one model response."""

    def parse(self, raw: str, expected_keys: Optional[List[str]] = None) -> ParsedIdea:
        """
        Parse a raw response into a ParsedIdea.

        Args:
            raw: Raw model text
            expected_keys: Configured criterion keys; None skips the count check

        Returns:
            ParsedIdea

        Raises:
            ResponseParseError, MissingFieldsError, MalformedExampleError,
            IncompleteCriteriaError
        """
        data, repaired = repair_json(raw)
        warnings: List[str] = []

        self._validate_required(data)
        self._validate_example(data["concreteExample"])
        evaluation = data["evaluation"]
        if expected_keys is not None:
            self._validate_criteria_count(evaluation, expected_keys, raw)

        criteria: Dict[str, CriterionEvaluation] = {}
        for key, entry in evaluation.items():
            criteria[key] = self._normalize_criterion(key, entry, warnings)

        components = data.get("ideaComponents")
        if isinstance(components, dict):
            missing = [f for f in COMPONENT_FIELDS if not components.get(f)]
            if missing:
                warnings.append(f"ideaComponents incomplete, missing: {', '.join(missing)}")

        quick_notes = data.get("quickNotes")
        if isinstance(quick_notes, dict):
            for section in QUICK_NOTE_SECTIONS:
                if not isinstance(quick_notes.get(section), list):
                    warnings.append(f"quickNotes.{section} is missing or not an array")

        domain, subdomain = split_domain(data.get("domain"))
        tags = data.get("tags") if isinstance(data.get("tags"), list) else []

        return ParsedIdea(
            name=str(data["name"]).strip(),
            domain=domain,
            subdomain=subdomain,
            problem=data.get("problem") or "Unknown",
            solution=data.get("solution") or "Unknown",
            quick_summary=data["quickSummary"],
            concrete_example={f: data["concreteExample"][f] for f in EXAMPLE_FIELDS},
            evaluation=criteria,
            tags=[str(t) for t in tags],
            idea_components=components if isinstance(components, dict) else None,
            quick_notes=quick_notes if isinstance(quick_notes, dict) else None,
            action_plan=data.get("actionPlan") if isinstance(data.get("actionPlan"), dict) else None,
            warnings=warnings,
            repaired=repaired
        )

    def _validate_required(self, data: Any) -> None:
        if not isinstance(data, dict):
            raise MissingFieldsError(
                "Response is not a JSON object",
                details={"type": type(data).__name__}
            )
        missing = [f for f in REQUIRED_FIELDS if not data.get(f)]
        if not missing and not isinstance(data["evaluation"], dict):
            missing = ["evaluation"]
        if missing:
            raise MissingFieldsError(
                f"Missing required fields: {', '.join(missing)}",
                details={"missing": missing}
            )
        not_text = [f for f in TEXT_FIELDS if data.get(f) is not None and not isinstance(data[f], str)]
        if not_text:
            raise MissingFieldsError(
                f"Fields must be strings: {', '.join(not_text)}",
                details={"wrongType": not_text}
            )

    def _validate_example(self, example: Any) -> None:
        if not isinstance(example, dict):
            raise MalformedExampleError("concreteExample must be an object")
        missing = [f for f in EXAMPLE_FIELDS if not example.get(f)]
        if missing:
            raise MalformedExampleError(
                f"concreteExample missing fields: {', '.join(missing)}",
                details={"missing": missing}
            )

    def _validate_criteria_count(self, evaluation: Dict, expected_keys: List[str], raw: str) -> None:
        actual_keys = list(evaluation.keys())
        expected = len(expected_keys) or 10
        if len(actual_keys) == expected:
            return
        raise IncompleteCriteriaError(
            f"Expected {expected} evaluation criteria but received {len(actual_keys)}",
            details={
                "expected": expected,
                "actual": len(actual_keys),
                "missingKeys": [k for k in expected_keys if k not in evaluation],
                "unexpectedKeys": [k for k in actual_keys if k not in expected_keys],
                "preview": raw[:COUNT_PREVIEW_CHARS]
            }
        )

    def _normalize_criterion(self, key: str, entry: Any, warnings: List[str]) -> CriterionEvaluation:
        if not isinstance(entry, dict):
            raise IncompleteCriteriaError(
                f'Criterion "{key}" is not an object',
                details={"criterion": key}
            )

        questions = entry.get("questions")
        if not isinstance(questions, list) or not questions:
            raise IncompleteCriteriaError(
                f'Criterion "{key}" is missing questions array',
                details={"criterion": key}
            )

        pairs = []
        for item in questions:
            if not isinstance(item, dict) or not item.get("question") or not item.get("answer"):
                warnings.append(f"Invalid question format in {key}")
                continue
            pairs.append({"question": str(item["question"]), "answer": str(item["answer"])})

        return CriterionEvaluation(
            score=coerce_score(entry.get("score")),
            reasoning=str(entry.get("reasoning") or ""),
            questions=pairs
        )
