"""
Error taxonomy for the idea generation pipeline.

Every fatal pipeline failure is one of these types so the orchestrator
can attribute it to the right stage:

- ConfigurationError: missing credential, no enabled framework, bad profile
- ExternalServiceError: model provider failure, timeout, rate limit
- ValidationError: malformed or incomplete model output
- DuplicateIdeaError: a similar idea already exists (conflict)

Usage:
    raise ExternalServiceError("Claude API", "Rate limit exceeded")
    raise IncompleteCriteriaError("Expected 10 criteria, got 8",
                                  details={"expected": 10, "actual": 8})
"""

from typing import Dict, Optional, Any


class PipelineError(Exception):
    """Base class for all pipeline failures. Carries structured details."""

    category = "pipeline"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": type(self).__name__,
            "category": self.category,
            "message": self.message,
            "details": self.details
        }


class ConfigurationError(PipelineError):
    """Fatal configuration problem. Raised before any external call, never retried."""

    category = "configuration"

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        provider: Optional[str] = None
    ):
        super().__init__(message, details)
        self.provider = provider


class ExternalServiceError(PipelineError):
    """Model or provider call failed. Fatal for this attempt."""

    category = "external_service"

    def __init__(self, provider: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"{provider}: {message}", details)
        self.provider = provider
        self.provider_message = message


class ValidationError(PipelineError):
    """Model output failed structural validation."""

    category = "validation"


class ResponseParseError(ValidationError):
    """Response could not be parsed as JSON, even after repair."""

    def __init__(self, message: str, preview: str, details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        details["preview"] = preview
        super().__init__(message, details)
        self.preview = preview


class MissingFieldsError(ValidationError):
    """Top-level required fields are absent or empty."""


class MalformedExampleError(ValidationError):
    """concreteExample is missing one of its three fields."""


class IncompleteCriteriaError(ValidationError):
    """Criteria count mismatch, or a criterion without questions."""


class DuplicateIdeaError(PipelineError):
    """A semantically similar idea already exists."""

    category = "conflict"

    def __init__(
        self,
        existing_id: str,
        similarity: float,
        existing_name: str = "",
        details: Optional[Dict[str, Any]] = None
    ):
        details = dict(details or {})
        details.update({
            "existingId": existing_id,
            "existingName": existing_name,
            "similarity": similarity
        })
        super().__init__(
            f"Similar idea already exists: {existing_name or existing_id} "
            f"(similarity {similarity:.2f})",
            details
        )
        self.existing_id = existing_id
        self.existing_name = existing_name
        self.similarity = similarity
