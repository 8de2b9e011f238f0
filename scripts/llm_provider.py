"""
Model provider for idea generation (Anthropic Claude).

The credential is resolved on every call: the active "claude" row in the
api_keys table wins, otherwise CLAUDE_API_KEY from the environment
(loaded from ~/.env).
"""

import os
from pathlib import Path
from typing import Optional, Dict, Protocol

import anthropic
from dotenv import load_dotenv

from pipeline_errors import ConfigurationError, ExternalServiceError
from storage.generation_state import GenerationState

# Load environment variables
load_dotenv(Path.home() / ".env")

PROVIDER_NAME = "Claude API"
PROVIDER_KEY = "claude"
DEFAULT_MODEL = "claude-sonnet-4-20250514"
DEFAULT_TIMEOUT_SECONDS = 600.0


class ModelProvider(Protocol):
    def is_configured(self) -> bool:
        ...

    def complete(self, prompt: str, temperature: float, max_tokens: int) -> str:
        ...


class AnthropicModelProvider:
    """Single-shot text completion through the Anthropic Messages API."""

    name = PROVIDER_NAME

    def __init__(
        self,
        state: Optional[GenerationState] = None,
        model: str = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS
    ):
        self.state = state
        self.model = model
        self.timeout = timeout

    def _credential(self) -> Optional[Dict[str, str]]:
        if self.state is not None:
            row = self.state.get_active_api_key(PROVIDER_KEY)
            if row and row.get("api_key"):
                return row
        env_key = os.environ.get("CLAUDE_API_KEY")
        if env_key:
            return {"api_key": env_key, "model": None}
        return None

    def is_configured(self) -> bool:
        return self._credential() is not None

    def complete(self, prompt: str, temperature: float = 1.0, max_tokens: int = 16384) -> str:
        """
        Send one prompt and return the text of the reply.

        Raises:
            ConfigurationError: No credential available
            ExternalServiceError: Any API failure
        """
        credential = self._credential()
        if credential is None:
            raise ConfigurationError(
                "No active Claude API key configured",
                provider=PROVIDER_NAME
            )

        model = self.model or credential.get("model") or DEFAULT_MODEL
        client = anthropic.Anthropic(api_key=credential["api_key"], timeout=self.timeout)

        try:
            response = client.messages.create(
                model=model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=[{"role": "user", "content": prompt}]
            )
        except anthropic.AuthenticationError as e:
            raise ExternalServiceError(PROVIDER_NAME, "Invalid API key", details={"status": 401}) from e
        except anthropic.RateLimitError as e:
            raise ExternalServiceError(PROVIDER_NAME, "Rate limit exceeded", details={"status": 429}) from e
        except anthropic.APIStatusError as e:
            raise ExternalServiceError(PROVIDER_NAME, e.message, details={"status": e.status_code}) from e
        except anthropic.APIError as e:
            raise ExternalServiceError(PROVIDER_NAME, str(e)) from e

        text = "".join(block.text for block in response.content if block.type == "text")
        if not text:
            raise ExternalServiceError(PROVIDER_NAME, "Unexpected response format from Claude API")
        return text
