"""LiteLLM client wrappers for completion and embedding calls.

Every language-model and embedding call in the pipeline routes through the
two service objects defined here. They are constructed once (see
``greenlight.services``) and injected into the components that need them.

Each call carries an explicit timeout. Transient failures (rate limit,
timeout, connection, 5xx) are retried by LiteLLM with exponential backoff
up to ``num_retries`` times; authentication and bad-request errors are not
retried and propagate immediately.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

import litellm
import structlog

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True

logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT = 30.0
DEFAULT_NUM_RETRIES = 3


# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "groq": "GROQ_API_KEY",
    "ollama": None,  # Local, no key required
    "ollama_chat": None,
}


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Raises:
        EnvironmentError: If the required key is missing from environment.
    """
    provider = model.split("/")[0].lower() if "/" in model else "openai"
    env_var = _PROVIDER_ENV.get(provider)

    if env_var is None:
        return

    if not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


@dataclass(frozen=True)
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: Usage) -> Usage:
        return Usage(
            self.prompt_tokens + other.prompt_tokens,
            self.completion_tokens + other.completion_tokens,
            self.total_tokens + other.total_tokens,
        )


@dataclass(frozen=True)
class Completion:
    content: str
    usage: Usage
    finish_reason: str | None = None


class LLMClient:
    """Chat-completion service bound to one model."""

    def __init__(
        self,
        model: str,
        timeout: float = DEFAULT_TIMEOUT,
        num_retries: int = DEFAULT_NUM_RETRIES,
    ) -> None:
        self.model = model
        self.timeout = timeout
        self.num_retries = num_retries

    def complete(
        self,
        messages: list[dict],
        temperature: float = 0.0,
        max_tokens: int = 2048,
    ) -> Completion:
        """Call litellm.completion() and return content, usage and finish reason.

        Raises:
            litellm.exceptions.APIError: On persistent API failure after retries.
            litellm.exceptions.AuthenticationError: Immediately, never retried.
        """
        response = litellm.completion(
            model=self.model,
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature,
            timeout=self.timeout,
            num_retries=self.num_retries,
        )
        choice = response.choices[0]
        usage = getattr(response, "usage", None)
        result = Completion(
            content=choice.message.content or "",
            usage=Usage(
                prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
                completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
                total_tokens=getattr(usage, "total_tokens", 0) or 0,
            ),
            finish_reason=getattr(choice, "finish_reason", None),
        )
        logger.debug(
            "llm_completion",
            model=self.model,
            total_tokens=result.usage.total_tokens,
            finish_reason=result.finish_reason,
        )
        return result


class EmbeddingClient:
    """Embedding service bound to one model."""

    def __init__(
        self,
        model: str,
        batch_size: int = 16,
        timeout: float = DEFAULT_TIMEOUT,
        num_retries: int = DEFAULT_NUM_RETRIES,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.model = model
        self.batch_size = batch_size
        self.timeout = timeout
        self.num_retries = num_retries

    def embed(self, text: str) -> list[float]:
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts* in batches of ``batch_size``; output order matches input."""
        vectors: list[list[float]] = []
        for start in range(0, len(texts), self.batch_size):
            batch = texts[start : start + self.batch_size]
            response = litellm.embedding(
                model=self.model,
                input=batch,
                timeout=self.timeout,
                num_retries=self.num_retries,
            )
            vectors.extend(item["embedding"] for item in response.data)
        return vectors
