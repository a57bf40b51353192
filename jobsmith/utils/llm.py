"""
LLM provider abstraction used as the generation capability.

Provides a provider-agnostic ``generate(kind, prompt, options)`` interface with
automatic retries on transient provider errors. Providers return raw text plus,
when the text is already a bare JSON document, its parsed form. Repairing
fenced or drifted output is the normalization context's job, not this module's.
"""

import json
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import partial
from typing import Any, Callable, Optional, TypeVar

from dotenv import load_dotenv
from loguru import logger

load_dotenv()

# Retry configuration
MAX_RETRIES = int(os.getenv("AI_MAX_RETRIES", "2")) + 1
BASE_DELAY = 1.0

DEFAULT_MAX_TOKENS = 800

T = TypeVar("T")

# System prompts per artifact kind. The user prompt carries the task details.
_JSON_ONLY = "Respond with a single JSON object and nothing else. Do not wrap it in markdown."

_SYSTEM_PROMPTS = {
    "resume": f"You are an expert resume writer who tailors resumes to job postings. {_JSON_ONLY}",
    "cover_letter": f"You are an expert cover letter writer. {_JSON_ONLY}",
    "skills_optimization": f"You are a career coach who analyzes skill fit for a job. {_JSON_ONLY}",
    "experience_tailoring": f"You rewrite work experience bullets for a target job. {_JSON_ONLY}",
    "company_research": (
        "You are a company research analyst. Only report facts you have a basis for. "
        'If you do not recognize the company, respond with exactly "COMPANY_NOT_FOUND". '
        f"{_JSON_ONLY}"
    ),
    "salary_research": f"You are a compensation analyst with current market data. {_JSON_ONLY}",
}
_DEFAULT_SYSTEM_PROMPT = f"You are a helpful career assistant. {_JSON_ONLY}"


def _retry_with_backoff(
    operation: Callable[[], T],
    retryable_exception: type[Exception],
    error_message: str,
    max_retries: int = MAX_RETRIES,
) -> T:
    """
    Execute operation with exponential backoff retry on specific exception.

    Args:
        operation: Callable that performs the API request and returns result
        retryable_exception: Exception type that triggers retry
        error_message: Message prefix for retry logging (e.g., "API overloaded")
        max_retries: Total number of attempts
    """
    for attempt in range(max_retries):
        try:
            return operation()
        except retryable_exception:
            if attempt == max_retries - 1:
                raise
            delay = BASE_DELAY * (2**attempt)
            logger.warning(
                f"{error_message}, retrying in {delay:.1f}s... "
                f"(attempt {attempt + 1}/{max_retries})"
            )
            time.sleep(delay)


@dataclass
class GenerationOptions:
    """Per-call generation settings."""

    model: Optional[str] = None
    temperature: float = 0.2
    max_tokens: int = DEFAULT_MAX_TOKENS
    timeout_s: float = 30.0
    max_retries: int = MAX_RETRIES


@dataclass
class GenerationResult:
    """Result from the generation capability."""

    text: Optional[str] = None
    json: Any = None
    tokens: Optional[int] = None
    model: Optional[str] = None


@dataclass
class LLMResponse:
    """Response from a single LLM provider call."""

    content: str
    model: str
    input_tokens: int
    output_tokens: int


class LLMProvider(ABC):
    """
    Abstract base for LLM providers.

    Subclasses must:
    - Set _provider_prefix class attribute (e.g., "anthropic", "openai")
    - Set self._retryable_exception to the exception type that triggers retry
    - Set self._retry_message for logging during retries
    - Implement _call_api() for the actual API call
    - Call update_model(model) in __init__ to set model and name
    """

    _provider_prefix: str
    _retryable_exception: type[Exception]
    _retry_message: str

    name: str
    model: str

    def update_model(self, model: str):
        """Update the model and refresh the provider name."""
        self.model = model
        self.name = f"{self._provider_prefix}/{model}"

    @property
    def provider_name(self) -> str:
        return self._provider_prefix

    @abstractmethod
    def _call_api(
        self, system_prompt: str, user_prompt: str, options: GenerationOptions
    ) -> LLMResponse:
        """Make a single API call (no retries). Implemented by subclasses."""
        pass

    def generate(
        self, kind: str, prompt: str, options: Optional[GenerationOptions] = None
    ) -> GenerationResult:
        """
        Generate a response for an artifact kind with retry on transient errors.

        Args:
            kind: Artifact kind (selects the system prompt)
            prompt: Assembled user prompt
            options: Generation settings (model override, temperature, limits)

        Returns:
            GenerationResult with raw text, parsed JSON when the text is a bare
            JSON document, token usage, and the model that served the call
        """
        if options is None:
            options = GenerationOptions()

        system_prompt = _SYSTEM_PROMPTS.get(kind, _DEFAULT_SYSTEM_PROMPT)
        response = _retry_with_backoff(
            partial(self._call_api, system_prompt, prompt, options),
            self._retryable_exception,
            self._retry_message,
            max_retries=max(1, options.max_retries),
        )

        return GenerationResult(
            text=response.content,
            json=_try_parse_json(response.content),
            tokens=response.input_tokens + response.output_tokens,
            model=response.model,
        )


class AnthropicProvider(LLMProvider):
    """Anthropic Claude provider with exponential backoff retry."""

    _provider_prefix = "anthropic"
    _retry_message = "Rate limit hit"

    def __init__(self, model: str = "claude-sonnet-4-20250514"):
        # Lazy import - anthropic SDK is heavy, only load if this provider is used
        import anthropic

        api_key = os.getenv("ANTHROPIC_API_KEY")
        if not api_key:
            raise ValueError("ANTHROPIC_API_KEY environment variable not set")

        self.client = anthropic.Anthropic(api_key=api_key)
        self._retryable_exception = anthropic.RateLimitError
        self.update_model(model)

    def _call_api(
        self, system_prompt: str, user_prompt: str, options: GenerationOptions
    ) -> LLMResponse:
        response = self.client.messages.create(
            model=options.model or self.model,
            max_tokens=options.max_tokens,
            temperature=options.temperature,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
            timeout=options.timeout_s,
        )
        return LLMResponse(
            content=response.content[0].text,
            model=response.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )


class OpenAIProvider(LLMProvider):
    """OpenAI GPT provider with exponential backoff retry."""

    _provider_prefix = "openai"
    _retry_message = "Rate limit hit"

    def __init__(self, model: str = "gpt-4o-mini"):
        # Lazy import - openai SDK is heavy, only load if this provider is used
        import openai

        api_key = os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise ValueError("OPENAI_API_KEY environment variable not set")

        self.client = openai.OpenAI(api_key=api_key)
        self._retryable_exception = openai.RateLimitError
        self.update_model(model)

    def _call_api(
        self, system_prompt: str, user_prompt: str, options: GenerationOptions
    ) -> LLMResponse:
        response = self.client.chat.completions.create(
            model=options.model or self.model,
            max_tokens=options.max_tokens,
            temperature=options.temperature,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            timeout=options.timeout_s,
        )
        return LLMResponse(
            content=response.choices[0].message.content or "",
            model=response.model,
            input_tokens=response.usage.prompt_tokens,
            output_tokens=response.usage.completion_tokens,
        )


# --- Provider Factory ---


def get_provider(provider_name: str = None, model: str = None) -> LLMProvider:
    """
    Get an LLM provider instance.

    Args:
        provider_name: "anthropic" or "openai" (default: from AI_PROVIDER env var)
        model: Model name (default: AI_MODEL env var, then provider-specific default)

    Returns:
        LLMProvider instance
    """
    if provider_name is None:
        provider_name = os.getenv("AI_PROVIDER", "openai").lower()
    if model is None:
        model = os.getenv("AI_MODEL") or None

    if provider_name == "anthropic":
        return AnthropicProvider(model=model) if model else AnthropicProvider()
    elif provider_name == "openai":
        return OpenAIProvider(model=model) if model else OpenAIProvider()
    else:
        raise ValueError(f"Unknown provider: {provider_name}. Use 'anthropic' or 'openai'")


def _try_parse_json(text: str) -> Any:
    """Return the parsed value when text is a bare JSON object or array, else None."""
    if not text:
        return None
    stripped = text.strip()
    if not stripped or stripped[0] not in "{[":
        return None
    try:
        return json.loads(stripped)
    except json.JSONDecodeError:
        return None
