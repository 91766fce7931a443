"""Inference client setup and calls — wraps the openai SDK.

Supports any OpenAI-compatible multimodal backend; OpenRouter is the default.
``create_client`` resolves the credential from ``Config`` and injects the
extra headers OpenRouter asks for when the base URL matches.

This module is the boundary where transport failures are first observed, so
it is also where they are classified: ``InferenceClient.complete`` raises
``OverloadError`` for 503/529 responses and ``UnclassifiedError`` for every
other SDK failure.  Callers match on exception types, never on messages.
"""

import logging

import openai as _openai

from docstructure.models import (
    Config,
    ConfigurationError,
    OverloadError,
    UnclassifiedError,
)
from docstructure.prompts import build_response_format

logger = logging.getLogger(__name__)

#: HTTP statuses meaning "temporarily unable to serve": unavailable, overloaded.
OVERLOAD_STATUS_CODES = frozenset({503, 529})


# ---------------------------------------------------------------------------
# Client wrapper
# ---------------------------------------------------------------------------


class CompletionResponse:
    """Thin wrapper presenting an openai chat response as ``response.text``."""

    __slots__ = ("text",)

    def __init__(self, text: str | None) -> None:
        self.text = text


class InferenceClient:
    """Async OpenAI-compatible client for one multimodal model.

    Attributes:
        model:    The model identifier passed to every completion request.
        base_url: API base URL, kept for log messages.
    """

    def __init__(
        self,
        model: str,
        base_url: str,
        api_key: str,
        extra_headers: dict | None = None,
        timeout_s: int = 120,
        max_output_tokens: int | None = None,
    ) -> None:
        self.model = model
        self.base_url = base_url
        self.timeout_s = timeout_s
        self.max_output_tokens = max_output_tokens
        # Retries are owned by the converter, not the SDK.
        self._client = _openai.AsyncOpenAI(
            base_url=base_url,
            api_key=api_key,
            default_headers=extra_headers or {},
            max_retries=0,
        )

    async def complete(self, content: list[dict], schema: dict) -> CompletionResponse:
        """Send one schema-constrained chat completion and return the reply.

        Raises:
            OverloadError: the endpoint answered 503 or 529.
            UnclassifiedError: any other failure reported by the SDK.
        """
        kwargs: dict = dict(
            model=self.model,
            messages=[{"role": "user", "content": content}],
            response_format=build_response_format(schema),
            timeout=self.timeout_s,
        )
        if self.max_output_tokens is not None:
            kwargs["max_tokens"] = self.max_output_tokens
        try:
            response = await self._client.chat.completions.create(**kwargs)
        except _openai.APIStatusError as exc:
            raise classify_status_error(exc) from exc
        except _openai.OpenAIError as exc:
            raise UnclassifiedError(str(exc) or type(exc).__name__) from exc

        if not response.choices:
            return CompletionResponse(text=None)
        return CompletionResponse(text=response.choices[0].message.content)


# ---------------------------------------------------------------------------
# Public helpers
# ---------------------------------------------------------------------------


def create_client(config: Config) -> InferenceClient:
    """Create a client from configuration.

    OpenRouter attribution headers are injected automatically when
    ``config.base_url`` contains ``"openrouter.ai"``.

    Raises:
        ConfigurationError: if ``config.api_key`` is missing or blank.
    """
    if not config.api_key or not config.api_key.strip():
        raise ConfigurationError(
            "API key is not configured. Set API_KEY in the environment or .env file."
        )

    extra_headers: dict = {}
    if "openrouter.ai" in config.base_url:
        extra_headers = {
            "HTTP-Referer": "https://github.com/docstructure",
            "X-Title": "docstructure",
        }

    return InferenceClient(
        model=config.model,
        base_url=config.base_url,
        api_key=config.api_key.strip(),
        extra_headers=extra_headers,
        timeout_s=config.timeout_s,
        max_output_tokens=config.max_output_tokens,
    )


def classify_status_error(exc: _openai.APIStatusError) -> Exception:
    """Map an HTTP error response to the typed failure it represents."""
    if exc.status_code in OVERLOAD_STATUS_CODES:
        return OverloadError(str(exc), status_code=exc.status_code)
    return UnclassifiedError(str(exc))
