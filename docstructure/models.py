"""Pydantic models, dataclass Config, and exceptions for document conversion.

The models define the *schema* of a Structured Document as it travels over
the wire (camelCase keys) and inside Python (snake_case attributes).  The
exceptions form the failure taxonomy shared by the inference client, the
conversion service, and the session state machine.
"""

from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

# ---------------------------------------------------------------------------
# Structured Document
# ---------------------------------------------------------------------------


class _WireModel(BaseModel):
    """Immutable base model serialised with camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class DocumentMetadata(_WireModel):
    """Provenance of a conversion.

    ``filename`` and ``processed_at`` are always overwritten by the converter
    after the model replies; only ``language`` comes from the model.
    """

    filename: str
    processed_at: datetime
    language: str


class DocumentAnalysis(_WireModel):
    title: str
    summary: str
    key_points: list[str]


class ExtractedTable(_WireModel):
    """One table lifted out of the document.

    Rows are kept exactly as the model returned them, even when a row's
    length differs from the number of headers.
    """

    title: str | None = None
    description: str | None = None
    headers: list[str]
    rows: list[list[str]]

    def ragged_rows(self) -> list[int]:
        """Return the indices of rows whose length differs from ``headers``."""
        width = len(self.headers)
        return [i for i, row in enumerate(self.rows) if len(row) != width]


class StructuredContent(_WireModel):
    markdown: str
    tables: list[ExtractedTable]


class StructuredDocument(_WireModel):
    """The normalized output of one successful conversion."""

    metadata: DocumentMetadata
    document_analysis: DocumentAnalysis
    structured_content: StructuredContent

    def to_json(self, indent: int | None = 2) -> str:
        """Serialise with wire (camelCase) keys."""
        return self.model_dump_json(by_alias=True, indent=indent)


# ---------------------------------------------------------------------------
# Config (dataclass — not pydantic; holds runtime settings)
# ---------------------------------------------------------------------------

PDF_MIME_TYPE = "application/pdf"

#: Overload retries after the first attempt; waits are 1s, 2s, 4s.
MAX_RETRIES = 3


@dataclass
class Config:
    """Runtime configuration, built once at startup and passed explicitly.

    Attributes:
        api_key:           Credential for the inference endpoint.  ``None`` or
                           blank is reported as ``ConfigurationError`` when the
                           client is created.
        base_url:          OpenAI-compatible API base URL.
        model:             Multimodal model identifier passed to the API.
        timeout_s:         Seconds before a single inference attempt is
                           abandoned.  Bounds a hung connection.
        max_retries:       Overload retries after the first attempt.
        max_output_tokens: Maximum tokens the model may generate.  ``None``
                           imposes no limit.
    """

    api_key: str | None = None
    base_url: str = "https://openrouter.ai/api/v1"
    model: str = "google/gemini-2.5-flash"
    timeout_s: int = 120
    max_retries: int = MAX_RETRIES
    max_output_tokens: int | None = None


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

SERVER_BUSY_MESSAGE = (
    "The AI service is currently overloaded and could not process the "
    "document. Please try again in a few moments."
)


class ConversionError(Exception):
    """Base class for every classified conversion failure.

    ``user_message`` is the single human-readable line shown to the user.
    """

    @property
    def user_message(self) -> str:
        return str(self)


class ConfigurationError(ConversionError):
    """Raised when the inference credential is missing or empty."""


class OverloadError(ConversionError):
    """Raised when the endpoint reports transient unavailability (503/529).

    Attributes:
        status_code: HTTP status reported by the endpoint, when known.
        attempts:    Number of attempts made before giving up (set by the
                     converter once retries are exhausted).
    """

    def __init__(
        self, message: str, status_code: int | None = None, attempts: int = 1
    ) -> None:
        self.status_code = status_code
        self.attempts = attempts
        super().__init__(message)


class EmptyResponseError(ConversionError):
    """Raised when the endpoint replies without any textual payload."""


class MalformedPayloadError(ConversionError):
    """Raised when the reply is not JSON or does not match the document schema."""


class UnclassifiedError(ConversionError):
    """Any other failure observed at the inference boundary.

    Auth rejections, other HTTP errors, connection failures, and timeouts all
    land here with the SDK's own description.
    """


class SessionError(Exception):
    """Raised on an illegal transition of the conversion session."""
