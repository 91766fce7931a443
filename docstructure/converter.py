"""Document Conversion Service — one PDF in, one validated StructuredDocument out.

Steps
-----
1. Encode the upload as a base64 inline attachment.
2. Build one request: attachment + extraction instruction + output schema.
3. Submit it, retrying only on overload with exponential backoff (1s, 2s, 4s).
4. Reject empty replies; parse and validate the JSON payload.
5. Overwrite ``metadata.filename`` / ``metadata.processedAt``; return.

Every failure leaves this module as a ``ConversionError`` subclass except
programming errors, which propagate untouched.
"""

import asyncio
import base64
import json
import logging
import mimetypes
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Awaitable, Callable

from pydantic import ValidationError

from docstructure.llm import InferenceClient
from docstructure.models import (
    SERVER_BUSY_MESSAGE,
    Config,
    EmptyResponseError,
    MalformedPayloadError,
    OverloadError,
    StructuredDocument,
)
from docstructure.prompts import RESPONSE_SCHEMA, build_user_content

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Input types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class UploadedFile:
    """A selected file: its name, declared MIME type, and raw bytes."""

    name: str
    mime_type: str
    data: bytes

    @classmethod
    def from_path(cls, path: Path) -> "UploadedFile":
        """Read ``path`` and declare its MIME type from the file extension."""
        mime_type, _ = mimetypes.guess_type(path.name)
        return cls(
            name=path.name,
            mime_type=mime_type or "application/octet-stream",
            data=path.read_bytes(),
        )


@dataclass(frozen=True)
class InlineAttachment:
    """A binary payload embedded in the request as base64 text."""

    data: str
    mime_type: str

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"


async def encode_attachment(upload: UploadedFile) -> InlineAttachment:
    """Base64-encode the upload off the event loop."""
    encoded = await asyncio.to_thread(base64.b64encode, upload.data)
    return InlineAttachment(data=encoded.decode("ascii"), mime_type=upload.mime_type)


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DocumentConverter:
    """Turns an uploaded file into a normalized ``StructuredDocument``.

    Args:
        client: Inference client created by ``llm.create_client``.
        config: Runtime configuration; ``max_retries`` bounds overload retries.
        sleep:  Awaitable used for backoff waits (swapped out in tests).
        clock:  Source of the ``processedAt`` timestamp.
    """

    def __init__(
        self,
        client: InferenceClient,
        config: Config,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.client = client
        self.config = config
        self._sleep = sleep
        self._clock = clock

    async def convert(self, upload: UploadedFile) -> StructuredDocument:
        """Convert ``upload`` end-to-end.

        Raises:
            OverloadError: overload persisted past ``max_retries``; carries
                the user-facing server-busy message.
            EmptyResponseError: the endpoint returned no text.
            MalformedPayloadError: the text is not a valid document.
            UnclassifiedError: any other failure at the inference boundary.
        """
        logger.info(
            "Converting %s (%s, %s bytes)  model=%s  backend=%s",
            upload.name,
            upload.mime_type,
            f"{len(upload.data):,}",
            self.client.model,
            self.client.base_url,
        )
        attachment = await encode_attachment(upload)
        content = build_user_content(attachment.data_url, upload.name)

        t0 = time.monotonic()
        text = await self._complete_with_retries(content)
        logger.info(
            "Response received (%.1fs, %s chars)",
            time.monotonic() - t0,
            f"{len(text):,}",
        )

        raw = _parse_payload(text)
        raw = self._normalize_metadata(raw, upload.name)
        try:
            document = StructuredDocument.model_validate(raw)
        except ValidationError as exc:
            raise MalformedPayloadError(
                "Model response does not match the document schema: "
                + "; ".join(_compact_validation_errors(exc)[:4])
            ) from exc

        _warn_ragged_tables(document)
        return document

    async def _complete_with_retries(self, content: list[dict]) -> str:
        """Submit the request, retrying only on overload."""
        max_retries = self.config.max_retries
        for attempt in range(max_retries + 1):
            try:
                response = await self.client.complete(content, RESPONSE_SCHEMA)
            except OverloadError as exc:
                if attempt >= max_retries:
                    logger.error(
                        "Endpoint still overloaded after %d attempts: %s",
                        attempt + 1,
                        exc,
                    )
                    raise OverloadError(
                        SERVER_BUSY_MESSAGE,
                        status_code=exc.status_code,
                        attempts=attempt + 1,
                    ) from exc

                delay_s = float(2**attempt)
                logger.warning(
                    "Endpoint overloaded on attempt %d/%d; retrying in %.1fs",
                    attempt + 1,
                    max_retries + 1,
                    delay_s,
                )
                await self._sleep(delay_s)
                continue
            except Exception as exc:
                logger.error("Inference call failed: %s", exc)
                raise

            if not response.text:
                raise EmptyResponseError("The model returned an empty response.")
            return response.text

        raise RuntimeError("Overload retry loop exhausted unexpectedly")

    def _normalize_metadata(self, raw: dict, filename: str) -> dict:
        """Overwrite the fields the model is never trusted with."""
        metadata = raw.get("metadata")
        if not isinstance(metadata, dict):
            return raw
        metadata["filename"] = filename
        metadata["processedAt"] = self._clock().isoformat()
        return raw


# ---------------------------------------------------------------------------
# Payload helpers
# ---------------------------------------------------------------------------


def _parse_payload(text: str) -> dict:
    """Decode the reply as a JSON object.

    Raises:
        MalformedPayloadError: if the text is not JSON or not an object.
    """
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedPayloadError(f"Failed to parse model response as JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise MalformedPayloadError(
            f"Expected a JSON object from the model, got {type(raw).__name__}"
        )
    return raw


def _compact_validation_errors(exc: ValidationError) -> list[str]:
    """Convert pydantic errors into concise 'path: message' strings."""
    compact: list[str] = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()))
        msg = err.get("msg", "validation error")
        compact.append(f"{loc}: {msg}")
    return compact


def _warn_ragged_tables(document: StructuredDocument) -> None:
    for index, table in enumerate(document.structured_content.tables):
        ragged = table.ragged_rows()
        if ragged:
            logger.warning(
                "Table %d (%s) has %d row(s) not matching its %d headers; kept as received",
                index,
                table.title or "untitled",
                len(ragged),
                len(table.headers),
            )
