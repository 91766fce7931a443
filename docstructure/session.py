"""Four-state session controller driving what the user sees.

    IDLE --select(valid PDF)--> PROCESSING --ok--> SUCCESS(document)
                                           --fail--> ERROR(message)
    SUCCESS | ERROR --reset--> IDLE

Selecting an invalid file keeps the session IDLE and only sets a validation
message.  There is no retry-in-place: after a reset the user selects again.
The session holds no business logic; conversion is delegated entirely to the
``DocumentConverter``.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Callable

from docstructure.converter import DocumentConverter, UploadedFile
from docstructure.models import (
    PDF_MIME_TYPE,
    ConversionError,
    SessionError,
    StructuredDocument,
)

logger = logging.getLogger(__name__)

INVALID_FILE_MESSAGE = "Please upload a valid PDF file."
EMPTY_FILE_MESSAGE = "The selected file is empty."
GENERIC_ERROR_MESSAGE = "An unexpected error occurred while processing the PDF."


class Status(enum.Enum):
    IDLE = "IDLE"
    PROCESSING = "PROCESSING"
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"


@dataclass(frozen=True)
class SessionState:
    """Snapshot of the session.

    ``document`` is set only in SUCCESS, ``error`` only in ERROR.
    ``validation_message`` is an inline hint shown while IDLE.
    """

    status: Status = Status.IDLE
    document: StructuredDocument | None = None
    error: str | None = None
    validation_message: str | None = None


class ConversionSession:
    """Owns the current ``SessionState`` and its transitions.

    Args:
        converter: Service invoked once per accepted file.
        on_change: Optional callback receiving every new state.
    """

    def __init__(
        self,
        converter: DocumentConverter,
        on_change: Callable[[SessionState], None] | None = None,
    ) -> None:
        self._converter = converter
        self._on_change = on_change
        self._state = SessionState()

    @property
    def state(self) -> SessionState:
        return self._state

    async def select_file(self, upload: UploadedFile) -> SessionState:
        """Accept a file selection and, if it is a PDF, run the conversion.

        Raises:
            SessionError: if called outside IDLE.
        """
        if self._state.status is not Status.IDLE:
            raise SessionError(
                f"Cannot select a file while {self._state.status.value}; reset first"
            )

        message = _validate_upload(upload)
        if message is not None:
            logger.warning("Rejected %s (%s): %s", upload.name, upload.mime_type, message)
            self._set(SessionState(validation_message=message))
            return self._state

        self._set(SessionState(status=Status.PROCESSING))
        try:
            document = await self._converter.convert(upload)
        except ConversionError as exc:
            logger.error("Conversion failed for %s: %s", upload.name, exc)
            self._set(_error_state(exc.user_message))
        except Exception as exc:
            logger.exception("Unexpected failure converting %s", upload.name)
            self._set(_error_state(str(exc)))
        else:
            self._set(SessionState(status=Status.SUCCESS, document=document))
        return self._state

    def reset(self) -> SessionState:
        """Return to IDLE, dropping any document, error, or validation message.

        Raises:
            SessionError: if a conversion is still in flight.
        """
        if self._state.status is Status.PROCESSING:
            raise SessionError("Cannot reset while a conversion is in progress")
        self._set(SessionState())
        return self._state

    def _set(self, state: SessionState) -> None:
        logger.debug("Session %s -> %s", self._state.status.value, state.status.value)
        self._state = state
        if self._on_change is not None:
            self._on_change(state)


def _validate_upload(upload: UploadedFile) -> str | None:
    if upload.mime_type != PDF_MIME_TYPE:
        return INVALID_FILE_MESSAGE
    if not upload.data:
        return EMPTY_FILE_MESSAGE
    return None


def _error_state(message: str) -> SessionState:
    return SessionState(status=Status.ERROR, error=message or GENERIC_ERROR_MESSAGE)
