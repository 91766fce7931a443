"""Shared pytest fixtures for the docstructure test suite."""

import json
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from docstructure.converter import UploadedFile
from docstructure.models import Config


# ---------------------------------------------------------------------------
# Logger isolation
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_docstructure_logger():
    """Clear the package logger between tests.

    ``setup_logging()`` attaches handlers and sets ``propagate=False``; left
    in place that state breaks ``caplog`` capture in later tests.
    """
    logger = logging.getLogger("docstructure")

    def _clear():
        for h in logger.handlers[:]:
            h.close()
            logger.removeHandler(h)
        logger.propagate = True
        logger.setLevel(logging.NOTSET)

    _clear()
    yield
    _clear()


# ---------------------------------------------------------------------------
# Uploads
# ---------------------------------------------------------------------------

PDF_BYTES = b"%PDF-1.4\n1 0 obj <<>> endobj\ntrailer <<>>\n%%EOF"


@pytest.fixture
def report_pdf() -> UploadedFile:
    return UploadedFile(name="report.pdf", mime_type="application/pdf", data=PDF_BYTES)


@pytest.fixture
def config() -> Config:
    return Config(api_key="sk-test", model="test-model")


# ---------------------------------------------------------------------------
# Mock model replies
# ---------------------------------------------------------------------------

MOCK_DOCUMENT_DICT = {
    "metadata": {
        "filename": "model-invented-name.pdf",
        "processedAt": "1999-01-01T00:00:00Z",
        "language": "en",
    },
    "documentAnalysis": {
        "title": "Quarterly Revenue Report",
        "summary": "Revenue grew in every region during Q3.",
        "keyPoints": [
            "Total revenue rose 12% quarter over quarter.",
            "APAC was the fastest-growing region.",
        ],
    },
    "structuredContent": {
        "markdown": (
            "# Quarterly Revenue Report\n\n"
            "| Region | Revenue |\n| --- | --- |\n"
            "| EMEA | 1.2M |\n| APAC | 0.9M |\n| AMER | 2.1M |\n"
        ),
        "tables": [
            {
                "title": "Revenue by region",
                "description": "Q3 revenue in USD.",
                "headers": ["Region", "Revenue"],
                "rows": [["EMEA", "1.2M"], ["APAC", "0.9M"], ["AMER", "2.1M"]],
            }
        ],
    },
}


@pytest.fixture
def mock_document_dict() -> dict:
    """A deep copy of the reply a well-behaved model would return."""
    return json.loads(json.dumps(MOCK_DOCUMENT_DICT))


@pytest.fixture
def mock_document_response(mock_document_dict) -> str:
    return json.dumps(mock_document_dict)


@pytest.fixture
def mock_client(mock_document_response) -> MagicMock:
    """Inference client stand-in whose ``complete`` returns the mock reply."""
    client = MagicMock()
    client.model = "test-model"
    client.base_url = "http://localhost:1234/v1"
    client.complete = AsyncMock(return_value=MagicMock(text=mock_document_response))
    return client
