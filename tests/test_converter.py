"""Tests for docstructure/converter.py — encoding, retries, validation, normalization."""

import asyncio
import base64
import json
import logging
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from docstructure.converter import (
    DocumentConverter,
    UploadedFile,
    encode_attachment,
)
from docstructure.models import (
    SERVER_BUSY_MESSAGE,
    Config,
    EmptyResponseError,
    MalformedPayloadError,
    OverloadError,
    StructuredDocument,
    UnclassifiedError,
)
from docstructure.prompts import RESPONSE_SCHEMA

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _overload() -> OverloadError:
    return OverloadError("Error code: 503 - overloaded", status_code=503)


def _converter(client, config, sleep=None, clock=None) -> DocumentConverter:
    kwargs = {"sleep": sleep or AsyncMock()}
    if clock is not None:
        kwargs["clock"] = clock
    return DocumentConverter(client, config, **kwargs)


# ---------------------------------------------------------------------------
# UploadedFile / encoding
# ---------------------------------------------------------------------------


def test_uploaded_file_from_path_guesses_pdf_mime(tmp_path):
    pdf = tmp_path / "report.pdf"
    pdf.write_bytes(b"%PDF-1.4 fake")
    upload = UploadedFile.from_path(pdf)
    assert upload.name == "report.pdf"
    assert upload.mime_type == "application/pdf"
    assert upload.data == b"%PDF-1.4 fake"


def test_uploaded_file_from_path_unknown_extension(tmp_path):
    path = tmp_path / "notes.unknownext"
    path.write_bytes(b"x")
    assert UploadedFile.from_path(path).mime_type == "application/octet-stream"


def test_encode_attachment_base64_and_data_url(report_pdf):
    attachment = asyncio.run(encode_attachment(report_pdf))
    assert base64.b64decode(attachment.data) == report_pdf.data
    assert attachment.mime_type == "application/pdf"
    assert attachment.data_url == f"data:application/pdf;base64,{attachment.data}"


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------


def test_convert_report_scenario(report_pdf, config, mock_client):
    """One table with 2 headers and 3 rows comes back intact."""
    doc = asyncio.run(_converter(mock_client, config).convert(report_pdf))

    assert isinstance(doc, StructuredDocument)
    tables = doc.structured_content.tables
    assert len(tables) == 1
    assert len(tables[0].headers) == 2
    assert len(tables[0].rows) == 3
    assert doc.metadata.filename == "report.pdf"
    assert doc.metadata.language == "en"


def test_convert_makes_one_call_with_attachment_and_schema(report_pdf, config, mock_client):
    asyncio.run(_converter(mock_client, config).convert(report_pdf))

    assert mock_client.complete.await_count == 1
    content, schema = mock_client.complete.call_args.args
    assert schema is RESPONSE_SCHEMA
    file_part = content[0]["file"]
    assert file_part["filename"] == "report.pdf"
    encoded = base64.b64encode(report_pdf.data).decode("ascii")
    assert file_part["file_data"] == f"data:application/pdf;base64,{encoded}"
    assert content[1]["type"] == "text"


def test_convert_does_not_revalidate_mime_type(config, mock_client):
    upload = UploadedFile(name="scan.bin", mime_type="application/octet-stream", data=b"x")
    doc = asyncio.run(_converter(mock_client, config).convert(upload))
    assert doc.metadata.filename == "scan.bin"


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


def test_convert_overwrites_model_supplied_filename_and_timestamp(
    report_pdf, config, mock_client
):
    started = datetime.now(timezone.utc)
    doc = asyncio.run(_converter(mock_client, config).convert(report_pdf))

    assert doc.metadata.filename == "report.pdf"
    assert doc.metadata.processed_at >= started


def test_convert_uses_injected_clock(report_pdf, config, mock_client):
    fixed = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)
    doc = asyncio.run(
        _converter(mock_client, config, clock=lambda: fixed).convert(report_pdf)
    )
    assert doc.metadata.processed_at == fixed


def test_convert_normalizes_even_when_model_timestamp_is_garbage(
    report_pdf, config, mock_client, mock_document_dict
):
    mock_document_dict["metadata"]["processedAt"] = "yesterday-ish"
    mock_document_dict["metadata"]["filename"] = ""
    mock_client.complete.return_value = MagicMock(text=json.dumps(mock_document_dict))

    doc = asyncio.run(_converter(mock_client, config).convert(report_pdf))

    assert doc.metadata.filename == "report.pdf"
    assert doc.metadata.processed_at.tzinfo is not None


# ---------------------------------------------------------------------------
# Retry / backoff
# ---------------------------------------------------------------------------


def test_convert_retry_bound_on_persistent_overload(report_pdf, config, mock_client):
    mock_client.complete.side_effect = _overload()
    sleep = AsyncMock()

    with pytest.raises(OverloadError) as info:
        asyncio.run(_converter(mock_client, config, sleep=sleep).convert(report_pdf))

    assert mock_client.complete.await_count == config.max_retries + 1 == 4
    assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0, 4.0]
    assert str(info.value) == SERVER_BUSY_MESSAGE
    assert info.value.attempts == 4
    assert isinstance(info.value.__cause__, OverloadError)


def test_convert_recovers_after_transient_overload(
    report_pdf, config, mock_client, mock_document_response
):
    mock_client.complete.side_effect = [
        _overload(),
        _overload(),
        MagicMock(text=mock_document_response),
    ]
    sleep = AsyncMock()

    doc = asyncio.run(_converter(mock_client, config, sleep=sleep).convert(report_pdf))

    assert doc.metadata.filename == "report.pdf"
    assert mock_client.complete.await_count == 3
    assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]


def test_convert_respects_configured_max_retries(report_pdf, mock_client):
    config = Config(api_key="sk-test", max_retries=0)
    mock_client.complete.side_effect = _overload()
    sleep = AsyncMock()

    with pytest.raises(OverloadError, match="overloaded"):
        asyncio.run(_converter(mock_client, config, sleep=sleep).convert(report_pdf))

    assert mock_client.complete.await_count == 1
    sleep.assert_not_awaited()


def test_convert_does_not_retry_auth_rejection(report_pdf, config, mock_client):
    mock_client.complete.side_effect = UnclassifiedError("Error code: 401 - Invalid API key")
    sleep = AsyncMock()

    with pytest.raises(UnclassifiedError, match="401"):
        asyncio.run(_converter(mock_client, config, sleep=sleep).convert(report_pdf))

    assert mock_client.complete.await_count == 1
    sleep.assert_not_awaited()


def test_convert_does_not_retry_after_overload_then_other_error(
    report_pdf, config, mock_client
):
    mock_client.complete.side_effect = [_overload(), UnclassifiedError("Connection error.")]
    sleep = AsyncMock()

    with pytest.raises(UnclassifiedError, match="Connection error"):
        asyncio.run(_converter(mock_client, config, sleep=sleep).convert(report_pdf))

    assert mock_client.complete.await_count == 2
    assert sleep.await_count == 1


def test_convert_propagates_unexpected_exceptions_unchanged(report_pdf, config, mock_client):
    mock_client.complete.side_effect = RuntimeError("bug")
    with pytest.raises(RuntimeError, match="bug"):
        asyncio.run(_converter(mock_client, config).convert(report_pdf))


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("text", [None, ""])
def test_convert_empty_response(report_pdf, config, mock_client, text):
    mock_client.complete.return_value = MagicMock(text=text)
    with pytest.raises(EmptyResponseError):
        asyncio.run(_converter(mock_client, config).convert(report_pdf))
    assert mock_client.complete.await_count == 1


def test_convert_invalid_json_is_malformed_payload(report_pdf, config, mock_client):
    mock_client.complete.return_value = MagicMock(text='{"metadata": {')
    with pytest.raises(MalformedPayloadError, match="JSON"):
        asyncio.run(_converter(mock_client, config).convert(report_pdf))


def test_convert_non_object_json_is_malformed_payload(report_pdf, config, mock_client):
    mock_client.complete.return_value = MagicMock(text="[1, 2, 3]")
    with pytest.raises(MalformedPayloadError, match="list"):
        asyncio.run(_converter(mock_client, config).convert(report_pdf))


def test_convert_schema_mismatch_is_malformed_payload(
    report_pdf, config, mock_client, mock_document_dict
):
    del mock_document_dict["documentAnalysis"]["summary"]
    mock_client.complete.return_value = MagicMock(text=json.dumps(mock_document_dict))

    with pytest.raises(MalformedPayloadError, match="documentAnalysis.summary"):
        asyncio.run(_converter(mock_client, config).convert(report_pdf))


def test_convert_passes_ragged_rows_through_and_warns(
    report_pdf, config, mock_client, mock_document_dict, caplog
):
    mock_document_dict["structuredContent"]["tables"][0]["rows"].append(["LATAM"])
    mock_client.complete.return_value = MagicMock(text=json.dumps(mock_document_dict))

    with caplog.at_level(logging.WARNING, logger="docstructure.converter"):
        doc = asyncio.run(_converter(mock_client, config).convert(report_pdf))

    assert doc.structured_content.tables[0].rows[-1] == ["LATAM"]
    assert any("not matching its 2 headers" in r.message for r in caplog.records)


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


def test_convert_logs_backoff_warnings(report_pdf, config, mock_client, caplog):
    mock_client.complete.side_effect = _overload()

    with caplog.at_level(logging.WARNING, logger="docstructure.converter"):
        with pytest.raises(OverloadError):
            asyncio.run(_converter(mock_client, config).convert(report_pdf))

    messages = [r.message for r in caplog.records]
    assert sum("retrying in" in m for m in messages) == 3
    assert any("still overloaded after 4 attempts" in m for m in messages)


def test_convert_logs_response_received(report_pdf, config, mock_client, caplog):
    with caplog.at_level(logging.INFO, logger="docstructure.converter"):
        asyncio.run(_converter(mock_client, config).convert(report_pdf))
    messages = [r.message for r in caplog.records]
    assert any("Converting report.pdf" in m for m in messages)
    assert any("Response received" in m for m in messages)
