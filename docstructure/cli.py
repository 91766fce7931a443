"""Command-line interface for docstructure.

Entry point: ``docstructure`` (configured in ``pyproject.toml``).

Usage:
    docstructure --file report.pdf [options]

Key options:
    --view, --output-dir, --no-save, --model, --base-url,
    --timeout, --max-retries, --max-output-tokens,
    --verbose/--no-verbose, --log-file.

The only credential, ``API_KEY``, is read once from the environment (a
``.env`` file in the working directory is loaded first) into ``Config``.

Exit codes: 0 on success; 1 when the file is missing, is rejected by the
session's validation, or the conversion fails.
"""

import argparse
import asyncio
import logging
import os
import sys
from datetime import datetime
from pathlib import Path

from dotenv import load_dotenv

from docstructure.converter import DocumentConverter, UploadedFile
from docstructure.llm import create_client
from docstructure.log import setup_logging
from docstructure.models import MAX_RETRIES, Config, ConfigurationError
from docstructure.renderer import download_filename, render_json, render_view
from docstructure.session import ConversionSession, SessionState, Status

logger = logging.getLogger(__name__)

API_KEY_ENV = "API_KEY"


def _non_negative_int(value: str) -> int:
    parsed = int(value)
    if parsed < 0:
        raise argparse.ArgumentTypeError("must be >= 0")
    return parsed


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments, build the configuration, and convert one PDF."""
    load_dotenv()

    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.log_file:
        log_file = Path(args.log_file)
    else:
        ts = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = Path("logs") / f"run_{ts}.log"
    setup_logging(verbose=args.verbose, log_file=log_file)

    config = Config(
        api_key=os.environ.get(API_KEY_ENV),
        base_url=args.base_url,
        model=args.model,
        timeout_s=args.timeout,
        max_retries=args.max_retries,
        max_output_tokens=args.max_output_tokens,
    )

    pdf_path = Path(args.file)
    if not pdf_path.is_file():
        logger.error("File not found: %s", pdf_path)
        sys.exit(1)

    try:
        client = create_client(config)
    except ConfigurationError as exc:
        logger.error("%s", exc)
        sys.exit(1)

    state = asyncio.run(_run_session(UploadedFile.from_path(pdf_path), client, config))

    if state.validation_message:
        logger.error("%s", state.validation_message)
        sys.exit(1)
    if state.status is Status.ERROR:
        logger.error("Processing failed: %s", state.error)
        sys.exit(1)

    document = state.document
    if state.status is not Status.SUCCESS or document is None:
        logger.error("Processing ended without a document (state: %s)", state.status.value)
        sys.exit(1)
    print(render_view(document, args.view))

    if not args.no_save:
        output_dir = Path(args.output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        output_path = output_dir / download_filename(document.metadata.filename)
        output_path.write_text(render_json(document), encoding="utf-8")
        logger.info("Written: %s", output_path)


async def _run_session(upload: UploadedFile, client, config: Config) -> SessionState:
    """Drive one IDLE → PROCESSING → SUCCESS|ERROR cycle."""
    session = ConversionSession(
        DocumentConverter(client, config), on_change=_log_transition
    )
    return await session.select_file(upload)


def _log_transition(state: SessionState) -> None:
    if state.status is Status.PROCESSING:
        logger.info("Processing... this can take a minute for long documents")
    elif state.status is Status.SUCCESS:
        logger.info("Analysis complete")


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docstructure",
        description=(
            "Convert a PDF into an AI-ready structured document (summary, key "
            "points, tables, markdown) using a hosted multimodal LLM."
        ),
    )

    parser.add_argument(
        "--file",
        metavar="PDF",
        required=True,
        help="Path to the PDF file to convert.",
    )
    parser.add_argument(
        "--view",
        choices=["summary", "markdown", "json"],
        default="summary",
        help="What to print on success (default: summary).",
    )
    parser.add_argument(
        "--output-dir",
        metavar="DIR",
        default="output",
        help="Directory for the <name>_ai_ready.json export (default: output).",
    )
    parser.add_argument(
        "--no-save",
        action="store_true",
        default=False,
        help="Do not write the JSON export.",
    )
    parser.add_argument(
        "--model",
        metavar="MODEL",
        default=Config.model,
        help=f"Multimodal model identifier (default: {Config.model}).",
    )
    parser.add_argument(
        "--base-url",
        metavar="URL",
        default=Config.base_url,
        help=f"OpenAI-compatible API base URL (default: {Config.base_url}).",
    )
    parser.add_argument(
        "--timeout",
        metavar="S",
        type=int,
        default=Config.timeout_s,
        help=f"Per-attempt inference timeout in seconds (default: {Config.timeout_s}).",
    )
    parser.add_argument(
        "--max-retries",
        metavar="N",
        type=_non_negative_int,
        default=MAX_RETRIES,
        help=f"Retries when the service is overloaded (default: {MAX_RETRIES}).",
    )
    parser.add_argument(
        "--max-output-tokens",
        metavar="N",
        type=int,
        default=None,
        help="Maximum tokens the model may generate. Default: no limit.",
    )
    parser.add_argument(
        "--verbose",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Enable DEBUG-level logging (default: off).",
    )
    parser.add_argument(
        "--log-file",
        metavar="FILE",
        default=None,
        help="Write log output to FILE (default: logs/run_TIMESTAMP.log).",
    )

    return parser


if __name__ == "__main__":
    main()
