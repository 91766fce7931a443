"""Extraction instruction, output schema, and request-content builder.

``build_user_content`` returns the content parts of the single user message
sent per conversion: the PDF as an inline ``file`` part followed by the fixed
instruction text.  ``RESPONSE_SCHEMA`` constrains the reply to the Structured
Document shape using only object, array, and string types.
"""

_STRING = {"type": "string"}
_STRING_LIST = {"type": "array", "items": _STRING}

RESPONSE_SCHEMA: dict = {
    "type": "object",
    "properties": {
        "metadata": {
            "type": "object",
            "properties": {
                "filename": _STRING,
                "processedAt": _STRING,
                "language": _STRING,
            },
            "required": ["filename", "processedAt", "language"],
            "additionalProperties": False,
        },
        "documentAnalysis": {
            "type": "object",
            "properties": {
                "title": _STRING,
                "summary": _STRING,
                "keyPoints": _STRING_LIST,
            },
            "required": ["title", "summary", "keyPoints"],
            "additionalProperties": False,
        },
        "structuredContent": {
            "type": "object",
            "properties": {
                "markdown": _STRING,
                "tables": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "title": _STRING,
                            "description": _STRING,
                            "headers": _STRING_LIST,
                            "rows": {"type": "array", "items": _STRING_LIST},
                        },
                        "required": ["headers", "rows"],
                        "additionalProperties": False,
                    },
                },
            },
            "required": ["markdown", "tables"],
            "additionalProperties": False,
        },
    },
    "required": ["metadata", "documentAnalysis", "structuredContent"],
    "additionalProperties": False,
}

SCHEMA_NAME = "structured_document"

EXTRACTION_INSTRUCTION = """\
Analyze the attached PDF document. Extract its content and structure it so
that ANOTHER AI model can read it reliably.

1. Identify the document title and write a concise summary.
2. List the key points of the document.
3. Extract ALL tables accurately. For every table, put the column headers in
   "headers" and only the data cells in "rows"; never repeat the header row
   inside "rows". Add a title and a short description when the document
   provides or implies one.
4. Provide the full document content as Markdown in "markdown", rendering
   every table as a Markdown table.
5. Keep the original language of the document. Do not translate anything;
   report the language as a short tag (e.g. "en", "ko") in metadata.language.

Return JSON only, matching the requested schema exactly."""


def build_user_content(data_url: str, filename: str) -> list[dict]:
    """Build the content parts for the single user message.

    Args:
        data_url: The attachment as ``data:<mime>;base64,<payload>``.
        filename: Original upload name, forwarded as a hint to the backend.

    Returns:
        A list of OpenAI chat content parts: the inline file, then the text.
    """
    return [
        {
            "type": "file",
            "file": {"filename": filename, "file_data": data_url},
        },
        {"type": "text", "text": EXTRACTION_INSTRUCTION},
    ]


def build_response_format(schema: dict = RESPONSE_SCHEMA) -> dict:
    """Wrap ``schema`` as an OpenAI ``json_schema`` response format.

    Not sent as strict: strict mode requires every property in ``required``,
    while table ``title``/``description`` are optional.
    """
    return {
        "type": "json_schema",
        "json_schema": {"name": SCHEMA_NAME, "strict": False, "schema": schema},
    }
