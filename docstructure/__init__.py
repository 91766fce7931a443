"""
docstructure — turn a PDF into an AI-ready structured document.

Sends the PDF as an inline attachment to a hosted multimodal LLM (any
OpenAI-compatible backend, OpenRouter by default) and returns a validated
summary, key points, extracted tables, and full-text markdown.
"""

__version__ = "0.1.0"
