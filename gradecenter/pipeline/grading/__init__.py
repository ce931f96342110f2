"""The grading package provides headless access to the text-generation service.

It encapsulates asynchronous API client logic, configuration parsing, document
encoding and the three service operations (criteria search, solution grading,
report formatting). The package exposes no user-facing commands; execution
happens through the batch orchestrator or the CLI.

Modules exported
----------------
AIAPIClient
    The asyncio-driven API client for the text-generation service.
GeminiConfig
    Service configuration loaded from the environment and ``.env``.
GradingServiceClient
    Criteria search, solution grading and report formatting.
encode_document, InlinePayload
    Conversion of document handles into inline transport payloads.
"""

from __future__ import annotations

from .client import AIAPIClient
from .config import GeminiConfig
from .encoding import InlinePayload, encode_document, encode_documents
from .service import GradingServiceClient, strip_code_fences

__all__ = [
    "AIAPIClient",
    "GeminiConfig",
    "GradingServiceClient",
    "InlinePayload",
    "encode_document",
    "encode_documents",
    "strip_code_fences",
]
