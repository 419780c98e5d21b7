"""MCP tool handlers for the publish orchestrator.

This package wraps ``PublishOrchestrator`` operations with async handlers
and structured error responses.
"""

from .errors import build_error_response, text_result
from .publish import PUBLISH_SPECS
from .registry import ToolRegistry, ToolSpec

ALL_SPECS: list[ToolSpec] = list(PUBLISH_SPECS)

__all__ = [
    "ALL_SPECS",
    "PUBLISH_SPECS",
    "ToolRegistry",
    "ToolSpec",
    "build_error_response",
    "text_result",
]
