"""MCP tool handlers for the publish orchestrator.

Defines:

- ``publish_status`` -- pending documents, timers, last scan and batch.
- ``publish_set_intent`` -- set or clear a document's ``published`` flag.
- ``publish_add_property`` -- add ``published: false`` if missing.
- ``publish_one`` -- publish one document now.
- ``publish_all`` -- publish every pending document now.
- ``publish_rescan`` -- compare local documents with the branch.
- ``publish_notify_change`` -- tell the orchestrator a document changed.
- ``publish_set_auto`` -- turn timer-driven publishing on or off.
"""

from __future__ import annotations

import logging
from typing import Any

import mcp.types as types

from ...publish.orchestrator import PublishOrchestrator
from ...publish.reporter import (
    batch_results_to_json,
    format_batch_results,
    format_scan_summary,
    format_status,
)
from ...publish.sources import NoticeBoard
from ...validators import validate_document_path
from .errors import build_error_response, text_result
from .registry import ToolSpec

logger = logging.getLogger(__name__)

_RECENT_NOTICES = 10

_PATH_PROPERTY = {
    "type": "string",
    "description": "Document path relative to the documents root (e.g. notes/a.md)",
}


def _require_path(args: dict[str, Any]) -> str:
    path = args.get("path")
    if not isinstance(path, str):
        raise ValueError("path is required")
    is_valid, error = validate_document_path(path)
    if not is_valid:
        raise ValueError(error)
    return path


def _not_configured() -> types.CallToolResult:
    return build_error_response(
        "not_configured",
        "Repository URL or token is not configured.",
        "Set GIT_PUBLISHER_REPO_URL and GITHUB_TOKEN (or the publisher "
        "section of .git_publisher/config.yml) and restart the server.",
    )


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_status(
    orchestrator: PublishOrchestrator, args: dict[str, Any]
) -> types.CallToolResult:
    status = orchestrator.status()
    text = format_status(status)
    if isinstance(orchestrator.notifier, NoticeBoard):
        notices = orchestrator.notifier.recent(_RECENT_NOTICES)
        status["notices"] = [
            {"message": n.message, "severity": n.severity.value, "timestamp": n.timestamp}
            for n in notices
        ]
        if notices:
            text += "\n\nRecent notices\n" + "\n".join(
                f"  [{n.severity.value}] {n.message}" for n in notices
            )
    return text_result(text, status)


async def _handle_set_intent(
    orchestrator: PublishOrchestrator, args: dict[str, Any]
) -> types.CallToolResult:
    path = _require_path(args)
    published = args.get("published")
    if not isinstance(published, bool):
        raise ValueError("published must be true or false")

    result = await orchestrator.set_publish_intent(path, published)
    if result is None:
        return text_result(
            f"{path} marked published; it will be included in the next batch.",
            {"path": path, "published": True},
        )
    return text_result(
        f"{path} unpublished: {result.outcome.value}"
        + (f" ({result.error})" if result.error else ""),
        {"path": path, "published": False, **result.model_dump(mode="json")},
    )


async def _handle_add_property(
    orchestrator: PublishOrchestrator, args: dict[str, Any]
) -> types.CallToolResult:
    path = _require_path(args)
    added = await orchestrator.ensure_publish_property(path)
    text = (
        f"Added 'published: false' to {path}."
        if added
        else f"{path} already has a published property."
    )
    return text_result(text, {"path": path, "added": added})


async def _handle_publish_one(
    orchestrator: PublishOrchestrator, args: dict[str, Any]
) -> types.CallToolResult:
    if not orchestrator.configured:
        return _not_configured()
    path = _require_path(args)
    verdict = orchestrator.check(path)
    if not verdict.eligible:
        assert verdict.reason is not None
        return build_error_response(
            "validation_error",
            f"{path} is not eligible for publishing: {verdict.reason.value}",
            "Set published: true in the frontmatter and keep the file under "
            f"{orchestrator.config.max_file_size_kb} KB.",
        )
    results = await orchestrator.publish_one(path)
    return text_result(
        format_batch_results(results), batch_results_to_json(results)
    )


async def _handle_publish_all(
    orchestrator: PublishOrchestrator, args: dict[str, Any]
) -> types.CallToolResult:
    if not orchestrator.configured:
        return _not_configured()
    results = await orchestrator.publish_all_pending()
    return text_result(
        format_batch_results(results), batch_results_to_json(results)
    )


async def _handle_rescan(
    orchestrator: PublishOrchestrator, args: dict[str, Any]
) -> types.CallToolResult:
    if not orchestrator.configured:
        return _not_configured()
    summary = await orchestrator.rescan()
    return text_result(
        format_scan_summary(summary),
        summary.model_dump() if summary else None,
    )


async def _handle_notify_change(
    orchestrator: PublishOrchestrator, args: dict[str, Any]
) -> types.CallToolResult:
    path = _require_path(args)
    kind = args.get("kind", "edit")
    match kind:
        case "edit":
            orchestrator.on_editor_activity(path)
        case "save":
            orchestrator.on_local_change(path)
        case "metadata":
            orchestrator.on_metadata_change(path)
        case _:
            raise ValueError(f"Unknown change kind: {kind}")
    return text_result(
        f"Recorded {kind} for {path}.",
        {
            "path": path,
            "kind": kind,
            "pending": orchestrator.state.is_dirty(path),
        },
    )


async def _handle_set_auto(
    orchestrator: PublishOrchestrator, args: dict[str, Any]
) -> types.CallToolResult:
    enabled = args.get("enabled")
    if not isinstance(enabled, bool):
        raise ValueError("enabled must be true or false")
    orchestrator.set_auto_publish(enabled)
    return text_result(
        f"Auto-publish {'enabled' if enabled else 'disabled'}.",
        {"auto_publish": enabled},
    )


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


def _tool(
    name: str,
    description: str,
    properties: dict[str, Any],
    required: list[str],
    *,
    read_only: bool,
    destructive: bool = False,
) -> types.Tool:
    return types.Tool(
        name=name,
        description=description,
        annotations=types.ToolAnnotations(
            readOnlyHint=read_only,
            destructiveHint=destructive,
            idempotentHint=True,
            openWorldHint=not read_only,
        ),
        inputSchema={
            "type": "object",
            "properties": properties,
            "required": required,
        },
    )


PUBLISH_SPECS: list[ToolSpec] = [
    ToolSpec(
        tool=_tool(
            "publish_status",
            "Show pending documents, timer countdowns, and the last scan and batch results.",
            {},
            [],
            read_only=True,
        ),
        mutating=False,
        handler=_handle_status,
    ),
    ToolSpec(
        tool=_tool(
            "publish_set_intent",
            "Set a document's published flag. true queues it for the next "
            "batch; false deletes it from the repository branch.",
            {
                "path": _PATH_PROPERTY,
                "published": {"type": "boolean"},
            },
            ["path", "published"],
            read_only=False,
            destructive=True,
        ),
        mutating=True,
        handler=_handle_set_intent,
    ),
    ToolSpec(
        tool=_tool(
            "publish_add_property",
            "Add 'published: false' to a document's frontmatter if the property is missing.",
            {"path": _PATH_PROPERTY},
            ["path"],
            read_only=False,
        ),
        mutating=True,
        handler=_handle_add_property,
    ),
    ToolSpec(
        tool=_tool(
            "publish_one",
            "Publish one document now in its own commit (must be flagged published).",
            {"path": _PATH_PROPERTY},
            ["path"],
            read_only=False,
        ),
        mutating=True,
        handler=_handle_publish_one,
    ),
    ToolSpec(
        tool=_tool(
            "publish_all",
            "Publish every pending document now in a single commit.",
            {},
            [],
            read_only=False,
        ),
        mutating=True,
        handler=_handle_publish_all,
    ),
    ToolSpec(
        tool=_tool(
            "publish_rescan",
            "Compare published documents with the repository branch and refresh pending state.",
            {},
            [],
            read_only=False,
        ),
        mutating=True,
        handler=_handle_rescan,
    ),
    ToolSpec(
        tool=_tool(
            "publish_notify_change",
            "Report a document change. 'edit' marks it pending and restarts "
            "the inactivity timer, 'save' only marks it pending, 'metadata' "
            "re-reads its published flag.",
            {
                "path": _PATH_PROPERTY,
                "kind": {
                    "type": "string",
                    "enum": ["edit", "save", "metadata"],
                    "default": "edit",
                },
            },
            ["path"],
            read_only=False,
        ),
        mutating=True,
        handler=_handle_notify_change,
    ),
    ToolSpec(
        tool=_tool(
            "publish_set_auto",
            "Enable or disable timer-driven publishing.",
            {"enabled": {"type": "boolean"}},
            ["enabled"],
            read_only=False,
        ),
        mutating=True,
        handler=_handle_set_auto,
    ),
]
