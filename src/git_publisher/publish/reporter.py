"""Formatting of publish results for humans and for MCP structured output.

- ``format_batch_results`` -- summary of one publish request.
- ``format_scan_summary`` -- one-line scan summary.
- ``format_status`` -- the pending view: pending documents, timers, last
  scan and last batch.
- ``batch_results_to_json`` -- structured dict for MCP tool output.
"""

from __future__ import annotations

from typing import Any

from .models import BatchOutcome, BatchResult, ScanSummary

_OUTCOME_TEXT = {
    BatchOutcome.SUCCESS: "committed",
    BatchOutcome.NOT_CONFIGURED: "skipped: repository or token not configured",
    BatchOutcome.BRANCH_UNRESOLVABLE: "aborted: branch could not be resolved",
    BatchOutcome.NO_CONTENT: "aborted: no document could be uploaded",
    BatchOutcome.TREE_BUILD_FAILED: "aborted: tree creation failed",
    BatchOutcome.COMMIT_FAILED: "aborted: commit creation failed",
    BatchOutcome.CONFLICT: "conflict: branch moved, documents kept pending",
    BatchOutcome.REF_UPDATE_FAILED: "aborted: branch update failed",
}


def format_batch_results(results: list[BatchResult]) -> str:
    """Format the batch runs performed for one publish request.

    Args:
        results: Runs in execution order (may be empty).

    Returns:
        Multi-line formatted string.
    """
    if not results:
        return "Nothing published (no eligible pending documents, or a batch is already running)."

    lines: list[str] = []
    for index, result in enumerate(results, 1):
        header = f"Batch {index}: {_OUTCOME_TEXT[result.outcome]}"
        if result.commit_sha:
            header += f" ({result.commit_sha[:7]})"
        lines.append(header)
        if result.success:
            for path in result.committed:
                lines.append(f"  published {path}")
        else:
            for path in result.requested:
                if path not in result.failed:
                    lines.append(f"  pending   {path}")
        for path in result.failed:
            lines.append(f"  failed    {path}")
    return "\n".join(lines)


def format_scan_summary(summary: ScanSummary | None) -> str:
    if summary is None:
        return "Scan: not run"
    text = (
        f"Scan: {summary.total} published, {summary.missing} missing, "
        f"{summary.out_of_sync} out of sync"
    )
    if summary.failed:
        text += f", {summary.failed} unreachable"
    return f"{text} ({summary.timestamp})"


def format_status(status: dict[str, Any]) -> str:
    """Render ``PublishOrchestrator.status()`` as the pending view."""
    lines = ["Pending changes"]
    if not status["configured"]:
        lines.append("  Configuration missing (repository / token).")
    pending = status["pending"]
    if pending:
        lines.extend(f"  {path}" for path in pending)
    else:
        lines.append("  No pending documents.")
    lines.append("")

    timers = status["timers"]
    lines.append(
        f"Auto-publish: {'on' if status['auto_publish'] else 'off'}"
        f"  Branch: {status['branch']}"
        + ("  (batch in flight)" if status["in_flight"] else "")
    )
    lines.append(f"Session remaining: {timers['session_seconds']}s")
    lines.append(f"Inactivity remaining: {timers['inactivity_seconds']}s")

    last_scan = status.get("last_scan")
    lines.append(
        format_scan_summary(ScanSummary(**last_scan) if last_scan else None)
    )
    last_batch = status.get("last_batch")
    if last_batch:
        outcome = BatchOutcome(last_batch["outcome"])
        lines.append(
            f"Last batch: {_OUTCOME_TEXT[outcome]} at {last_batch['completed_at']}"
        )
    return "\n".join(lines)


def batch_results_to_json(results: list[BatchResult]) -> dict[str, Any]:
    """Convert batch results into a JSON-serialisable dict."""
    return {
        "batches": [r.model_dump(mode="json") for r in results],
        "published": sorted(
            {p for r in results if r.success for p in r.committed}
        ),
        "success": bool(results) and all(r.success for r in results),
    }
