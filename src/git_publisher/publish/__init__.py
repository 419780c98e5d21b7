"""Publish orchestration for flagged documents.

Keeps documents marked ``published: true`` mirrored to a GitHub branch
while keeping remote writes to a minimum.

Architecture
------------
Edits mark documents dirty in the pending state store and feed the dual
timer scheduler.  When a timer fires, the publish queue is filled from
the dirty set and drained by the batch commit protocol, which turns the
whole snapshot into one commit (blobs, tree, commit, non-forced ref
update).  Only the ref update is visible remotely, so any failure leaves
the branch untouched and the documents dirty for the next attempt.

Modules:

- ``eligibility``  -- ``check_eligibility``: the pure publish filter.
- ``state``        -- ``PendingStateStore``: dirty flags and remote shas.
- ``scheduler``    -- ``DualTimerScheduler``: inactivity/session timers.
- ``queue``        -- ``PublishQueue``: deduplicated paths to publish.
- ``batch``        -- ``BatchCommitProtocol``: the atomic commit run.
- ``unpublish``    -- ``unpublish_document``: guarded remote delete.
- ``scanner``      -- ``ScanReconciler``: startup comparison with the branch.
- ``orchestrator`` -- ``PublishOrchestrator``: public operations.
- ``sources``      -- collaborator contracts and filesystem implementation.
- ``reporter``     -- text and JSON formatting.

Usage example
-------------
::

    from pathlib import Path
    from git_publisher.config import load_config
    from git_publisher.core.client import GitHubClient
    from git_publisher.publish import (
        FileSystemDocuments, NoticeBoard, PendingStateStore,
        PublishOrchestrator,
    )

    config = load_config()
    docs = FileSystemDocuments(Path(config.documents_root))
    orchestrator = PublishOrchestrator(
        config,
        content=docs,
        metadata=docs,
        state=PendingStateStore(Path(config.state_dir)),
        notifier=NoticeBoard(),
        client=GitHubClient(config),
    )
    await orchestrator.start()
    await orchestrator.publish_all_pending()
"""

from .batch import BatchCommitProtocol
from .eligibility import check_eligibility
from .models import (
    BatchOutcome,
    BatchResult,
    Eligibility,
    PublishFlag,
    RejectionReason,
    ScanSummary,
    Severity,
    TimerRemaining,
    UnpublishOutcome,
    UnpublishResult,
)
from .orchestrator import PublishOrchestrator
from .queue import PublishQueue
from .reporter import (
    batch_results_to_json,
    format_batch_results,
    format_scan_summary,
    format_status,
)
from .scanner import ScanReconciler
from .scheduler import DualTimerScheduler, LoopClock
from .sources import FileSystemDocuments, NoticeBoard
from .state import PendingStateStore
from .unpublish import unpublish_document

__all__ = [
    "BatchCommitProtocol",
    "BatchOutcome",
    "BatchResult",
    "DualTimerScheduler",
    "Eligibility",
    "FileSystemDocuments",
    "LoopClock",
    "NoticeBoard",
    "PendingStateStore",
    "PublishFlag",
    "PublishOrchestrator",
    "PublishQueue",
    "RejectionReason",
    "ScanReconciler",
    "ScanSummary",
    "Severity",
    "TimerRemaining",
    "UnpublishOutcome",
    "UnpublishResult",
    "batch_results_to_json",
    "check_eligibility",
    "format_batch_results",
    "format_scan_summary",
    "format_status",
    "unpublish_document",
]
