"""Unpublish path: remove a document's file from the branch.

Runs outside the batch protocol as a single guarded delete: the current
blob sha is read first and passed to the delete, so GitHub refuses it if
the file changed in between instead of deleting blindly.
"""

from __future__ import annotations

import logging

from ..config import Config
from ..core.async_utils import run_sync
from ..core.client import GitHubClient, RemoteStatus
from ..logger import log_event
from .errors import notify_failure
from .models import UnpublishOutcome, UnpublishResult
from .sources import NotificationSink
from .state import PendingStateStore

logger = logging.getLogger(__name__)


async def unpublish_document(
    path: str,
    client: GitHubClient,
    config: Config,
    state: PendingStateStore,
    notifier: NotificationSink,
) -> UnpublishResult:
    """Delete *path* from the target branch and forget its pending record.

    A document with no remote copy is not an error: nothing is deleted and
    the local record is dropped, since the document is no longer a publish
    candidate.  On conflict or failure the record is left as it was.
    """
    branch = config.branch
    remote = await run_sync(client.get_content_at, path, branch)

    if remote.status is RemoteStatus.NOT_FOUND:
        log_event(
            logger,
            logging.INFO,
            "delete_missing_remote",
            "Nothing to unpublish for %s",
            path,
            path=path,
        )
        state.discard(path)
        state.save()
        return UnpublishResult(path=path, outcome=UnpublishOutcome.NOT_PUBLISHED)

    if not remote.ok:
        notify_failure(notifier, f"Unpublish {path}", remote)
        return UnpublishResult(
            path=path, outcome=UnpublishOutcome.FAILED, error=remote.error
        )

    deleted = await run_sync(
        client.delete_content_at,
        path,
        branch,
        remote.data.sha,
        f"Unpublish {path}",
    )
    if not deleted.ok:
        notify_failure(notifier, f"Unpublish {path}", deleted)
        outcome = (
            UnpublishOutcome.CONFLICT
            if deleted.status is RemoteStatus.CONFLICT
            else UnpublishOutcome.FAILED
        )
        return UnpublishResult(path=path, outcome=outcome, error=deleted.error)

    state.discard(path)
    state.save()
    log_event(logger, logging.INFO, "deleted", "Unpublished %s", path, path=path)
    return UnpublishResult(path=path, outcome=UnpublishOutcome.REMOVED)
