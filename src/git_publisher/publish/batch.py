"""Batch commit protocol: publish many documents in one remote commit.

One run takes an ordered snapshot of paths and performs:

1. Resolve the branch head (creating the branch if it does not exist).
2. Upload each document as a blob.  A failed read or upload drops that
   path from the run; it stays dirty for the next one.
   Documents that stopped being eligible since they were queued (for
   example unpublished meanwhile) are dropped without being uploaded.
3. Abort if no blobs were produced.
4. Build one tree over the head's tree with the new blobs.
5. Create one commit on top of the head.
6. Fast-forward the branch ref (never forced).

Only step 6 makes anything visible on the branch, so a failure at any
earlier step leaves the remote as it was and every path dirty.  Retrying
re-uploads the same content against the same head and is safe.  Paths
are cleared only after step 6 succeeds, and only if they were not dirtied
again after their content was read.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from ..config import Config
from ..core.async_utils import run_sync
from ..core.client import ApiResult, GitHubClient, RemoteStatus, git_blob_sha
from ..logger import log_event
from .errors import notify_failure
from .models import BatchOutcome, BatchResult, Eligibility, RejectionReason, Severity
from .sources import ContentSource, NotificationSink
from .state import PendingStateStore

logger = logging.getLogger(__name__)

BLOB_MODE = "100644"
PLACEHOLDER_PATH = ".gitkeep"
PLACEHOLDER_CONTENT = b"init"
PLACEHOLDER_MESSAGE = "Initialize branch"


@dataclass(frozen=True, slots=True)
class _Upload:
    path: str
    sha: str
    generation: int


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


async def resolve_branch_head(client: GitHubClient, branch: str) -> ApiResult:
    """Return the branch head, creating the branch first if it is missing.

    A missing branch is initialized by committing a placeholder file
    through the contents API, then the head is resolved again.
    """
    head = await run_sync(client.get_branch_head, branch)
    if head.status is not RemoteStatus.NOT_FOUND:
        return head

    log_event(
        logger,
        logging.INFO,
        "branch_init",
        "Branch %s not found, initializing",
        branch,
        branch=branch,
    )
    created = await run_sync(
        client.put_content,
        PLACEHOLDER_PATH,
        PLACEHOLDER_CONTENT,
        PLACEHOLDER_MESSAGE,
        branch,
    )
    if not created.ok:
        return created
    return await run_sync(client.get_branch_head, branch)


class BatchCommitProtocol:
    """Executes batch runs against one repository branch.

    Args:
        client: GitHub client for the target repository.
        config: Runtime configuration (branch, commit prefix).
        state: Pending state store; cleared and saved on success.
        content: Where document bytes are read from.
        notifier: User-visible notices.
        check: Eligibility filter re-applied to each path at upload time;
            documents unpublished since they were queued are skipped.
        now: Clock for commit timestamps.
    """

    def __init__(
        self,
        client: GitHubClient,
        config: Config,
        state: PendingStateStore,
        content: ContentSource,
        notifier: NotificationSink,
        now: Callable[[], datetime] = _utc_now,
        check: Callable[[str], Eligibility] | None = None,
    ) -> None:
        self.client = client
        self.config = config
        self.state = state
        self.content = content
        self.notifier = notifier
        self._now = now
        self._check = check

    def commit_message(self) -> str:
        return f"{self.config.commit_message} ({self._now().isoformat()})"

    async def run(self, paths: list[str]) -> BatchResult:
        """Publish *paths* in a single commit.

        Args:
            paths: Non-empty ordered snapshot from the publish queue.

        Returns:
            ``BatchResult`` describing how far the run got.
        """
        started_at = self._now().isoformat()
        branch = self.config.branch
        log_event(
            logger,
            logging.INFO,
            "batch_start",
            "Batch started for %d path(s)",
            len(paths),
            count=len(paths),
            paths=paths,
        )

        def _finish(
            outcome: BatchOutcome,
            uploads: list[_Upload] | None = None,
            failed: list[str] | None = None,
            commit_sha: str | None = None,
        ) -> BatchResult:
            return BatchResult(
                outcome=outcome,
                requested=list(paths),
                committed=[u.path for u in uploads or []],
                failed=failed or [],
                commit_sha=commit_sha,
                started_at=started_at,
                completed_at=self._now().isoformat(),
            )

        # Step 1: branch head
        head_result = await resolve_branch_head(self.client, branch)
        if not head_result.ok:
            log_event(
                logger,
                logging.ERROR,
                "batch_abort_branch",
                "Cannot resolve branch %s: %s",
                branch,
                head_result.error,
                branch=branch,
                status=head_result.status.value,
            )
            notify_failure(self.notifier, "Publish", head_result)
            return _finish(BatchOutcome.BRANCH_UNRESOLVABLE)
        head = head_result.data

        # Step 2: blobs
        uploads, failed = await self._upload_blobs(paths)

        # Step 3
        if not uploads:
            log_event(
                logger,
                logging.WARNING,
                "batch_no_blobs",
                "No content uploaded, aborting batch",
                failed=failed,
            )
            return _finish(BatchOutcome.NO_CONTENT, failed=failed)

        # Step 4: tree over the head's tree
        entries = [
            {"path": u.path, "mode": BLOB_MODE, "type": "blob", "sha": u.sha}
            for u in uploads
        ]
        tree = await run_sync(self.client.create_tree, head.tree_sha, entries)
        tree_sha = (tree.data or {}).get("sha") if tree.ok else None
        if not tree_sha:
            log_event(logger, logging.ERROR, "tree_fail", "Tree creation failed")
            notify_failure(self.notifier, "Publish", tree)
            return _finish(BatchOutcome.TREE_BUILD_FAILED, failed=failed)

        # Step 5: commit
        commit = await run_sync(
            self.client.create_commit,
            self.commit_message(),
            tree_sha,
            [head.commit_sha],
        )
        commit_sha = (commit.data or {}).get("sha") if commit.ok else None
        if not commit_sha:
            log_event(logger, logging.ERROR, "commit_fail", "Commit creation failed")
            notify_failure(self.notifier, "Publish", commit)
            return _finish(BatchOutcome.COMMIT_FAILED, failed=failed)

        # Step 6: the only visible write
        updated = await run_sync(
            self.client.update_ref, branch, commit_sha, False
        )
        if not updated.ok:
            conflict = updated.status is RemoteStatus.CONFLICT
            log_event(
                logger,
                logging.WARNING if conflict else logging.ERROR,
                "ref_fail",
                "Ref update for %s rejected: %s",
                branch,
                updated.error,
                branch=branch,
                commit=commit_sha,
                status=updated.status.value,
            )
            notify_failure(self.notifier, "Publish", updated)
            return _finish(
                BatchOutcome.CONFLICT if conflict else BatchOutcome.REF_UPDATE_FAILED,
                failed=failed,
            )

        for upload in uploads:
            self.state.set_remote_sha(upload.path, upload.sha)
            self.state.mark_clean(upload.path, upload.generation)
        self.state.save()

        log_event(
            logger,
            logging.INFO,
            "batch_ok",
            "Committed %s with %d file(s)",
            commit_sha,
            len(uploads),
            commit=commit_sha,
            files=len(uploads),
        )
        self.notifier.notify(f"Published {len(uploads)} document(s)", Severity.INFO)
        return _finish(
            BatchOutcome.SUCCESS, uploads, failed, commit_sha=commit_sha
        )

    async def _upload_blobs(self, paths: list[str]) -> tuple[list[_Upload], list[str]]:
        """Upload each path's current content; collect successes and failures."""
        uploads: list[_Upload] = []
        failed: list[str] = []

        for path in paths:
            if self._check is not None:
                verdict = await run_sync(self._check, path)
                if not verdict.eligible:
                    assert verdict.reason is not None
                    log_event(
                        logger,
                        logging.INFO,
                        "skip_ineligible",
                        "Dropping %s from batch: %s",
                        path,
                        verdict.reason.value,
                        path=path,
                        reason=verdict.reason.value,
                    )
                    if verdict.reason is RejectionReason.UNREADABLE:
                        failed.append(path)
                    continue

            # Read the generation before the content so an edit racing the
            # read can only make us keep the path dirty, never lose it.
            generation = self.state.generation(path)
            try:
                content = await run_sync(self.content.read_content, path)
            except (OSError, ValueError) as exc:
                log_event(
                    logger,
                    logging.WARNING,
                    "skip_not_file",
                    "Cannot read %s: %s",
                    path,
                    exc,
                    path=path,
                )
                failed.append(path)
                continue

            local_sha = git_blob_sha(content)
            if local_sha == self.state.remote_sha(path):
                logger.debug("Reusing known blob %s for %s", local_sha, path)
                uploads.append(_Upload(path, local_sha, generation))
                continue

            blob = await run_sync(self.client.create_blob, content)
            blob_sha = (blob.data or {}).get("sha") if blob.ok else None
            if not blob_sha:
                log_event(
                    logger,
                    logging.WARNING,
                    "blob_fail",
                    "Blob upload failed for %s: %s",
                    path,
                    blob.error,
                    path=path,
                    status=blob.status.value,
                )
                failed.append(path)
                continue
            uploads.append(_Upload(path, blob_sha, generation))

        if failed:
            self.notifier.notify(
                f"{len(failed)} document(s) could not be uploaded and stay pending",
                Severity.WARNING,
            )
        return uploads, failed
