"""Scan reconciler: seed pending state from what is actually on the branch.

Walks every eligible document, fetches the branch copy and compares the
git blob sha of the local content with the sha GitHub reports.  The sha
is present even for files whose body the contents API leaves out.  Missing or differing documents are marked
dirty; identical ones are marked clean and their remote blob sha recorded.
Nothing is published here.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from ..config import Config
from ..core.async_utils import run_sync
from ..core.client import GitHubClient, RemoteStatus, git_blob_sha
from ..logger import log_event
from .models import Eligibility, ScanSummary
from .sources import ContentSource
from .state import PendingStateStore

logger = logging.getLogger(__name__)


class ScanReconciler:
    """Compare local documents with the target branch.

    Args:
        client: GitHub client for the target repository.
        config: Runtime configuration (branch).
        state: Pending state store to seed.
        content: Document source.
        check: Eligibility filter; ineligible documents are not scanned.
    """

    def __init__(
        self,
        client: GitHubClient,
        config: Config,
        state: PendingStateStore,
        content: ContentSource,
        check: Callable[[str], Eligibility],
    ) -> None:
        self.client = client
        self.config = config
        self.state = state
        self.content = content
        self._check = check

    async def scan(self) -> ScanSummary:
        total = missing = out_of_sync = in_sync = failed = 0
        documents = await run_sync(self.content.list_documents)

        for path in documents:
            verdict = await run_sync(self._check, path)
            if not verdict.eligible:
                continue
            total += 1

            remote = await run_sync(
                self.client.get_content_at, path, self.config.branch
            )
            if remote.status is RemoteStatus.NOT_FOUND:
                self.state.mark_dirty(path)
                missing += 1
                continue
            if not remote.ok:
                # Unknown remote state counts as never confirmed in sync.
                self.state.mark_dirty(path)
                failed += 1
                continue

            generation = self.state.generation(path)
            try:
                local = await run_sync(self.content.read_content, path)
            except OSError as exc:
                logger.warning("Cannot read %s during scan: %s", path, exc)
                self.state.mark_dirty(path)
                failed += 1
                continue

            if git_blob_sha(local) != remote.data.sha:
                self.state.mark_dirty(path)
                out_of_sync += 1
            else:
                self.state.set_remote_sha(path, remote.data.sha)
                self.state.mark_clean(path, generation)
                in_sync += 1

        self.state.save()
        summary = ScanSummary(
            total=total,
            missing=missing,
            out_of_sync=out_of_sync,
            in_sync=in_sync,
            failed=failed,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )
        log_event(
            logger,
            logging.INFO,
            "scan_done",
            "Scan finished: %d published, %d missing, %d out of sync",
            total,
            missing,
            out_of_sync,
            **summary.model_dump(),
        )
        return summary
