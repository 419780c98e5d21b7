"""Publish orchestrator: the single owner of timers, queue and batches.

Wires the eligibility filter, pending state store, dual timer scheduler,
publish queue, batch commit protocol, unpublish path and scan reconciler
into the operations exposed to the host:

- ``set_publish_intent`` / ``toggle_publish_intent`` /
  ``ensure_publish_property``
- ``publish_one`` / ``publish_all_pending``
- ``rescan``
- ``get_pending_snapshot`` / ``get_timer_remaining`` / ``status``
- host events ``on_local_change``, ``on_editor_activity``,
  ``on_metadata_change``

Exactly one remote-mutating operation runs at a time.  Publish requests
arriving while a batch is in flight only enqueue; the running drain loops
until the queue is empty, so nothing enqueued meanwhile is stranded.
Stopping cancels the timers but lets an in-flight batch finish.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

from ..config import Config
from ..core.async_utils import run_sync
from ..core.client import GitHubClient
from ..logger import log_event
from ..validators import validate_document_path
from .batch import BatchCommitProtocol, resolve_branch_head
from .eligibility import check_eligibility
from .errors import notify_failure
from .models import (
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
from .queue import PublishQueue
from .scanner import ScanReconciler
from .scheduler import Clock, DualTimerScheduler
from .sources import ContentSource, MetadataSource, NotificationSink
from .state import PendingStateStore
from .unpublish import unpublish_document

logger = logging.getLogger(__name__)


class PublishOrchestrator:
    """Coordinates everything that decides when and what to publish.

    Args:
        config: Sanitized runtime configuration.
        content: Document content source.
        metadata: Publish-flag source.
        state: Pending state store (loaded in ``start()``).
        notifier: User-visible notices.
        client: GitHub client, or ``None`` when no repository/token is
            configured; remote operations are then skipped.
        clock: Time source for the scheduler (tests inject a fake).
    """

    def __init__(
        self,
        config: Config,
        content: ContentSource,
        metadata: MetadataSource,
        state: PendingStateStore,
        notifier: NotificationSink,
        client: GitHubClient | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.config = config
        self.content = content
        self.metadata = metadata
        self.state = state
        self.notifier = notifier
        self.client = client

        self.queue = PublishQueue(self.check)
        self.scheduler = DualTimerScheduler(
            inactivity_seconds=config.inactivity_seconds,
            session_seconds=config.session_minutes * 60,
            debounce_seconds=config.debounce_ms / 1000,
            on_publish_one=self._on_inactivity_expired,
            on_publish_all=self._on_session_expired,
            clock=clock,
        )
        self.batch: BatchCommitProtocol | None = None
        self.scanner: ScanReconciler | None = None
        if client is not None:
            self.batch = BatchCommitProtocol(
                client, config, state, content, notifier, check=self.check
            )
            self.scanner = ScanReconciler(
                client, config, state, content, self.check
            )

        self._in_flight = False
        self._remote_lock = asyncio.Lock()
        self._tasks: set[asyncio.Task] = set()
        self.last_scan: ScanSummary | None = None
        self.last_batch: BatchResult | None = None

    @property
    def configured(self) -> bool:
        return self.client is not None and self.config.is_configured

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, scan: bool = True) -> None:
        """Load persisted state, arm the scheduler and run the startup scan.

        The scan only runs when the repository is reachable and the branch
        exists (it is created if missing).
        """
        self.state.load()
        if self.config.auto_publish:
            self.scheduler.start()
        if not scan or not self.configured:
            return
        assert self.client is not None

        repo = await run_sync(self.client.get_repository)
        if not repo.ok:
            notify_failure(self.notifier, "Repository check", repo)
            return
        head = await resolve_branch_head(self.client, self.config.branch)
        if not head.ok:
            notify_failure(self.notifier, "Branch check", head)
            return
        await self.rescan()

    async def stop(self) -> None:
        """Cancel timers, wait for background work and persist state."""
        self.scheduler.stop()
        await self.join()
        self.state.save()

    async def join(self) -> None:
        """Wait until every background publish task has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def set_auto_publish(self, enabled: bool) -> None:
        """Turn timer-driven publishing on or off.  Disabling cancels timers."""
        self.config.auto_publish = enabled
        if enabled:
            self.scheduler.start()
        else:
            self.scheduler.stop()
        logger.info("Auto-publish %s", "enabled" if enabled else "disabled")

    # ------------------------------------------------------------------
    # Eligibility
    # ------------------------------------------------------------------

    def check(self, path: str) -> Eligibility:
        """Run the eligibility filter against the document's current state."""
        flag = self.metadata.get_publish_flag(path)
        if flag is not PublishFlag.TRUE:
            return Eligibility(RejectionReason.NOT_MARKED_PUBLISHED)
        try:
            size = self.content.get_size(path)
        except ValueError:
            return Eligibility(RejectionReason.PATH_UNSAFE)
        except OSError:
            return Eligibility(RejectionReason.UNREADABLE)
        return check_eligibility(path, flag, size, self.config.max_file_size_kb)

    # ------------------------------------------------------------------
    # Host events
    # ------------------------------------------------------------------

    def on_local_change(self, path: str) -> None:
        """Content of *path* changed; mark it dirty if it is published."""
        if self.metadata.get_publish_flag(path) is PublishFlag.TRUE:
            self.state.mark_dirty(path)

    def on_editor_activity(self, path: str) -> None:
        """The user is typing in *path*; mark it dirty and feed the timers."""
        self.on_local_change(path)
        if self.config.auto_publish:
            self.scheduler.record_activity(path)

    def on_metadata_change(self, path: str) -> None:
        """Frontmatter of *path* changed outside ``set_publish_intent``."""
        flag = self.metadata.get_publish_flag(path)
        if flag is PublishFlag.TRUE and not self.state.has_record(path):
            self.state.mark_dirty(path)
        elif flag is PublishFlag.FALSE and self.state.has_record(path):
            self._spawn(self._unpublish(path))

    # ------------------------------------------------------------------
    # Publish intent
    # ------------------------------------------------------------------

    async def set_publish_intent(self, path: str, value: bool) -> UnpublishResult | None:
        """Write the ``published`` flag and act on it.

        ``True`` marks the document dirty; ``False`` removes it from the
        branch.

        Returns:
            The unpublish result when *value* is ``False``, else ``None``.

        Raises:
            ValueError: If *path* is not a safe document path.
        """
        is_valid, error = validate_document_path(path)
        if not is_valid:
            raise ValueError(error)

        await run_sync(self.metadata.set_publish_flag, path, value)
        if value:
            self.state.mark_dirty(path)
            self.state.save()
            log_event(logger, logging.INFO, "flag_on", "Published flag set on %s", path, path=path)
            self.notifier.notify(f"{path} published", Severity.INFO)
            return None

        self.notifier.notify(f"{path} unpublished", Severity.INFO)
        result = await self._unpublish(path)
        log_event(logger, logging.INFO, "flag_off", "Published flag cleared on %s", path, path=path)
        return result

    async def toggle_publish_intent(self, path: str) -> UnpublishResult | None:
        current = self.metadata.get_publish_flag(path) is PublishFlag.TRUE
        return await self.set_publish_intent(path, not current)

    async def ensure_publish_property(self, path: str) -> bool:
        """Add ``published: false`` to *path* unless the flag is present.

        Returns:
            ``True`` if the property was added.
        """
        is_valid, error = validate_document_path(path)
        if not is_valid:
            raise ValueError(error)
        if self.metadata.get_publish_flag(path) is not PublishFlag.ABSENT:
            return False
        await run_sync(self.metadata.set_publish_flag, path, False)
        return True

    async def _unpublish(self, path: str) -> UnpublishResult:
        self.queue.discard(path)
        if not self.configured:
            self.state.discard(path)
            self.state.save()
            return UnpublishResult(path=path, outcome=UnpublishOutcome.NOT_CONFIGURED)
        assert self.client is not None
        async with self._remote_lock:
            return await unpublish_document(
                path, self.client, self.config, self.state, self.notifier
            )

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    async def publish_one(self, path: str, only_if_dirty: bool = False) -> list[BatchResult]:
        """Queue *path* and drain the queue.

        Args:
            path: Document to publish.
            only_if_dirty: Skip documents with nothing pending (used by the
                inactivity timer).

        Returns:
            Results of the batch runs this call performed; empty when
            nothing ran (ineligible, clean, deferred or not configured).
        """
        if only_if_dirty and not self.state.is_dirty(path):
            return []
        self.queue.enqueue(path)
        return await self.process_queue()

    async def publish_all_pending(self) -> list[BatchResult]:
        """Queue every dirty document and drain the queue."""
        for path in sorted(self.state.all_dirty()):
            self.queue.enqueue(path)
        return await self.process_queue()

    async def process_queue(self) -> list[BatchResult]:
        """Drain the queue through batch runs unless one is already running."""
        if self._in_flight:
            logger.debug("Batch in flight, %d path(s) deferred", len(self.queue))
            return []
        if self.batch is None or not self.configured:
            if len(self.queue):
                logger.info("Publishing skipped: repository or token not configured")
            return []

        self._in_flight = True
        results: list[BatchResult] = []
        try:
            async with self._remote_lock:
                while paths := self.queue.drain_all():
                    result = await self.batch.run(paths)
                    self.last_batch = result
                    results.append(result)
                    if not result.success:
                        break
        finally:
            self._in_flight = False
        return results

    async def rescan(self) -> ScanSummary | None:
        """Reconcile pending state against the branch; ``None`` if not configured."""
        if self.scanner is None or not self.configured:
            logger.info("Rescan skipped: repository or token not configured")
            return None
        self.last_scan = await self.scanner.scan()
        return self.last_scan

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_pending_snapshot(self) -> set[str]:
        return self.state.all_dirty()

    def get_timer_remaining(self) -> TimerRemaining:
        return self.scheduler.remaining()

    def status(self) -> dict[str, Any]:
        """Everything the pending view shows, as plain data."""
        return {
            "configured": self.configured,
            "auto_publish": self.config.auto_publish,
            "branch": self.config.branch,
            "in_flight": self._in_flight,
            "pending": sorted(self.get_pending_snapshot()),
            "queued": len(self.queue),
            "timers": self.get_timer_remaining().model_dump(),
            "last_scan": self.last_scan.model_dump() if self.last_scan else None,
            "last_batch": self.last_batch.model_dump(mode="json")
            if self.last_batch
            else None,
        }

    # ------------------------------------------------------------------
    # Timer callbacks
    # ------------------------------------------------------------------

    def _on_inactivity_expired(self, path: str) -> None:
        if not self.config.auto_publish:
            return
        self._spawn(self.publish_one(path, only_if_dirty=True))

    def _on_session_expired(self) -> None:
        if not self.config.auto_publish:
            return
        self._spawn(self.publish_all_pending())

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background publish task failed", exc_info=exc)
