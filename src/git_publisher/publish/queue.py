"""Publish queue: deduplicated, insertion-ordered paths awaiting a batch."""

from __future__ import annotations

import logging
from collections.abc import Callable

from ..logger import log_event
from .models import Eligibility

logger = logging.getLogger(__name__)


class PublishQueue:
    """Paths waiting for the next batch commit run.

    Args:
        check: Eligibility filter applied at enqueue time.  Rejected
            paths are logged and never enter the queue.
    """

    def __init__(self, check: Callable[[str], Eligibility]) -> None:
        self._check = check
        self._paths: dict[str, None] = {}

    def enqueue(self, path: str) -> bool:
        """Add *path* unless already queued or ineligible.

        Returns:
            ``True`` if the path was added.
        """
        if path in self._paths:
            return False
        verdict = self._check(path)
        if not verdict.eligible:
            assert verdict.reason is not None
            log_event(
                logger,
                logging.INFO,
                "skip_ineligible",
                "Not queueing %s: %s",
                path,
                verdict.reason.value,
                path=path,
                reason=verdict.reason.value,
            )
            return False
        self._paths[path] = None
        return True

    def discard(self, path: str) -> bool:
        """Drop *path* if queued.  Returns ``True`` if it was."""
        if path not in self._paths:
            return False
        del self._paths[path]
        return True

    def drain_all(self) -> list[str]:
        """Snapshot the queue in insertion order and empty it."""
        snapshot = list(self._paths)
        self._paths.clear()
        return snapshot

    def __contains__(self, path: object) -> bool:
        return path in self._paths

    def __len__(self) -> int:
        return len(self._paths)
