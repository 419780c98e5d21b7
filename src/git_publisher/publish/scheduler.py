"""Dual timer scheduler.

Turns a stream of edit-activity events into two kinds of publish
triggers:

- **publish-one(path)** when a document has seen no edits for the
  inactivity window.  Each document has its own inactivity timer.
- **publish-all** when the session window, started by the first edit of
  an idle scheduler, expires.  The session timer is never pushed back by
  further edits, which bounds the worst-case publish latency.

A debounce gate spares the timer churn of re-arming on every keystroke:
while the gate is open an edit only records its timestamp, and an
inactivity timer that fires early re-arms itself for the remainder.

All timers share one cancellation token.  ``cancel()`` swaps the token,
so a callback already queued by the event loop still sees a stale token
and does nothing.

Time comes from an injected ``Clock`` so tests can drive the scheduler
deterministically.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from .models import TimerRemaining

logger = logging.getLogger(__name__)

# Float slack when deciding whether a woken inactivity timer is due.
_EPSILON = 1e-6


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Clock(Protocol):
    def now(self) -> float: ...

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class LoopClock:
    """``Clock`` backed by the running asyncio event loop."""

    def now(self) -> float:
        return asyncio.get_running_loop().time()

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return asyncio.get_running_loop().call_later(delay, callback)


@dataclass
class _DocumentTimer:
    handle: TimerHandle
    last_activity: float


class DualTimerScheduler:
    """Owns the inactivity timers, the session timer and the debounce gate.

    Args:
        inactivity_seconds: Quiet period before publish-one fires.
        session_seconds: Upper bound before publish-all fires.
        debounce_seconds: Advisory debounce window.
        on_publish_one: Called with the document path on inactivity expiry.
        on_publish_all: Called on session expiry.
        clock: Time source; defaults to the running event loop.
    """

    def __init__(
        self,
        inactivity_seconds: float,
        session_seconds: float,
        debounce_seconds: float,
        on_publish_one: Callable[[str], None],
        on_publish_all: Callable[[], None],
        clock: Clock | None = None,
    ) -> None:
        self.inactivity_seconds = inactivity_seconds
        self.session_seconds = session_seconds
        self.debounce_seconds = debounce_seconds
        self._on_publish_one = on_publish_one
        self._on_publish_all = on_publish_all
        self._clock = clock or LoopClock()

        self._token = object()
        self._running = False
        self._session: TimerHandle | None = None
        self._session_started: float | None = None
        self._documents: dict[str, _DocumentTimer] = {}
        self._debounce_until: float | None = None
        self._last_path: str | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        self._running = True

    def stop(self) -> None:
        """Cancel everything and refuse further activity until ``start()``."""
        self._running = False
        self.cancel()

    @property
    def running(self) -> bool:
        return self._running

    def cancel(self) -> None:
        """Cancel both timers and the debounce gate.  Idempotent."""
        self._token = object()
        if self._session is not None:
            self._session.cancel()
        for doc in self._documents.values():
            doc.handle.cancel()
        self._session = None
        self._session_started = None
        self._documents.clear()
        self._debounce_until = None
        self._last_path = None

    # ------------------------------------------------------------------
    # Activity
    # ------------------------------------------------------------------

    def record_activity(self, path: str) -> None:
        """Register an edit to *path*, arming or re-arming timers."""
        if not self._running:
            return
        now = self._clock.now()

        if self._session is None:
            self._session_started = now
            self._session = self._clock.call_later(
                self.session_seconds, self._make_session_callback(self._token)
            )
            logger.debug("Session timer armed for %.0fs", self.session_seconds)

        doc = self._documents.get(path)
        if doc is not None and self.debouncing:
            doc.last_activity = now
        else:
            if doc is not None:
                doc.handle.cancel()
            self._documents[path] = _DocumentTimer(
                handle=self._clock.call_later(
                    self.inactivity_seconds,
                    self._make_inactivity_callback(path, self._token),
                ),
                last_activity=now,
            )

        self._debounce_until = now + self.debounce_seconds
        self._last_path = path

    @property
    def debouncing(self) -> bool:
        """True while the debounce gate from the last edit is still open."""
        return (
            self._debounce_until is not None
            and self._clock.now() < self._debounce_until
        )

    @property
    def armed(self) -> bool:
        return self._session is not None or bool(self._documents)

    def armed_documents(self) -> set[str]:
        return set(self._documents)

    def remaining(self) -> TimerRemaining:
        """Seconds left on the active document's inactivity timer and the session timer."""
        now = self._clock.now()
        inactivity = 0
        doc = self._documents.get(self._last_path) if self._last_path else None
        if doc is not None:
            left = doc.last_activity + self.inactivity_seconds - now
            inactivity = max(0, round(left))
        session = 0
        if self._session is not None and self._session_started is not None:
            left = self._session_started + self.session_seconds - now
            session = max(0, round(left))
        return TimerRemaining(
            inactivity_seconds=inactivity, session_seconds=session
        )

    # ------------------------------------------------------------------
    # Expiry
    # ------------------------------------------------------------------

    def _make_inactivity_callback(self, path: str, token: object) -> Callable[[], None]:
        def _fire() -> None:
            self._on_inactivity(path, token)

        return _fire

    def _make_session_callback(self, token: object) -> Callable[[], None]:
        def _fire() -> None:
            self._on_session(token)

        return _fire

    def _on_inactivity(self, path: str, token: object) -> None:
        if token is not self._token:
            return
        doc = self._documents.get(path)
        if doc is None:
            return
        left = doc.last_activity + self.inactivity_seconds - self._clock.now()
        if left > _EPSILON:
            # Edits landed inside the debounce gate; wait out the rest.
            doc.handle = self._clock.call_later(
                left, self._make_inactivity_callback(path, token)
            )
            return
        del self._documents[path]
        logger.info("Inactivity timer expired for %s", path)
        self._on_publish_one(path)

    def _on_session(self, token: object) -> None:
        if token is not self._token:
            return
        logger.info("Session timer expired")
        self.cancel()
        self._on_publish_all()
