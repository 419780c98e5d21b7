"""Pending state store: which documents still need publishing.

Maps each document path to a record holding its dirty flag and the last
known remote blob sha.  It is the single source of truth for "needs
publishing" and is persisted to ``<state_dir>/state.json`` so dirty flags
survive a restart (best effort, not transactional).

Key design choices:

* **Atomic writes** -- ``save()`` writes to a temp file then calls
  ``os.replace()`` so readers never see partial data.
* **Generations** -- every ``mark_dirty`` bumps a per-path counter.  A
  batch remembers the generation it read and ``mark_clean`` refuses to
  clear a path that was dirtied again afterwards, so an edit made while a
  batch is in flight is never lost.  Generations are in-memory only.
* **Single owner** -- all mutation happens on the event loop thread, so
  calls are linearized without locks.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

STATE_VERSION = 1
STATE_FILENAME = "state.json"


class PendingStateStore:
    """In-memory dirty/clean map with an on-disk snapshot.

    Args:
        state_dir: Directory where ``state.json`` is stored.  ``None``
            keeps the store purely in memory.
    """

    def __init__(self, state_dir: Path | None = None) -> None:
        self._state_dir = state_dir
        self._entries: dict[str, dict] = {}
        self._generations: dict[str, int] = {}
        self.last_saved: str | None = None

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    @property
    def path(self) -> Path | None:
        if self._state_dir is None:
            return None
        return self._state_dir / STATE_FILENAME

    def load(self) -> None:
        """Replace in-memory records with the on-disk snapshot, if any.

        A missing or unreadable snapshot leaves the store empty; the scan
        reconciler rebuilds it.
        """
        path = self.path
        if path is None or not path.exists():
            return
        try:
            with open(path, encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable state file %s: %s", path, exc)
            return

        entries = data.get("entries", {}) if isinstance(data, dict) else {}
        self._entries = {
            p: {
                "dirty": bool(e.get("dirty", False)),
                "remote_sha": e.get("remote_sha"),
            }
            for p, e in entries.items()
            if isinstance(e, dict)
        }
        self.last_saved = data.get("saved_at")
        logger.info(
            "Loaded pending state: %d record(s), %d dirty",
            len(self._entries),
            len(self.all_dirty()),
        )

    def save(self) -> None:
        """Persist all records atomically.  Failures are logged, not raised."""
        path = self.path
        if path is None:
            return
        assert self._state_dir is not None
        saved_at = datetime.now(timezone.utc).isoformat()
        data = {
            "version": STATE_VERSION,
            "saved_at": saved_at,
            "entries": self._entries,
        }
        try:
            self._state_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=str(self._state_dir), suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(data, fh, indent=2, sort_keys=True)
                os.replace(tmp_path, path)
            except BaseException:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass
                raise
        except OSError as exc:
            logger.error("Failed to persist pending state to %s: %s", path, exc)
            return
        self.last_saved = saved_at

    # ------------------------------------------------------------------
    # Dirty tracking
    # ------------------------------------------------------------------

    def mark_dirty(self, path: str) -> int:
        """Flag *path* as needing publication and return its new generation."""
        entry = self._entries.setdefault(path, {"dirty": False, "remote_sha": None})
        entry["dirty"] = True
        generation = self._generations.get(path, 0) + 1
        self._generations[path] = generation
        return generation

    def mark_clean(self, path: str, generation: int | None = None) -> bool:
        """Clear the dirty flag for *path*.

        Args:
            path: Document path.
            generation: The generation observed when the content was read.
                If the path has been dirtied since, it stays dirty.

        Returns:
            ``True`` if the path is clean afterwards.
        """
        if generation is not None and self.generation(path) != generation:
            logger.debug(
                "Keeping %s dirty: generation %d superseded by %d",
                path,
                generation,
                self.generation(path),
            )
            return False
        entry = self._entries.setdefault(path, {"dirty": False, "remote_sha": None})
        entry["dirty"] = False
        return True

    def generation(self, path: str) -> int:
        return self._generations.get(path, 0)

    def is_dirty(self, path: str) -> bool:
        entry = self._entries.get(path)
        return bool(entry and entry["dirty"])

    def all_dirty(self) -> set[str]:
        return {p for p, e in self._entries.items() if e["dirty"]}

    def has_record(self, path: str) -> bool:
        return path in self._entries

    def discard(self, path: str) -> None:
        """Forget *path* entirely.  No-op if not present."""
        self._entries.pop(path, None)
        # Bump rather than drop so an in-flight batch cannot clean a
        # record recreated after the discard.
        self._generations[path] = self._generations.get(path, 0) + 1

    # ------------------------------------------------------------------
    # Remote sha bookkeeping
    # ------------------------------------------------------------------

    def remote_sha(self, path: str) -> str | None:
        entry = self._entries.get(path)
        return entry.get("remote_sha") if entry else None

    def set_remote_sha(self, path: str, sha: str | None) -> None:
        entry = self._entries.setdefault(path, {"dirty": False, "remote_sha": None})
        entry["remote_sha"] = sha

    def paths(self) -> list[str]:
        return sorted(self._entries)
