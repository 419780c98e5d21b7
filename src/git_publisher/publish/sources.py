"""Collaborator contracts consumed by the orchestrator, plus default
implementations.

- ``ContentSource`` / ``MetadataSource``: where documents and their
  ``published`` flag come from.  ``FileSystemDocuments`` implements both
  over a directory of Markdown files with YAML frontmatter.
- ``NotificationSink``: fire-and-forget user-visible messages.
  ``NoticeBoard`` logs them and keeps the most recent ones.
"""

from __future__ import annotations

import logging
import re
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

import yaml

from ..validators import is_safe_path
from .models import PublishFlag, Severity

logger = logging.getLogger(__name__)

_FRONTMATTER_RE = re.compile(r"\A---\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)", re.DOTALL)


class ContentSource(Protocol):
    def read_content(self, path: str) -> bytes: ...

    def get_size(self, path: str) -> int: ...

    def exists(self, path: str) -> bool: ...

    def list_documents(self) -> list[str]: ...


class MetadataSource(Protocol):
    def get_publish_flag(self, path: str) -> PublishFlag: ...

    def set_publish_flag(self, path: str, value: bool) -> None: ...


class NotificationSink(Protocol):
    def notify(self, message: str, severity: Severity = Severity.INFO) -> None: ...


# ---------------------------------------------------------------------------
# Frontmatter helpers
# ---------------------------------------------------------------------------


def split_frontmatter(text: str) -> tuple[dict, str]:
    """Split *text* into (frontmatter dict, body).

    Documents without a leading ``---`` block, or whose block is not a
    YAML mapping, yield an empty dict and the full text as body.
    """
    match = _FRONTMATTER_RE.match(text)
    if not match:
        return {}, text
    try:
        data = yaml.safe_load(match.group(1))
    except yaml.YAMLError as exc:
        logger.warning("Unparseable frontmatter: %s", exc)
        return {}, text
    if not isinstance(data, dict):
        return {}, text
    return data, text[match.end():]


def join_frontmatter(data: dict, body: str) -> str:
    """Render *data* as a frontmatter block followed by *body*."""
    header = yaml.safe_dump(data, sort_keys=False, allow_unicode=True)
    return f"---\n{header}---\n{body}"


class FileSystemDocuments:
    """Markdown documents under *root*, addressed by POSIX relative path.

    Args:
        root: Directory holding the documents.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def _resolve(self, path: str) -> Path:
        if not is_safe_path(path):
            raise ValueError(f"Unsafe document path: {path!r}")
        return self.root / path

    # -- ContentSource ----------------------------------------------------

    def read_content(self, path: str) -> bytes:
        return self._resolve(path).read_bytes()

    def get_size(self, path: str) -> int:
        return self._resolve(path).stat().st_size

    def exists(self, path: str) -> bool:
        try:
            return self._resolve(path).is_file()
        except ValueError:
            return False

    def list_documents(self) -> list[str]:
        """All ``*.md`` files below the root, hidden directories excluded."""
        paths = []
        for file_path in sorted(self.root.rglob("*.md")):
            rel = file_path.relative_to(self.root).as_posix()
            if any(part.startswith(".") for part in rel.split("/")):
                continue
            paths.append(rel)
        return paths

    # -- MetadataSource ---------------------------------------------------

    def get_publish_flag(self, path: str) -> PublishFlag:
        if not self.exists(path):
            return PublishFlag.ABSENT
        text = self._resolve(path).read_text(encoding="utf-8", errors="replace")
        data, _ = split_frontmatter(text)
        if "published" not in data:
            return PublishFlag.ABSENT
        return PublishFlag.from_value(data["published"])

    def set_publish_flag(self, path: str, value: bool) -> None:
        """Write ``published: <value>`` into the document's frontmatter."""
        file_path = self._resolve(path)
        text = file_path.read_text(encoding="utf-8")
        data, body = split_frontmatter(text)
        data["published"] = bool(value)
        file_path.write_text(join_frontmatter(data, body), encoding="utf-8")


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Notice:
    message: str
    severity: Severity
    timestamp: str


_SEVERITY_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
}


class NoticeBoard:
    """Notification sink that logs each notice and keeps the latest ones."""

    def __init__(self, capacity: int = 50) -> None:
        self._notices: deque[Notice] = deque(maxlen=capacity)

    def notify(self, message: str, severity: Severity = Severity.INFO) -> None:
        logger.log(_SEVERITY_LEVELS[severity], "Notice: %s", message)
        self._notices.append(
            Notice(
                message=message,
                severity=severity,
                timestamp=datetime.now(timezone.utc).isoformat(),
            )
        )

    def recent(self, limit: int = 10) -> list[Notice]:
        """Most recent notices, newest last."""
        if limit <= 0:
            return []
        return list(self._notices)[-limit:]
