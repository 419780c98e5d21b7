"""Data contracts for the publish orchestrator.

- ``PublishFlag``: ternary ``published`` metadata flag.
- ``RejectionReason`` / ``Eligibility``: eligibility filter outcome.
- ``Severity``: user-notice severity.
- ``BatchOutcome`` / ``BatchResult``: result of one batch commit run.
- ``UnpublishOutcome`` / ``UnpublishResult``: result of an unpublish.
- ``ScanSummary``: counts produced by the scan reconciler.
- ``TimerRemaining``: countdowns reported by the scheduler.

Result models are frozen pydantic models.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel


class PublishFlag(str, Enum):
    """The document's ``published`` frontmatter value."""

    ABSENT = "absent"
    TRUE = "true"
    FALSE = "false"

    @classmethod
    def from_value(cls, value: object) -> PublishFlag:
        """Map a raw frontmatter value; only a real boolean counts."""
        if value is True:
            return cls.TRUE
        if value is False:
            return cls.FALSE
        return cls.ABSENT


class RejectionReason(str, Enum):
    """Why the eligibility filter refused a document."""

    NOT_MARKED_PUBLISHED = "not_marked_published"
    PATH_UNSAFE = "path_unsafe"
    TOO_LARGE = "too_large"
    UNREADABLE = "unreadable"


@dataclass(frozen=True, slots=True)
class Eligibility:
    """Eligibility filter verdict; ``reason`` is ``None`` when eligible."""

    reason: RejectionReason | None = None

    @property
    def eligible(self) -> bool:
        return self.reason is None


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class BatchOutcome(str, Enum):
    """Terminal state of one batch commit run."""

    SUCCESS = "success"
    NOT_CONFIGURED = "not_configured"
    BRANCH_UNRESOLVABLE = "branch_unresolvable"
    NO_CONTENT = "no_content"
    TREE_BUILD_FAILED = "tree_build_failed"
    COMMIT_FAILED = "commit_failed"
    CONFLICT = "conflict"
    REF_UPDATE_FAILED = "ref_update_failed"


class BatchResult(BaseModel):
    """Outcome of one batch commit run.

    Attributes:
        outcome: How the run ended.
        requested: Paths handed to the run, in order.
        committed: Paths whose content made it into the commit.  Only
            meaningful (and only cleared) when ``outcome`` is SUCCESS.
        failed: Paths excluded because their read or upload failed.
        commit_sha: The new head commit on success.
        started_at: ISO 8601 timestamp when the run started.
        completed_at: ISO 8601 timestamp when the run finished.
    """

    outcome: BatchOutcome
    requested: list[str] = []
    committed: list[str] = []
    failed: list[str] = []
    commit_sha: str | None = None
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    @property
    def success(self) -> bool:
        return self.outcome is BatchOutcome.SUCCESS


class UnpublishOutcome(str, Enum):
    REMOVED = "removed"
    NOT_PUBLISHED = "not_published"
    NOT_CONFIGURED = "not_configured"
    CONFLICT = "conflict"
    FAILED = "failed"


class UnpublishResult(BaseModel):
    path: str
    outcome: UnpublishOutcome
    error: str | None = None

    model_config = {"frozen": True}


class ScanSummary(BaseModel):
    """Counts from one scan reconciler pass.

    Attributes:
        total: Eligible documents examined.
        missing: Documents with no remote copy.
        out_of_sync: Documents whose remote copy differs.
        in_sync: Documents confirmed identical to the remote.
        failed: Documents whose remote lookup failed (left dirty).
        timestamp: ISO 8601 completion time.
    """

    total: int = 0
    missing: int = 0
    out_of_sync: int = 0
    in_sync: int = 0
    failed: int = 0
    timestamp: str

    model_config = {"frozen": True}


class TimerRemaining(BaseModel):
    """Whole seconds left on each countdown; 0 when not armed."""

    inactivity_seconds: int = 0
    session_seconds: int = 0

    model_config = {"frozen": True}
