"""Translate failed remote calls into user notices.

Conflicts, authorization failures, rate limits and malformed requests
are surfaced to the user.  Plain transient failures (5xx, connection
errors) are only logged: the affected documents stay dirty and the next
trigger retries them.
"""

from __future__ import annotations

from ..core.client import ApiResult, RemoteStatus
from .models import Severity
from .sources import NotificationSink

_ACTIONS: dict[RemoteStatus, str] = {
    RemoteStatus.CONFLICT: (
        "The branch changed remotely. Pending documents were kept and "
        "will be retried on the next publish."
    ),
    RemoteStatus.UNAUTHORIZED: (
        "Check that the token has contents read/write access to the "
        "repository. Publishing will not retry until this is fixed."
    ),
    RemoteStatus.NOT_FOUND: "Check the repository URL and branch.",
    RemoteStatus.INVALID: "GitHub rejected the request; see the log for details.",
}


def notify_failure(
    notifier: NotificationSink, action: str, result: ApiResult
) -> None:
    """Surface a failed remote call for *action* when the user must know.

    Args:
        notifier: Where to send the notice.
        action: What was being attempted (e.g. "Publish", "Unpublish a.md").
        result: The failed ``ApiResult``.
    """
    status_text = f" ({result.http_status})" if result.http_status else ""
    if result.rate_limited:
        notifier.notify(
            f"{action} failed: GitHub rate limit reached{status_text}. "
            "Pending documents are kept; try again later.",
            Severity.WARNING,
        )
        return
    if result.status is RemoteStatus.TRANSIENT:
        return
    corrective = _ACTIONS.get(result.status, "")
    severity = (
        Severity.WARNING
        if result.status is RemoteStatus.CONFLICT
        else Severity.ERROR
    )
    label = "conflict" if result.status is RemoteStatus.CONFLICT else "failed"
    detail = f": {result.error}" if result.error else ""
    notifier.notify(
        f"{action} {label}{status_text}{detail}. {corrective}".rstrip(),
        severity,
    )
