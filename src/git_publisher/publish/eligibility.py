"""Eligibility filter: may this document be published at all?

Pure function, no side effects.  Runs before anything is enqueued.
"""

from __future__ import annotations

from ..validators import is_safe_path
from .models import Eligibility, PublishFlag, RejectionReason

ELIGIBLE = Eligibility()


def check_eligibility(
    path: str,
    flag: PublishFlag,
    size_bytes: int,
    max_size_kb: int,
) -> Eligibility:
    """Decide whether a document is a publish candidate.

    The first failing check wins, in this order: publish flag, path
    safety, size.

    Args:
        path: Document path relative to the documents root.
        flag: The document's ``published`` metadata flag.
        size_bytes: Current size of the document in bytes.
        max_size_kb: Configured size ceiling in kilobytes.

    Returns:
        ``ELIGIBLE`` or an ``Eligibility`` carrying the rejection reason.
    """
    if flag is not PublishFlag.TRUE:
        return Eligibility(RejectionReason.NOT_MARKED_PUBLISHED)
    if not is_safe_path(path):
        return Eligibility(RejectionReason.PATH_UNSAFE)
    if size_bytes > max_size_kb * 1024:
        return Eligibility(RejectionReason.TOO_LARGE)
    return ELIGIBLE
