"""
Input validation functions for git_publisher.

Provides validation for document paths and other user inputs so they
are checked before anything touches the filesystem or the remote.
"""


def format_validation_error(field_name: str, reason: str) -> str:
    """
    Generate consistent error message for validation failures.

    Args:
        field_name: Human-readable field name (e.g., "Path")
        reason: Description of validation failure (e.g., "cannot be empty")

    Returns:
        Formatted error message string
    """
    return f"{field_name} {reason}"


def is_safe_path(path: str) -> bool:
    """Return ``True`` unless *path* is hidden or escapes the document root.

    Rejected:
        - empty paths
        - paths starting with ``.`` (hidden files, ``./``, ``../``)
        - absolute paths
        - any ``..`` parent-directory segment
    """
    if not path or path.startswith((".", "/")):
        return False
    segments = path.replace("\\", "/").split("/")
    return ".." not in segments


def validate_document_path(path: str) -> tuple[bool, str]:
    """
    Validate a document path supplied by a caller.

    Args:
        path: Path relative to the documents root

    Returns:
        Tuple of (is_valid, error_message).
        Returns (True, "") if valid, (False, reason) if invalid.
    """
    if not path or not path.strip():
        return (False, format_validation_error("Path", "cannot be empty"))

    if not is_safe_path(path):
        return (
            False,
            format_validation_error(
                "Path", "cannot be hidden or contain '..' segments"
            ),
        )

    return (True, "")
