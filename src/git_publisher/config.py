"""Runtime configuration for the publisher.

Reads publisher settings from CLI args, environment variables, .env files,
and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    GIT_PUBLISHER_REPO_URL: Target repository (https://github.com/OWNER/REPO)
    GITHUB_TOKEN: Access token with contents read/write permission
    GIT_PUBLISHER_BRANCH: Target branch (default: main)
    GIT_PUBLISHER_AUTO_PUBLISH: Enable timer-driven publishing (default: true)
    GIT_PUBLISHER_INACTIVITY_SECONDS: Inactivity window (default: 30, min 5)
    GIT_PUBLISHER_SESSION_MINUTES: Session window (default: 5, min 1)
    GIT_PUBLISHER_DEBOUNCE_MS: Debounce window (default: 1500, min 250)
    GIT_PUBLISHER_COMMIT_MESSAGE: Commit message prefix (default: Publish)
    GIT_PUBLISHER_MAX_FILE_SIZE_KB: Max document size (default: 1024, min 50)
    GIT_PUBLISHER_DOCUMENTS_ROOT: Directory holding the documents (default: .)

Unlike connection errors, bad settings never abort startup: they are
sanitized back to safe values by ``sanitize_config()``.
"""

import logging
import os
import re
from dataclasses import dataclass

logger = logging.getLogger(__name__)

REPO_URL_PATTERN = re.compile(
    r"^https://github\.com/([\w.-]+)/([\w.-]+?)(?:\.git)?$"
)
BRANCH_PATTERN = re.compile(r"^[A-Za-z0-9._/-]+$")

DEFAULT_BRANCH = "main"
DEFAULT_COMMIT_MESSAGE = "Publish"
MAX_COMMIT_MESSAGE_LENGTH = 100

MIN_INACTIVITY_SECONDS = 5
MIN_SESSION_MINUTES = 1
MIN_DEBOUNCE_MS = 250
MIN_FILE_SIZE_KB = 50


@dataclass
class Config:
    repo_url: str = ""
    token: str = ""
    auto_publish: bool = True
    inactivity_seconds: int = 30
    session_minutes: int = 5
    debounce_ms: int = 1500
    commit_message: str = DEFAULT_COMMIT_MESSAGE
    branch: str = DEFAULT_BRANCH
    max_file_size_kb: int = 1024
    documents_root: str = "."
    state_dir: str = ".git_publisher"
    api_url: str = "https://api.github.com"
    debug: bool = False

    @property
    def is_configured(self) -> bool:
        """True when both repository and token are present."""
        return bool(self.repo_url and self.token)

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_kb * 1024

    def parse_repo(self) -> tuple[str, str] | None:
        """Split ``repo_url`` into ``(owner, repo)``, or ``None`` if invalid."""
        match = REPO_URL_PATTERN.match(self.repo_url or "")
        if not match:
            return None
        return match.group(1), match.group(2)


def sanitize_config(config: Config) -> list[str]:
    """Reset invalid settings to safe values in place.

    An invalid repository URL or branch name disables auto-publish.
    Numeric windows below their minimum are clamped up.

    Args:
        config: Config instance to sanitize.

    Returns:
        List of human-readable adjustments that were made (empty if none).
    """
    adjustments: list[str] = []

    config.repo_url = (config.repo_url or "").strip()
    if config.repo_url and not REPO_URL_PATTERN.match(config.repo_url):
        adjustments.append(
            f"Invalid repository URL '{config.repo_url}': reset, auto-publish disabled"
        )
        config.repo_url = ""
        config.auto_publish = False
    elif not config.repo_url and config.auto_publish:
        adjustments.append("No repository URL set: auto-publish disabled")
        config.auto_publish = False

    config.branch = (config.branch or "").strip()
    if not BRANCH_PATTERN.match(config.branch) or ".." in config.branch:
        adjustments.append(
            f"Invalid branch name '{config.branch}': reset to "
            f"'{DEFAULT_BRANCH}', auto-publish disabled"
        )
        config.branch = DEFAULT_BRANCH
        config.auto_publish = False

    minimums = (
        ("inactivity_seconds", MIN_INACTIVITY_SECONDS),
        ("session_minutes", MIN_SESSION_MINUTES),
        ("debounce_ms", MIN_DEBOUNCE_MS),
        ("max_file_size_kb", MIN_FILE_SIZE_KB),
    )
    for field_name, minimum in minimums:
        value = getattr(config, field_name)
        if value < minimum:
            adjustments.append(
                f"{field_name}={value} below minimum, clamped to {minimum}"
            )
            setattr(config, field_name, minimum)

    message = re.sub(r"[\r\n]", " ", config.commit_message or "")
    message = message[:MAX_COMMIT_MESSAGE_LENGTH]
    config.commit_message = message if message.strip() else DEFAULT_COMMIT_MESSAGE

    for adjustment in adjustments:
        logger.warning("Config adjusted: %s", adjustment)

    return adjustments


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def _get_int(key: str, fallback: dict, fb_key: str, default: int) -> int:
    """Resolve an integer setting: env > YAML > default."""
    raw = os.getenv(key)
    if raw is not None:
        try:
            return int(raw)
        except ValueError:
            raise ValueError(f"Invalid {key} '{raw}': must be an integer") from None
    if fallback.get(fb_key) is not None:
        return int(fallback[fb_key])
    return default


def load_config(
    repo_url: str | None = None,
    token: str | None = None,
    branch: str | None = None,
    documents_root: str | None = None,
    auto_publish: bool | None = None,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        repo_url: Override repository URL.
        token: Override access token.
        branch: Override target branch.
        documents_root: Override documents directory.
        auto_publish: Override auto-publish (``None`` means not given).
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Dict of values from the YAML ``publisher`` section.

    Returns:
        Sanitized Config instance.

    Raises:
        ValueError: If a numeric environment variable is not an integer.
    """
    fb = yaml_fallbacks or {}
    defaults = Config()

    final_auto = auto_publish
    if final_auto is None:
        final_auto = _get_bool_env("GIT_PUBLISHER_AUTO_PUBLISH")
    if final_auto is None:
        final_auto = bool(fb.get("auto_publish", defaults.auto_publish))

    config = Config(
        repo_url=repo_url
        or os.getenv("GIT_PUBLISHER_REPO_URL")
        or fb.get("repo_url")
        or "",
        token=token or os.getenv("GITHUB_TOKEN") or fb.get("token") or "",
        auto_publish=final_auto,
        inactivity_seconds=_get_int(
            "GIT_PUBLISHER_INACTIVITY_SECONDS",
            fb,
            "inactivity_seconds",
            defaults.inactivity_seconds,
        ),
        session_minutes=_get_int(
            "GIT_PUBLISHER_SESSION_MINUTES",
            fb,
            "session_minutes",
            defaults.session_minutes,
        ),
        debounce_ms=_get_int(
            "GIT_PUBLISHER_DEBOUNCE_MS", fb, "debounce_ms", defaults.debounce_ms
        ),
        commit_message=os.getenv("GIT_PUBLISHER_COMMIT_MESSAGE")
        or fb.get("commit_message")
        or defaults.commit_message,
        branch=branch
        or os.getenv("GIT_PUBLISHER_BRANCH")
        or fb.get("branch")
        or defaults.branch,
        max_file_size_kb=_get_int(
            "GIT_PUBLISHER_MAX_FILE_SIZE_KB",
            fb,
            "max_file_size_kb",
            defaults.max_file_size_kb,
        ),
        documents_root=documents_root
        or os.getenv("GIT_PUBLISHER_DOCUMENTS_ROOT")
        or fb.get("documents_root")
        or defaults.documents_root,
        state_dir=fb.get("state_dir") or defaults.state_dir,
        api_url=(fb.get("api_url") or defaults.api_url).rstrip("/"),
        debug=debug or bool(_get_bool_env("GIT_PUBLISHER_DEBUG")),
    )

    sanitize_config(config)
    return config
