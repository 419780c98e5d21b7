"""Unified configuration schema for git_publisher.

Defines Pydantic models for the YAML config structure with dedicated
sections for the publisher and logging. Includes an adapter that turns
the file-level model into the runtime ``Config`` dataclass.

Usage:
    from git_publisher.config_schema import build_config, to_runtime_config

    raw = load_hierarchical_config()
    unified = build_config(raw)
    config = to_runtime_config(unified, cli_overrides={"branch": "pages"})
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class PublisherSection(BaseModel):
    """Publisher settings as written in the config file.

    Numeric bounds are deliberately absent here: out-of-range values are
    clamped by ``sanitize_config()`` instead of rejected.
    """

    repo_url: str | None = Field(
        default=None, description="https://github.com/OWNER/REPO"
    )
    token: str | None = Field(default=None, description="GitHub token")
    branch: str | None = Field(default=None, description="Target branch")
    auto_publish: bool = Field(
        default=True, description="Enable timer-driven publishing"
    )
    inactivity_seconds: int = Field(
        default=30, description="Seconds without edits before publish-one"
    )
    session_minutes: int = Field(
        default=5, description="Upper bound before publish-all"
    )
    debounce_ms: int = Field(default=1500, description="Edit debounce")
    commit_message: str = Field(
        default="Publish", description="Commit message prefix"
    )
    max_file_size_kb: int = Field(
        default=1024, description="Documents above this size are skipped"
    )
    documents_root: str | None = Field(
        default=None, description="Directory holding the documents"
    )
    state_dir: str = Field(
        default=".git_publisher",
        description="Directory for the pending-state snapshot",
    )
    api_url: str = Field(
        default="https://api.github.com", description="GitHub REST API base"
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
        format: ``text`` or ``json``.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")
    format: str = Field(default="text", description="text or json")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has defaults, so ``UnifiedConfig()`` is always valid.
    """

    publisher: PublisherSection = Field(default_factory=PublisherSection)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the dict returned by
    ``load_hierarchical_config()``.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


def to_runtime_config(
    unified: UnifiedConfig,
    cli_overrides: dict | None = None,
) -> Config:
    """Convert a ``UnifiedConfig`` into the runtime ``Config`` dataclass.

    CLI overrides dict keys: repo_url, token, branch, documents_root,
    auto_publish, debug.  Environment variables are resolved by
    ``load_config()`` in between.

    Returns:
        Sanitized ``Config`` instance.
    """
    # Import here to avoid circular imports
    from .config import load_config

    overrides = cli_overrides or {}
    fallbacks = {
        k: v
        for k, v in unified.publisher.model_dump().items()
        if v is not None
    }
    return load_config(
        repo_url=overrides.get("repo_url"),
        token=overrides.get("token"),
        branch=overrides.get("branch"),
        documents_root=overrides.get("documents_root"),
        auto_publish=overrides.get("auto_publish"),
        debug=overrides.get("debug", False),
        yaml_fallbacks=fallbacks,
    )
