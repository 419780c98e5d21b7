"""Lifespan management for MCP server startup and shutdown."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from ..config import Config
from ..config_loader import (
    discover_config_files,
    load_hierarchical_config,
)
from ..config_schema import build_config, to_runtime_config
from ..core.client import GitHubClient
from ..publish.orchestrator import PublishOrchestrator
from ..publish.sources import FileSystemDocuments, NoticeBoard
from ..publish.state import PendingStateStore

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


def state_dir_for(config: Config) -> Path:
    """Resolve the pending-state directory; relative paths live under the documents root."""
    state_dir = Path(config.state_dir).expanduser()
    if state_dir.is_absolute():
        return state_dir
    return Path(config.documents_root).expanduser() / state_dir


def build_orchestrator(config: Config) -> PublishOrchestrator:
    """Wire the filesystem collaborators and GitHub client into an orchestrator.

    The client is only created when repository and token are both set;
    otherwise remote operations are skipped by the orchestrator.
    """
    documents = FileSystemDocuments(Path(config.documents_root).expanduser())
    client = GitHubClient(config) if config.is_configured else None
    return PublishOrchestrator(
        config,
        content=documents,
        metadata=documents,
        state=PendingStateStore(state_dir_for(config)),
        notifier=NoticeBoard(),
        client=client,
    )


@asynccontextmanager
async def server_lifespan(
    config_overrides: dict[str, Any] | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """
    Manage server startup and shutdown lifecycle.

    On startup:
    - Load .env file (so values are available for env var lookups and YAML interpolation)
    - Load YAML config file if present (as fallback values)
    - Merge all sources: CLI > env vars > .env > YAML > defaults
    - Build the orchestrator and run its startup guard (repository check,
      branch creation if missing, scan)

    Unlike a connection failure in a pure API client, an unreachable
    repository does not abort startup: documents stay pending and the
    failure is reported as a notice.

    On shutdown:
    - Cancel timers, let an in-flight batch finish, persist pending state

    Args:
        config_overrides: Optional dict with config values from CLI
            (repo_url, branch, documents_root, auto_publish, debug)

    Yields:
        Dict with 'orchestrator' key containing the started PublishOrchestrator

    Raises:
        RuntimeError: If configuration is malformed.
    """
    logger.info("MCP server starting...")
    _stderr_print("Git Publisher starting...")

    try:
        # .env first so ${VAR} interpolation in YAML can use its values
        load_dotenv()

        sources = []
        config_files = discover_config_files()
        unified = build_config(load_hierarchical_config())
        if config_files:
            sources.append(f"config file: {config_files[0]}")

        overrides = config_overrides or {}
        config = to_runtime_config(unified, cli_overrides=overrides)

        if overrides:
            sources.append("CLI arguments")
        sources.append("environment variables")
        source_desc = ", ".join(sources)
        logger.info("Configuration loaded from: %s", source_desc)
        _stderr_print(f"  Configuration loaded from: {source_desc}")
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        raise RuntimeError(f"Configuration error: {e}") from e

    if config.is_configured:
        _stderr_print(f"  Repository: {config.repo_url} (branch {config.branch})")
    else:
        _stderr_print(
            "  Repository not configured; set GIT_PUBLISHER_REPO_URL and "
            "GITHUB_TOKEN to enable publishing."
        )
    _stderr_print(f"  Documents root: {config.documents_root}")
    _stderr_print(f"  Auto-publish: {'on' if config.auto_publish else 'off'}")

    orchestrator = build_orchestrator(config)
    await orchestrator.start()
    if orchestrator.last_scan is not None:
        scan = orchestrator.last_scan
        _stderr_print(
            f"  Scan: {scan.total} published, {scan.missing} missing, "
            f"{scan.out_of_sync} out of sync"
        )
    _stderr_print("Server ready. Waiting for MCP client connection...")

    try:
        yield {"orchestrator": orchestrator}
    finally:
        logger.info("MCP server shutting down")
        await orchestrator.stop()
        _stderr_print("Git Publisher shutting down.")
