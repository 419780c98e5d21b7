"""Core GitHub client functionality shared by the orchestrator and MCP server."""

from .async_utils import run_sync
from .client import ApiResult, GitHubClient, RemoteStatus

__all__ = ["ApiResult", "GitHubClient", "RemoteStatus", "run_sync"]
