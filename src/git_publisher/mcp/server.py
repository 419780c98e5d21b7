"""MCP server for the git publisher using stdio transport.

This module implements the Model Context Protocol server that lets an
editing host (or an agent acting for one) drive the publish orchestrator:
report edits, set publish intent, trigger publishes and inspect pending
state.

Transport: stdio
Protocol: JSON-RPC 2.0 over MCP
"""

import argparse
import asyncio
import logging
import sys

import mcp.server.stdio
import mcp.types as types
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from .. import __version__
from ..config_loader import ensure_config
from ..core.async_utils import run_sync
from ..logger import setup_logging
from ..publish.orchestrator import PublishOrchestrator
from .lifespan import server_lifespan
from .tools import ALL_SPECS, ToolRegistry, build_error_response
from .tools.registry import ToolSpec

logger = logging.getLogger(__name__)

# Initialize server instance
server = Server("git-publisher")

# Global orchestrator instance (initialized in lifespan)
_orchestrator: PublishOrchestrator | None = None

# Global registry instance (initialized in main)
_registry: ToolRegistry | None = None


# ---------------------------------------------------------------------------
# Ping tool (always available)
# ---------------------------------------------------------------------------


async def _handle_ping(
    orchestrator: PublishOrchestrator, args: dict
) -> types.CallToolResult:
    """Handle ping tool -- report configuration and test repository access."""
    config = orchestrator.config
    if orchestrator.client is None or not orchestrator.configured:
        return types.CallToolResult(
            content=[
                types.TextContent(
                    type="text",
                    text="Git publisher running; repository not configured. "
                    "Set GIT_PUBLISHER_REPO_URL and GITHUB_TOKEN.",
                )
            ]
        )

    result = await run_sync(orchestrator.client.get_repository)
    if not result.ok:
        return types.CallToolResult(
            content=[
                types.TextContent(
                    type="text",
                    text=f"Repository check failed ({result.status.value}): "
                    f"{result.error}. Check GIT_PUBLISHER_REPO_URL and GITHUB_TOKEN.",
                )
            ],
            isError=True,
        )
    return types.CallToolResult(
        content=[
            types.TextContent(
                type="text",
                text=f"Git publisher connected to {config.repo_url} "
                f"(branch {config.branch}).",
            )
        ]
    )


PING_SPEC = ToolSpec(
    tool=types.Tool(
        name="ping",
        description="Test repository connectivity and report the configured branch",
        inputSchema={
            "type": "object",
            "properties": {},
            "required": [],
        },
    ),
    mutating=False,
    handler=_handle_ping,
)


# ---------------------------------------------------------------------------
# Global accessors
# ---------------------------------------------------------------------------


def get_orchestrator() -> PublishOrchestrator:
    """Get the global PublishOrchestrator instance.

    Raises:
        RuntimeError: If the orchestrator is not initialized
    """
    if _orchestrator is None:
        raise RuntimeError(
            "PublishOrchestrator not initialized. Server lifespan not started."
        )
    return _orchestrator


def set_orchestrator(orchestrator: PublishOrchestrator | None) -> None:
    global _orchestrator
    _orchestrator = orchestrator


def get_registry() -> ToolRegistry:
    """Get the global ToolRegistry instance.

    Raises:
        RuntimeError: If registry is not initialized
    """
    if _registry is None:
        raise RuntimeError("ToolRegistry not initialized.")
    return _registry


def set_registry(registry: ToolRegistry | None) -> None:
    global _registry
    _registry = registry


# ---------------------------------------------------------------------------
# MCP protocol handlers
# ---------------------------------------------------------------------------


@server.list_tools()
async def handle_list_tools() -> list[types.Tool]:
    """List the registered publish tools."""
    return get_registry().list_tools()


@server.call_tool()
async def handle_call_tool(
    name: str, arguments: dict | None
) -> types.CallToolResult:
    """Handle tool execution via ToolRegistry dispatch.

    Args:
        name: The name of the tool to execute.
        arguments: Tool arguments (optional).

    Returns:
        CallToolResult with tool output content and optional isError flag.
    """
    orchestrator = get_orchestrator()
    try:
        return await get_registry().call_tool(name, arguments, orchestrator)
    except ValueError as e:
        # Unknown or filtered-out tool name
        return build_error_response(
            "unknown_tool",
            str(e),
            "Use list_tools to see available tools.",
        )


# ---------------------------------------------------------------------------
# Server lifecycle
# ---------------------------------------------------------------------------


async def main(config_overrides: dict | None = None):
    """Run the MCP server with stdio transport.

    Sets up logging for MCP mode (file only, never stdout), starts the
    orchestrator via the lifespan manager, and serves JSON-RPC over stdio.

    Args:
        config_overrides: Optional dict with config values to override
            (repo_url, branch, documents_root, auto_publish, debug,
            log_file, read_only)
    """
    overrides = dict(config_overrides or {})
    log_file = overrides.pop("log_file", None)
    read_only = overrides.pop("read_only", False)

    # Must run before stdio_server so nothing reaches stdout during
    # protocol negotiation
    setup_logging(
        mode="mcp", debug=overrides.get("debug", False), log_file=log_file
    )

    all_specs = [PING_SPEC] + ALL_SPECS
    registry = ToolRegistry(all_specs, read_only=read_only)
    logger.info(
        "Registered %d tools (of %d total)",
        registry.tool_count(),
        len(all_specs),
    )
    if read_only:
        print(
            f"Read-only mode ({registry.tool_count()} of {len(all_specs)} tools enabled)",
            file=sys.stderr,
        )
    set_registry(registry)

    # set_orchestrator() is called here rather than in the lifespan so that
    # running this file as __main__ does not update a second copy of the
    # module's globals.
    async with server_lifespan(config_overrides=overrides) as ctx:
        set_orchestrator(ctx["orchestrator"])
        try:
            async with mcp.server.stdio.stdio_server() as (
                read_stream,
                write_stream,
            ):
                init_options = InitializationOptions(
                    server_name="git-publisher",
                    server_version=__version__,
                    capabilities=server.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                )
                await server.run(read_stream, write_stream, init_options)
        finally:
            set_orchestrator(None)
            set_registry(None)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="git-publisher",
        description="Git Publisher - mirror documents flagged 'published: true' to a GitHub branch",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with default config (from .env or .git_publisher/config.yml)
  git-publisher

  # Publish notes from a directory to a specific repository and branch
  git-publisher --root ~/notes --repo-url https://github.com/me/notes --branch pages

  # Manual publishing only (no inactivity/session timers)
  git-publisher --no-auto-publish

  # Inspection tools only
  git-publisher --read-only

  # Create .git_publisher/config.yml with commented defaults
  git-publisher --init-config

Note: the access token is read from GITHUB_TOKEN (or the config file) only.
This server uses stdio transport for JSON-RPC communication with MCP clients.
All user-facing messages are written to stderr.
        """,
    )
    parser.add_argument(
        "--root",
        help="Documents directory (overrides GIT_PUBLISHER_DOCUMENTS_ROOT and config files)",
    )
    parser.add_argument(
        "--repo-url",
        help="Target repository, https://github.com/OWNER/REPO "
        "(overrides GIT_PUBLISHER_REPO_URL and config files)",
    )
    parser.add_argument(
        "--branch",
        help="Target branch (overrides GIT_PUBLISHER_BRANCH and config files)",
    )
    parser.add_argument(
        "--no-auto-publish",
        action="store_true",
        help="Disable timer-driven publishing; use the publish tools instead",
    )
    parser.add_argument(
        "--log-file",
        help="Log file path (default: LOG_FILE or /tmp/git-publisher.ndjson)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--read-only",
        action="store_true",
        help="Expose only tools that do not change documents or the repository",
    )
    parser.add_argument(
        "--init-config",
        action="store_true",
        help="Write a commented starter config file if none exists, then exit",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"git-publisher version {__version__}",
    )
    return parser


def parse_overrides(argv: list[str] | None = None) -> dict:
    """Turn command line arguments into the ``config_overrides`` dict."""
    args = build_parser().parse_args(argv)

    if args.init_config:
        path = ensure_config()
        print(f"Config file: {path}", file=sys.stderr)
        sys.exit(0)

    config_overrides: dict = {}
    if args.root:
        config_overrides["documents_root"] = args.root
    if args.repo_url:
        config_overrides["repo_url"] = args.repo_url
    if args.branch:
        config_overrides["branch"] = args.branch
    if args.no_auto_publish:
        config_overrides["auto_publish"] = False
    if args.log_file:
        config_overrides["log_file"] = args.log_file
    if args.debug:
        config_overrides["debug"] = True
    if args.read_only:
        config_overrides["read_only"] = True
    return config_overrides


def run() -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    config_overrides = parse_overrides()

    # Before stdio transport starts
    if config_overrides:
        print(
            f"Config overrides from CLI: {', '.join(config_overrides)}",
            file=sys.stderr,
        )

    try:
        asyncio.run(main(config_overrides=config_overrides or None))
    except RuntimeError:
        # Error already printed to stderr by lifespan manager
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
