"""MCP server exposing the publish orchestrator over stdio."""
