"""Publish flagged Markdown documents to a GitHub repository."""

__version__ = "0.3.0"
