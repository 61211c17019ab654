"""Digest renderers."""

from gh_digest.adapters.digest.markdown_generator import MarkdownReportRenderer

__all__ = ["MarkdownReportRenderer"]
