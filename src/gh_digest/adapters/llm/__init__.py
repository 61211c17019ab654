"""LLM adapters."""

from gh_digest.adapters.llm.claude_client import PROMPTS, ClaudeSummarizer

__all__ = ["ClaudeSummarizer", "PROMPTS"]
