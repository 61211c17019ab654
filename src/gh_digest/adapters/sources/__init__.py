"""Source adapters for fetching activity."""

from gh_digest.adapters.sources.github_source import (
    GitHubActivityDiscovery,
    GitHubActivitySource,
    GitHubClient,
)

__all__ = ["GitHubActivityDiscovery", "GitHubActivitySource", "GitHubClient"]
