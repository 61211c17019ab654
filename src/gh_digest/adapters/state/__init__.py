"""State store adapters."""

from gh_digest.adapters.state.yaml_state_store import YamlStateStore

__all__ = ["YamlStateStore"]
