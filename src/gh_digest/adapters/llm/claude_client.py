"""Claude API summarizer."""

import logging
from typing import Optional

import httpx

from gh_digest.config import Settings
from gh_digest.core import (
    FatalExternalError,
    PermanentItemError,
    Summarizer,
    SummaryResult,
    TransientExternalError,
)

logger = logging.getLogger(__name__)

# Bump the version key whenever a prompt changes; cached summaries keyed on
# the old version then stop matching.
PROMPTS = {
    "v1": {
        "system": (
            "You are an assistant helping a maintainer triage GitHub activity. "
            "Be concise and concrete."
        ),
        "user": (
            "Summarize the following GitHub activity in 2-3 sentences. Say what changed, "
            "why it matters to a maintainer, and whether any action is needed.\n\n{content}"
        ),
    },
}


class ClaudeSummarizer(Summarizer):
    """Claude Messages API implementation.

    Makes exactly one HTTP request per call and classifies failures; retrying is
    the caller's decision.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.api_key = settings.anthropic_api_key
        self.max_tokens = settings.claude.max_tokens
        self.temperature = settings.claude.temperature
        self.timeout = settings.claude.timeout
        self.base_url = "https://api.anthropic.com/v1"

    async def summarize(self, model_id: str, prompt_version: str, content: str) -> SummaryResult:
        """Summarize content with the given model and prompt version."""
        if not self.api_key:
            raise FatalExternalError("ANTHROPIC_API_KEY is not set")

        prompt = PROMPTS.get(prompt_version)
        if prompt is None:
            raise FatalExternalError(f"Unknown prompt version: {prompt_version}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}/messages",
                    headers={
                        "x-api-key": self.api_key,
                        "anthropic-version": "2023-06-01",
                        "content-type": "application/json",
                    },
                    json={
                        "model": model_id,
                        "max_tokens": self.max_tokens,
                        "temperature": self.temperature,
                        "system": prompt["system"],
                        "messages": [
                            {"role": "user", "content": prompt["user"].format(content=content)}
                        ],
                    },
                )
        except httpx.RequestError as e:
            raise TransientExternalError(f"Network error calling Claude: {e}") from e

        if response.status_code == 200:
            data = response.json()
            usage = data.get("usage", {})
            text = "".join(
                block.get("text", "") for block in data.get("content", []) if block.get("type", "text") == "text"
            )
            return SummaryResult(
                text=text.strip(),
                input_tokens=int(usage.get("input_tokens", 0)),
                output_tokens=int(usage.get("output_tokens", 0)),
            )

        if response.status_code in (401, 403):
            raise FatalExternalError(f"Claude rejected credentials ({response.status_code})")

        # Rate limit and overload: retry later
        if response.status_code in (429, 529) or response.status_code >= 500:
            retry_after = self._get_retry_delay(response)
            logger.debug("Claude returned %d, retry after %s", response.status_code, retry_after)
            raise TransientExternalError(
                f"Claude returned {response.status_code}", retry_after=retry_after
            )

        raise PermanentItemError(f"Claude returned {response.status_code}: {response.text[:200]}")

    @staticmethod
    def _get_retry_delay(response: httpx.Response) -> Optional[float]:
        """Read the Retry-After header when present."""
        retry_after = response.headers.get("retry-after")
        if retry_after:
            try:
                return float(retry_after)
            except ValueError:
                pass
        return None
