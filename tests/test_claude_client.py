"""Tests for Claude summarizer."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from gh_digest.adapters.llm import ClaudeSummarizer
from gh_digest.config import Settings
from gh_digest.core import FatalExternalError, PermanentItemError, TransientExternalError


@pytest.fixture
def mock_settings() -> Settings:
    """Create mock settings."""
    settings = Settings(anthropic_api_key="test-key")
    settings.claude.max_tokens = 256
    return settings


def mock_client_with(response: MagicMock) -> AsyncMock:
    mock_client = AsyncMock()
    mock_client.__aenter__.return_value = mock_client
    mock_client.post.return_value = response
    return mock_client


def make_response(status_code: int, json_data=None, headers=None) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.headers = headers or {}
    response.text = "error body"
    response.json.return_value = json_data or {}
    return response


@pytest.mark.asyncio
async def test_summarize_success(mock_settings: Settings) -> None:
    """Test successful summary with token usage."""
    summarizer = ClaudeSummarizer(mock_settings)

    with patch("httpx.AsyncClient") as mock_client_class:
        mock_client = mock_client_with(
            make_response(
                200,
                {
                    "content": [{"type": "text", "text": "  Adds a new flag.  "}],
                    "usage": {"input_tokens": 120, "output_tokens": 30},
                },
            )
        )
        mock_client_class.return_value = mock_client

        result = await summarizer.summarize("claude-model", "v1", "Title: Add flag")

    assert result.text == "Adds a new flag."
    assert result.input_tokens == 120
    assert result.output_tokens == 30

    payload = mock_client.post.call_args.kwargs["json"]
    assert payload["model"] == "claude-model"
    assert payload["max_tokens"] == 256
    assert "Title: Add flag" in payload["messages"][0]["content"]
    assert mock_client.post.call_args.kwargs["headers"]["x-api-key"] == "test-key"


@pytest.mark.asyncio
async def test_rate_limit_is_transient_with_retry_after(mock_settings: Settings) -> None:
    """Test 429 maps to a transient error carrying Retry-After."""
    summarizer = ClaudeSummarizer(mock_settings)

    with patch("httpx.AsyncClient") as mock_client_class:
        mock_client_class.return_value = mock_client_with(make_response(429, headers={"retry-after": "7"}))

        with pytest.raises(TransientExternalError) as exc_info:
            await summarizer.summarize("m", "v1", "content")

    assert exc_info.value.retry_after == 7.0


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [500, 503, 529])
async def test_server_errors_are_transient(mock_settings: Settings, status: int) -> None:
    """Test overload and server errors are retryable."""
    summarizer = ClaudeSummarizer(mock_settings)

    with patch("httpx.AsyncClient") as mock_client_class:
        mock_client_class.return_value = mock_client_with(make_response(status))

        with pytest.raises(TransientExternalError) as exc_info:
            await summarizer.summarize("m", "v1", "content")

    assert exc_info.value.retry_after is None


@pytest.mark.asyncio
async def test_auth_failure_is_fatal(mock_settings: Settings) -> None:
    """Test rejected credentials abort."""
    summarizer = ClaudeSummarizer(mock_settings)

    with patch("httpx.AsyncClient") as mock_client_class:
        mock_client_class.return_value = mock_client_with(make_response(401))

        with pytest.raises(FatalExternalError):
            await summarizer.summarize("m", "v1", "content")


@pytest.mark.asyncio
async def test_bad_request_is_permanent(mock_settings: Settings) -> None:
    """Test a rejected input fails only that item."""
    summarizer = ClaudeSummarizer(mock_settings)

    with patch("httpx.AsyncClient") as mock_client_class:
        mock_client_class.return_value = mock_client_with(make_response(400))

        with pytest.raises(PermanentItemError):
            await summarizer.summarize("m", "v1", "content")


@pytest.mark.asyncio
async def test_network_error_is_transient(mock_settings: Settings) -> None:
    """Test connection failures are retryable."""
    summarizer = ClaudeSummarizer(mock_settings)

    with patch("httpx.AsyncClient") as mock_client_class:
        mock_client = AsyncMock()
        mock_client.__aenter__.return_value = mock_client
        mock_client.post.side_effect = httpx.ConnectError("connection refused")
        mock_client_class.return_value = mock_client

        with pytest.raises(TransientExternalError):
            await summarizer.summarize("m", "v1", "content")


@pytest.mark.asyncio
async def test_missing_key_or_prompt_is_fatal(mock_settings: Settings) -> None:
    """Test configuration problems are fatal before any request."""
    with pytest.raises(FatalExternalError):
        await ClaudeSummarizer(Settings()).summarize("m", "v1", "content")

    with pytest.raises(FatalExternalError):
        await ClaudeSummarizer(mock_settings).summarize("m", "v999", "content")
