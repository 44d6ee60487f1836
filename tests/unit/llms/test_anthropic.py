# tests/unit/llms/test_anthropic.py

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from anthropic import APIConnectionError, InternalServerError, RateLimitError

from latex_kit.llms.anthropic import AnthropicLLMClient
from latex_kit.llms.base import Message, Role
from latex_kit.llms.errors import LLMConnectionError, LLMStatusError

_REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


@pytest.fixture
def mock_anthropic_response() -> MagicMock:
    """Create a mock Anthropic response."""
    response = MagicMock()

    text_block = MagicMock()
    text_block.type = "text"
    text_block.text = "Add the label after the equation."

    response.content = [text_block]
    response.stop_reason = "end_turn"
    response.usage.input_tokens = 10
    response.usage.output_tokens = 8
    return response


class TestAnthropicLLMClient:
    @pytest.mark.asyncio
    async def test_complete_basic(self, mock_anthropic_response: MagicMock) -> None:
        """Test basic completion."""
        with patch("latex_kit.llms.anthropic.AsyncAnthropic") as mock_anthropic:
            mock_client = AsyncMock()
            mock_client.messages.create.return_value = mock_anthropic_response
            mock_anthropic.return_value = mock_client

            client = AnthropicLLMClient(api_key="test-key")
            response = await client.complete(
                messages=[Message(role=Role.USER, content="Hello!")]
            )

            assert response.content == "Add the label after the equation."
            assert response.finish_reason == "stop"
            assert response.usage.total_tokens == 18
            assert response.latency_ms >= 0

    @pytest.mark.asyncio
    async def test_system_prompt_sent_separately(
        self, mock_anthropic_response: MagicMock
    ) -> None:
        with patch("latex_kit.llms.anthropic.AsyncAnthropic") as mock_anthropic:
            mock_client = AsyncMock()
            mock_client.messages.create.return_value = mock_anthropic_response
            mock_anthropic.return_value = mock_client

            client = AnthropicLLMClient(api_key="test-key")
            await client.complete(
                messages=[
                    Message(role=Role.SYSTEM, content="You edit LaTeX."),
                    Message(role=Role.USER, content="Hi"),
                ]
            )

            kwargs = mock_client.messages.create.call_args.kwargs
            assert kwargs["system"] == "You edit LaTeX."
            assert kwargs["messages"] == [{"role": "user", "content": "Hi"}]
            assert kwargs["max_tokens"] == 4096

    def test_system_message_extraction(self) -> None:
        """Test that system messages are extracted correctly."""
        with patch("latex_kit.llms.anthropic.AsyncAnthropic"):
            client = AnthropicLLMClient(api_key="test-key")

            messages = [
                Message(role=Role.SYSTEM, content="You are helpful."),
                Message(role=Role.SYSTEM, content="Answer in diffs."),
                Message(role=Role.USER, content="Hello"),
            ]

            system, non_system = client._extract_system(messages)

            assert system == "You are helpful.\n\nAnswer in diffs."
            assert len(non_system) == 1
            assert non_system[0].role == Role.USER

    def test_no_system_message(self) -> None:
        with patch("latex_kit.llms.anthropic.AsyncAnthropic"):
            client = AnthropicLLMClient(api_key="test-key")

            system, non_system = client._extract_system(
                [Message(role=Role.USER, content="Hello")]
            )

            assert system is None
            assert len(non_system) == 1

    @pytest.mark.asyncio
    async def test_metrics_hook_called(
        self, mock_anthropic_response: MagicMock
    ) -> None:
        """Test that metrics hook is called."""
        with patch("latex_kit.llms.anthropic.AsyncAnthropic") as mock_anthropic:
            mock_client = AsyncMock()
            mock_client.messages.create.return_value = mock_anthropic_response
            mock_anthropic.return_value = mock_client

            metrics_hook = MagicMock()
            client = AnthropicLLMClient(api_key="test-key", metrics_hook=metrics_hook)

            await client.complete(messages=[Message(role=Role.USER, content="Hi")])

            metrics_hook.record_latency.assert_called_once()
            call_args = metrics_hook.record_latency.call_args
            assert call_args[0][0] == "llm_completion_duration"

    @pytest.mark.asyncio
    async def test_max_tokens_finish_reason(self) -> None:
        """Test that max_tokens stop reason is mapped correctly."""
        with patch("latex_kit.llms.anthropic.AsyncAnthropic") as mock_anthropic:
            response = MagicMock()
            text_block = MagicMock()
            text_block.type = "text"
            text_block.text = "Truncated..."
            response.content = [text_block]
            response.stop_reason = "max_tokens"
            response.usage.input_tokens = 10
            response.usage.output_tokens = 100

            mock_client = AsyncMock()
            mock_client.messages.create.return_value = response
            mock_anthropic.return_value = mock_client

            client = AnthropicLLMClient(api_key="test-key")
            result = await client.complete(
                messages=[Message(role=Role.USER, content="test")]
            )

            assert result.finish_reason == "length"

    @pytest.mark.asyncio
    async def test_status_errors_translated(self) -> None:
        with patch("latex_kit.llms.anthropic.AsyncAnthropic") as mock_anthropic:
            mock_client = AsyncMock()
            mock_client.messages.create.side_effect = [
                InternalServerError(
                    "overloaded",
                    response=httpx.Response(529, request=_REQUEST),
                    body=None,
                ),
                RateLimitError(
                    "slow down",
                    response=httpx.Response(429, request=_REQUEST),
                    body=None,
                ),
            ]
            mock_anthropic.return_value = mock_client

            client = AnthropicLLMClient(api_key="test-key")
            messages = [Message(role=Role.USER, content="test")]

            with pytest.raises(LLMStatusError) as server_error:
                await client.complete(messages=messages)
            with pytest.raises(LLMStatusError) as client_error:
                await client.complete(messages=messages)

            assert server_error.value.is_server_error
            assert client_error.value.status_code == 429
            assert client_error.value.is_client_error

    @pytest.mark.asyncio
    async def test_connection_error_translated(self) -> None:
        with patch("latex_kit.llms.anthropic.AsyncAnthropic") as mock_anthropic:
            mock_client = AsyncMock()
            mock_client.messages.create.side_effect = APIConnectionError(
                request=_REQUEST
            )
            mock_anthropic.return_value = mock_client

            client = AnthropicLLMClient(api_key="test-key")

            with pytest.raises(LLMConnectionError):
                await client.complete(messages=[Message(role=Role.USER, content="x")])
