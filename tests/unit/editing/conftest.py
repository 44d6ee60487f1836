# tests/unit/editing/conftest.py

import asyncio

import pytest

from latex_kit.editing.config import EscalationConfig
from latex_kit.llms.base import LLMResponse, Message, Usage


class ScriptedLLMClient:
    """LLMClient double that replays a script of responses and errors.

    A `float` entry sleeps that many seconds before answering the next
    entry, to simulate a hung request.
    """

    def __init__(self, *script: str | BaseException | float) -> None:
        self.script = list(script)
        self.calls: list[dict] = []

    async def complete(
        self,
        *,
        messages: list[Message],
        temperature: float = 0.0,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        self.calls.append(
            {"messages": messages, "temperature": temperature, "max_tokens": max_tokens}
        )
        item = self.script.pop(0)
        if isinstance(item, float):
            await asyncio.sleep(item)
            item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        return LLMResponse(
            content=item,
            finish_reason="stop",
            usage=Usage(prompt_tokens=1, completion_tokens=1, total_tokens=2),
            latency_ms=1.0,
        )


@pytest.fixture
def fast_config() -> EscalationConfig:
    return EscalationConfig(server_retry_delay=0.0, format_retry_delay=0.0)


@pytest.fixture
def scripted_client() -> type[ScriptedLLMClient]:
    return ScriptedLLMClient
