# src/latex_kit/llms/anthropic.py

import logging
from time import monotonic
from typing import Any, Literal

from anthropic import NOT_GIVEN, APIConnectionError, APIStatusError, AsyncAnthropic

from latex_kit.observability import names
from latex_kit.observability.base import MetricsHook, NoOpMetricsHook

from .base import LLMClient, LLMResponse, Message, Role, Usage
from .errors import LLMConnectionError, LLMStatusError

logger = logging.getLogger(__name__)


class AnthropicLLMClient(LLMClient):
    """Anthropic LLM client.

    Stateless. No retries. No behavior.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "claude-sonnet-4-20250514",
        timeout: float = 60.0,
        max_retries: int = 0,
        metrics_hook: MetricsHook = NoOpMetricsHook(),
    ):
        self._client = AsyncAnthropic(
            api_key=api_key, timeout=timeout, max_retries=max_retries
        )
        self._model = model
        self.metrics_hook = metrics_hook
        logger.info(
            "Initialized AnthropicLLMClient with model=%s, timeout=%s",
            model,
            timeout,
        )

    async def complete(
        self,
        *,
        messages: list[Message],
        temperature: float = 0.0,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        start = monotonic()

        # Extract system message (Anthropic handles it separately)
        system_content, non_system_messages = self._extract_system(messages)

        # Convert to provider format (internal only - never leaks)
        anthropic_messages = self._convert_messages(non_system_messages)

        logger.debug(
            "Calling Anthropic: model=%s, messages=%d",
            self._model,
            len(messages),
        )

        raw = await self._call_api(
            system=system_content,
            messages=anthropic_messages,
            temperature=temperature,
            max_tokens=max_tokens or 4096,  # Anthropic requires max_tokens
        )

        elapsed_ms = 1000 * (monotonic() - start)

        # Normalize immediately - provider objects never escape
        response = self._normalize_response(raw, elapsed_ms)

        # Metrics
        self.metrics_hook.record_latency(names.LLM_COMPLETION_DURATION, elapsed_ms)
        self.metrics_hook.increment(
            names.LLM_REQUESTS_TOTAL,
            labels={"provider": "anthropic", "model": self._model},
        )
        self.metrics_hook.increment(names.LLM_TOKENS_TOTAL, response.usage.total_tokens)

        logger.info(
            "Anthropic completion: finish=%s, tokens=%d, latency=%.0fms",
            response.finish_reason,
            response.usage.total_tokens,
            elapsed_ms,
        )

        return response

    async def _call_api(
        self,
        *,
        system: str | None,
        messages: list[dict[str, Any]],
        temperature: float,
        max_tokens: int,
    ) -> Any:
        """Call Anthropic API, translating SDK failures into upstream errors."""
        try:
            return await self._client.messages.create(
                model=self._model,
                messages=messages,  # type: ignore[arg-type]
                temperature=temperature,
                max_tokens=max_tokens,
                system=system if system else NOT_GIVEN,
            )
        except APIStatusError as e:
            self.metrics_hook.increment(
                names.LLM_ERRORS_TOTAL,
                labels={"provider": "anthropic", "status": str(e.status_code)},
            )
            raise LLMStatusError(e.status_code, e.message) from e
        except APIConnectionError as e:
            self.metrics_hook.increment(
                names.LLM_ERRORS_TOTAL,
                labels={"provider": "anthropic", "status": "connection"},
            )
            raise LLMConnectionError(str(e)) from e

    def _extract_system(
        self, messages: list[Message]
    ) -> tuple[str | None, list[Message]]:
        """Extract system messages from message list.

        Anthropic requires the system prompt as a separate parameter.
        Several system messages are joined in order.
        """
        system_parts = []
        non_system = []

        for m in messages:
            if m.role == Role.SYSTEM:
                system_parts.append(m.content)
            else:
                non_system.append(m)

        return ("\n\n".join(system_parts) or None), non_system

    def _convert_messages(self, messages: list[Message]) -> list[dict]:
        """Convert Message objects to Anthropic format.

        Internal only. Provider format never leaks outside.
        """
        return [{"role": m.role.value, "content": m.content} for m in messages]

    def _normalize_response(self, raw: Any, latency_ms: float) -> LLMResponse:
        """Normalize Anthropic response to LLMResponse.

        This is the boundary. Raw provider objects stop here.
        """
        text_parts = [block.text for block in raw.content if block.type == "text"]
        text_content = "".join(text_parts) if text_parts else None

        # Map finish reason
        finish_reason: Literal["stop", "length", "error"]
        if raw.stop_reason in ("end_turn", "stop_sequence"):
            finish_reason = "stop"
        elif raw.stop_reason == "max_tokens":
            finish_reason = "length"
        else:
            finish_reason = "error"

        return LLMResponse(
            content=text_content,
            finish_reason=finish_reason,
            usage=Usage(
                prompt_tokens=raw.usage.input_tokens,
                completion_tokens=raw.usage.output_tokens,
                total_tokens=raw.usage.input_tokens + raw.usage.output_tokens,
            ),
            latency_ms=latency_ms,
        )
