# src/latex_kit/editing/escalation.py

"""Escalating edit generation.

Tier 1 asks for a unified diff, tier 2 for search/replace blocks. Each
tier is a bounded sequence of attempts; tier 2 starts only when tier 1
has used all of its attempts, and a client-side (4xx) refusal ends the
whole run at once.

The retry decision itself is the pure `next_state` function; tenacity
only executes what it decides.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from time import monotonic

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    before_sleep_log,
    stop_after_attempt,
)

from latex_kit.llms.base import LLMClient, LLMResponse, Message
from latex_kit.llms.errors import LLMConnectionError, LLMError, LLMStatusError
from latex_kit.observability.base import MetricsHook, NoOpMetricsHook
from latex_kit.observability.names import (
    EDIT_ATTEMPTS_TOTAL,
    EDIT_ESCALATIONS_TOTAL,
    EDIT_FAILURES_TOTAL,
    EDIT_GENERATION_DURATION,
)

from .config import EscalationConfig
from .errors import EditGenerationError, ExtractionError
from .extraction import extract_search_replace, extract_unified_diff, validate_diff
from .types import EditFormat, EditResult

logger = logging.getLogger(__name__)


class AttemptState(str, Enum):
    ATTEMPTING = "attempting"
    RETRYABLE_FAILURE = "retryable_failure"
    FATAL_FAILURE = "fatal_failure"
    SUCCESS = "success"


class ErrorClass(str, Enum):
    NONE = "none"
    SERVER = "server"  # 5xx
    NETWORK = "network"  # connection failure or timeout
    CLIENT = "client"  # 4xx
    FORMAT = "format"  # response not in the tier's grammar
    INTERNAL = "internal"  # bug on our side, never retried


RETRYABLE = frozenset({ErrorClass.SERVER, ErrorClass.NETWORK, ErrorClass.FORMAT})


def classify_error(error: BaseException | None) -> ErrorClass:
    if error is None:
        return ErrorClass.NONE
    if isinstance(error, LLMStatusError):
        return ErrorClass.CLIENT if error.is_client_error else ErrorClass.SERVER
    if isinstance(error, LLMConnectionError):
        return ErrorClass.NETWORK
    if isinstance(error, ExtractionError):
        return ErrorClass.FORMAT
    return ErrorClass.INTERNAL


def next_state(attempt: int, max_attempts: int, error_class: ErrorClass) -> AttemptState:
    """Decide what follows attempt number `attempt` (1-based) of a tier.

    >>> next_state(1, 3, ErrorClass.FORMAT)
    <AttemptState.RETRYABLE_FAILURE: 'retryable_failure'>
    >>> next_state(3, 3, ErrorClass.SERVER)
    <AttemptState.FATAL_FAILURE: 'fatal_failure'>
    """
    if error_class is ErrorClass.NONE:
        return AttemptState.SUCCESS
    if error_class in RETRYABLE and attempt < max_attempts:
        return AttemptState.RETRYABLE_FAILURE
    return AttemptState.FATAL_FAILURE


def retry_delay(attempt: int, error_class: ErrorClass, config: EscalationConfig) -> float:
    """Linear backoff; format failures wait longer than upstream failures."""
    if error_class is ErrorClass.FORMAT:
        return config.format_retry_delay * attempt
    return config.server_retry_delay * attempt


def excerpt(raw: str, limit: int = 300) -> str:
    if len(raw) <= limit:
        return raw
    return raw[:limit] + "..."


@dataclass(frozen=True)
class _Tier:
    number: int
    format: EditFormat
    max_attempts: int
    temperature: float


class _Run:
    """Per-run bookkeeping, so one EditEscalation can serve concurrent runs."""

    def __init__(self) -> None:
        self.last_raw = ""
        self.attempts = 0


class EditEscalation:
    """Runs the two-tier protocol against an LLM client."""

    def __init__(
        self,
        client: LLMClient,
        config: EscalationConfig = EscalationConfig(),
        metrics_hook: MetricsHook = NoOpMetricsHook(),
    ) -> None:
        self._client = client
        self._config = config
        self.metrics_hook = metrics_hook
        self._tiers = (
            _Tier(1, EditFormat.UNIFIED_DIFF, config.tier1_max_attempts, config.tier1_temperature),
            _Tier(2, EditFormat.SEARCH_REPLACE, config.tier2_max_attempts, config.tier2_temperature),
        )

    async def run(
        self,
        tier1_messages: list[Message],
        tier2_messages: list[Message],
    ) -> EditResult:
        """Produce a validated edit set.

        Raises:
            EditGenerationError: On a 4xx from the provider, or once both
                tiers are exhausted.
        """
        start = monotonic()
        try:
            result = await self._generate(tier1_messages, tier2_messages, _Run())
        finally:
            self.metrics_hook.record_latency(
                EDIT_GENERATION_DURATION, (monotonic() - start) * 1000
            )

        logger.info(
            "Edits generated: tier=%d, attempts=%d, no_changes=%s",
            result.tier,
            result.attempts,
            result.no_changes,
        )
        return result

    async def _generate(
        self,
        tier1_messages: list[Message],
        tier2_messages: list[Message],
        run: _Run,
    ) -> EditResult:
        unified, search_replace = self._tiers

        try:
            return await self._run_tier(unified, tier1_messages, run)
        except (ExtractionError, LLMError) as e:
            self._give_up_or_escalate(unified, e, run)
            self.metrics_hook.increment(EDIT_ESCALATIONS_TOTAL)
            logger.warning(
                "Unified diff tier exhausted after %d attempts (%s), "
                "falling back to search/replace",
                unified.max_attempts,
                e,
            )

        try:
            return await self._run_tier(search_replace, tier2_messages, run)
        except (ExtractionError, LLMError) as e:
            self._give_up_or_escalate(search_replace, e, run)
            self.metrics_hook.increment(
                EDIT_FAILURES_TOTAL, labels={"reason": "exhausted"}
            )
            logger.error("Edit generation failed after %d attempts: %s", run.attempts, e)
            raise EditGenerationError(
                "Failed to generate edits in either the unified diff "
                "or the search/replace format",
                raw_excerpt=excerpt(run.last_raw, self._config.excerpt_chars),
            ) from e

    def _give_up_or_escalate(self, tier: _Tier, error: Exception, run: _Run) -> None:
        """Turn a 4xx into the terminal error; let anything else escalate."""
        if classify_error(error) is not ErrorClass.CLIENT:
            return
        status_code = error.status_code  # type: ignore[attr-defined]
        self.metrics_hook.increment(
            EDIT_FAILURES_TOTAL, labels={"reason": "client_error"}
        )
        logger.error("Provider rejected tier %d request: %s", tier.number, error)
        raise EditGenerationError(
            f"LLM provider rejected the request (HTTP {status_code})",
            raw_excerpt=excerpt(run.last_raw, self._config.excerpt_chars),
            status_code=status_code,
        ) from error

    async def _run_tier(
        self, tier: _Tier, messages: list[Message], run: _Run
    ) -> EditResult:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(tier.max_attempts),
            wait=self._wait,
            retry=self._should_retry(tier),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                return await self._attempt(
                    tier, messages, attempt.retry_state.attempt_number, run
                )
        raise AssertionError("unreachable")  # pragma: no cover

    def _should_retry(self, tier: _Tier) -> Callable[[RetryCallState], bool]:
        def should_retry(retry_state: RetryCallState) -> bool:
            outcome = retry_state.outcome
            error = outcome.exception() if outcome is not None else None
            state = next_state(
                retry_state.attempt_number, tier.max_attempts, classify_error(error)
            )
            return state is AttemptState.RETRYABLE_FAILURE

        return should_retry

    def _wait(self, retry_state: RetryCallState) -> float:
        outcome = retry_state.outcome
        error = outcome.exception() if outcome is not None else None
        return retry_delay(retry_state.attempt_number, classify_error(error), self._config)

    async def _attempt(
        self, tier: _Tier, messages: list[Message], number: int, run: _Run
    ) -> EditResult:
        run.attempts += 1
        labels = {"tier": str(tier.number)}
        logger.debug(
            "Tier %d attempt %d/%d", tier.number, number, tier.max_attempts
        )
        try:
            response = await self._call(messages, tier.temperature)
            run.last_raw = response.text
            result = self._extract(tier, response.text, number)
        except Exception as e:
            error_class = classify_error(e)
            self.metrics_hook.increment(
                EDIT_ATTEMPTS_TOTAL, labels={**labels, "outcome": error_class.value}
            )
            if error_class is ErrorClass.FORMAT:
                logger.warning(
                    "Tier %d attempt %d returned unusable output: %s",
                    tier.number,
                    number,
                    e,
                )
            raise
        self.metrics_hook.increment(
            EDIT_ATTEMPTS_TOTAL, labels={**labels, "outcome": "success"}
        )
        return result

    async def _call(self, messages: list[Message], temperature: float) -> LLMResponse:
        try:
            return await asyncio.wait_for(
                self._client.complete(
                    messages=messages,
                    temperature=temperature,
                    max_tokens=self._config.max_tokens,
                ),
                timeout=self._config.call_timeout,
            )
        except asyncio.TimeoutError as e:
            raise LLMConnectionError(
                f"LLM call timed out after {self._config.call_timeout}s"
            ) from e

    def _extract(self, tier: _Tier, raw: str, number: int) -> EditResult:
        if tier.format is EditFormat.UNIFIED_DIFF:
            diffs = extract_unified_diff(raw)
            if self._config.verify_hunk_counts:
                for diff in diffs:
                    validate_diff(diff)
            return EditResult(
                format=tier.format,
                tier=tier.number,
                attempts=number,
                hunks=tuple(diffs),
            )

        parsed = extract_search_replace(raw)
        return EditResult(
            format=tier.format,
            tier=tier.number,
            attempts=number,
            blocks=parsed.blocks,
            explanation=parsed.explanation or None,
        )
