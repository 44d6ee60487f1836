# tests/unit/editing/test_escalation.py

import pytest

from latex_kit.editing.config import EscalationConfig
from latex_kit.editing.errors import DiffFormatError, EditGenerationError
from latex_kit.editing.escalation import (
    AttemptState,
    EditEscalation,
    ErrorClass,
    classify_error,
    excerpt,
    next_state,
    retry_delay,
)
from latex_kit.editing.types import EditFormat
from latex_kit.llms.base import Message, Role
from latex_kit.llms.errors import LLMConnectionError, LLMStatusError
from latex_kit.observability import InMemoryMetricsHook


DIFF_RESPONSE = """```diff
--- a/main.tex
+++ b/main.tex
@@ -1,1 +1,1 @@
-Old
+New
```"""

BAD_COUNT_RESPONSE = DIFF_RESPONSE.replace("@@ -1,1 +1,1 @@", "@@ -1,2 +1,1 @@")

SR_RESPONSE = '{"explanation": "Renamed", "search_replace_blocks": [{"search": "Old", "replace": "New"}]}'

TIER1 = [Message(role=Role.SYSTEM, content="diff"), Message(role=Role.USER, content="go")]
TIER2 = [Message(role=Role.SYSTEM, content="json"), Message(role=Role.USER, content="go")]


class TestNextState:
    @pytest.mark.parametrize(
        "attempt, max_attempts, error_class, expected",
        [
            (1, 3, ErrorClass.NONE, AttemptState.SUCCESS),
            (3, 3, ErrorClass.NONE, AttemptState.SUCCESS),
            (1, 3, ErrorClass.SERVER, AttemptState.RETRYABLE_FAILURE),
            (2, 3, ErrorClass.NETWORK, AttemptState.RETRYABLE_FAILURE),
            (2, 3, ErrorClass.FORMAT, AttemptState.RETRYABLE_FAILURE),
            (3, 3, ErrorClass.FORMAT, AttemptState.FATAL_FAILURE),
            (1, 3, ErrorClass.CLIENT, AttemptState.FATAL_FAILURE),
            (1, 3, ErrorClass.INTERNAL, AttemptState.FATAL_FAILURE),
            (1, 1, ErrorClass.SERVER, AttemptState.FATAL_FAILURE),
        ],
    )
    def test_decision_table(
        self,
        attempt: int,
        max_attempts: int,
        error_class: ErrorClass,
        expected: AttemptState,
    ) -> None:
        assert next_state(attempt, max_attempts, error_class) is expected


class TestClassifyError:
    def test_classes(self) -> None:
        assert classify_error(None) is ErrorClass.NONE
        assert classify_error(LLMStatusError(503)) is ErrorClass.SERVER
        assert classify_error(LLMStatusError(429)) is ErrorClass.CLIENT
        assert classify_error(LLMConnectionError("reset")) is ErrorClass.NETWORK
        assert classify_error(DiffFormatError("bad")) is ErrorClass.FORMAT
        assert classify_error(KeyError("bug")) is ErrorClass.INTERNAL


class TestRetryDelay:
    def test_linear_and_longer_for_format(self) -> None:
        config = EscalationConfig()

        assert retry_delay(1, ErrorClass.SERVER, config) == 1.0
        assert retry_delay(2, ErrorClass.NETWORK, config) == 2.0
        assert retry_delay(2, ErrorClass.FORMAT, config) == 3.0

    def test_config_validation(self) -> None:
        with pytest.raises(ValueError):
            EscalationConfig(tier1_max_attempts=0)
        with pytest.raises(ValueError):
            EscalationConfig(format_retry_delay=-1.0)


class TestExcerpt:
    def test_truncates_long_text(self) -> None:
        assert excerpt("x" * 400) == "x" * 300 + "..."
        assert excerpt("short") == "short"


class TestEditEscalation:
    @pytest.mark.asyncio
    async def test_tier1_first_attempt(
        self, scripted_client, fast_config: EscalationConfig
    ) -> None:
        client = scripted_client(DIFF_RESPONSE)

        result = await EditEscalation(client, fast_config).run(TIER1, TIER2)

        assert result.format is EditFormat.UNIFIED_DIFF
        assert (result.tier, result.attempts) == (1, 1)
        assert len(result.hunks) == 1
        assert client.calls[0]["messages"] == TIER1
        assert client.calls[0]["temperature"] == 0.1
        assert client.calls[0]["max_tokens"] == 3000

    @pytest.mark.asyncio
    async def test_no_changes_is_success(
        self, scripted_client, fast_config: EscalationConfig
    ) -> None:
        client = scripted_client("```diff\n```")

        result = await EditEscalation(client, fast_config).run(TIER1, TIER2)

        assert result.no_changes
        assert len(client.calls) == 1

    @pytest.mark.asyncio
    async def test_server_error_retried(
        self, scripted_client, fast_config: EscalationConfig
    ) -> None:
        client = scripted_client(LLMStatusError(502), DIFF_RESPONSE)

        result = await EditEscalation(client, fast_config).run(TIER1, TIER2)

        assert (result.tier, result.attempts) == (1, 2)

    @pytest.mark.asyncio
    async def test_tier1_exhausted_then_tier2_succeeds(
        self, scripted_client, fast_config: EscalationConfig
    ) -> None:
        client = scripted_client("no diff", "still none", "nope", SR_RESPONSE)
        metrics = InMemoryMetricsHook()

        result = await EditEscalation(client, fast_config, metrics).run(TIER1, TIER2)

        assert result.format is EditFormat.SEARCH_REPLACE
        assert (result.tier, result.attempts) == (2, 1)
        assert result.explanation == "Renamed"
        assert [(b.search, b.replace) for b in result.blocks] == [("Old", "New")]
        assert [c["temperature"] for c in client.calls] == [0.1, 0.1, 0.1, 0.3]
        assert client.calls[3]["messages"] == TIER2
        assert metrics.count("edit_escalations_total") == 1
        assert metrics.count("edit_attempts_total", tier="1", outcome="format") == 3
        assert metrics.count("edit_attempts_total", tier="2", outcome="success") == 1

    @pytest.mark.asyncio
    async def test_hunk_count_mismatch_is_format_failure(
        self, scripted_client, fast_config: EscalationConfig
    ) -> None:
        client = scripted_client(BAD_COUNT_RESPONSE, DIFF_RESPONSE)

        result = await EditEscalation(client, fast_config).run(TIER1, TIER2)

        assert result.attempts == 2

    @pytest.mark.asyncio
    async def test_hunk_counts_not_verified_when_disabled(self, scripted_client) -> None:
        config = EscalationConfig(
            server_retry_delay=0.0, format_retry_delay=0.0, verify_hunk_counts=False
        )
        client = scripted_client(BAD_COUNT_RESPONSE)

        result = await EditEscalation(client, config).run(TIER1, TIER2)

        assert result.attempts == 1

    @pytest.mark.asyncio
    async def test_client_error_aborts_immediately(
        self, scripted_client, fast_config: EscalationConfig
    ) -> None:
        client = scripted_client(LLMStatusError(400, "bad request"), DIFF_RESPONSE)

        with pytest.raises(EditGenerationError) as exc_info:
            await EditEscalation(client, fast_config).run(TIER1, TIER2)

        assert exc_info.value.status_code == 400
        assert len(client.calls) == 1

    @pytest.mark.asyncio
    async def test_client_error_in_tier2_aborts(
        self, scripted_client, fast_config: EscalationConfig
    ) -> None:
        client = scripted_client("x", "y", "z", LLMStatusError(401), SR_RESPONSE)

        with pytest.raises(EditGenerationError) as exc_info:
            await EditEscalation(client, fast_config).run(TIER1, TIER2)

        assert exc_info.value.status_code == 401
        assert len(client.calls) == 4

    @pytest.mark.asyncio
    async def test_both_tiers_exhausted(
        self, scripted_client, fast_config: EscalationConfig
    ) -> None:
        long_garbage = "g" * 400
        client = scripted_client(
            "a", LLMConnectionError("reset"), "c", "{broken", long_garbage
        )
        metrics = InMemoryMetricsHook()

        with pytest.raises(EditGenerationError) as exc_info:
            await EditEscalation(client, fast_config, metrics).run(TIER1, TIER2)

        error = exc_info.value
        assert error.status_code is None
        assert error.raw_excerpt == "g" * 300 + "..."
        assert error.to_dict()["raw_response"] == error.raw_excerpt
        assert len(client.calls) == 5
        assert metrics.count("edit_failures_total", reason="exhausted") == 1

    @pytest.mark.asyncio
    async def test_timeout_counts_as_network_failure(self, scripted_client) -> None:
        config = EscalationConfig(
            server_retry_delay=0.0, format_retry_delay=0.0, call_timeout=0.05
        )
        client = scripted_client(1.0, DIFF_RESPONSE, DIFF_RESPONSE)
        metrics = InMemoryMetricsHook()

        result = await EditEscalation(client, config, metrics).run(TIER1, TIER2)

        assert result.attempts == 2
        assert metrics.count("edit_attempts_total", outcome="network") == 1

    @pytest.mark.asyncio
    async def test_internal_errors_propagate(
        self, scripted_client, fast_config: EscalationConfig
    ) -> None:
        client = scripted_client(RuntimeError("bug"), DIFF_RESPONSE)

        with pytest.raises(RuntimeError, match="bug"):
            await EditEscalation(client, fast_config).run(TIER1, TIER2)

        assert len(client.calls) == 1
