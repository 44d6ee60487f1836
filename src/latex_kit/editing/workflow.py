# src/latex_kit/editing/workflow.py

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass

from latex_kit.llms.base import LLMClient, Message, Role
from latex_kit.llms.errors import LLMError
from latex_kit.observability.base import MetricsHook, NoOpMetricsHook
from latex_kit.parsers.latex_parser import LatexParser
from latex_kit.parsers.models import ParsedDocument
from latex_kit.prompts import PromptsLibrary

from .config import EscalationConfig
from .escalation import EditEscalation
from .intent import EditIntent, resolve
from .patching import PatchResult, apply_result
from .types import EditFormat, EditResult

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "\n... (content truncated)"
EXPLAIN_EXCERPT_CHARS = 500

_SYSTEM_PROMPTS = {
    EditFormat.UNIFIED_DIFF: "unified_diff",
    EditFormat.SEARCH_REPLACE: "search_replace",
}


@dataclass(frozen=True)
class EditOutcome:
    """Everything one edit request produced. Persisting it is up to the caller."""

    document: ParsedDocument
    explanation: str
    intent: EditIntent
    result: EditResult
    patch: PatchResult

    @property
    def content(self) -> str:
        return self.patch.content


class EditWorkflow:
    """One edit request, from instruction to patched source.

    Stateless between calls: every method gets the full source snapshot.
    """

    def __init__(
        self,
        client: LLMClient,
        prompts: PromptsLibrary | None = None,
        config: EscalationConfig = EscalationConfig(),
        metrics_hook: MetricsHook = NoOpMetricsHook(),
    ) -> None:
        self._client = client
        self._prompts = prompts or PromptsLibrary.default()
        self._config = config
        self.metrics_hook = metrics_hook
        self._parser = LatexParser(metrics_hook=metrics_hook)
        self._escalation = EditEscalation(client, config, metrics_hook)

    def build_messages(
        self,
        edit_format: EditFormat,
        source: str,
        instruction: str,
        file_name: str = "main.tex",
        history: Sequence[Message] = (),
    ) -> list[Message]:
        system = self._prompts.get(_SYSTEM_PROMPTS[edit_format]).render()
        user = self._prompts.get("edit_request").render(
            instruction=instruction,
            file_name=file_name,
            file_content=self._truncate(source),
        )
        return [
            Message(role=Role.SYSTEM, content=system),
            *history,
            Message(role=Role.USER, content=user),
        ]

    async def generate_edits(
        self,
        source: str,
        instruction: str,
        file_name: str = "main.tex",
        history: Sequence[Message] = (),
    ) -> EditResult:
        """Run the escalation for one instruction.

        Raises:
            EditGenerationError: See `EditEscalation.run`.
        """
        return await self._escalation.run(
            self.build_messages(EditFormat.UNIFIED_DIFF, source, instruction, file_name, history),
            self.build_messages(EditFormat.SEARCH_REPLACE, source, instruction, file_name, history),
        )

    async def explain(
        self,
        source: str,
        instruction: str,
        history: Sequence[Message] = (),
    ) -> str:
        system = self._prompts.get("explain").render(
            file_excerpt=source[:EXPLAIN_EXCERPT_CHARS]
        )
        messages = [
            Message(role=Role.SYSTEM, content=system),
            *history,
            Message(role=Role.USER, content=instruction),
        ]
        try:
            response = await asyncio.wait_for(
                self._client.complete(
                    messages=messages,
                    temperature=self._config.explain_temperature,
                    max_tokens=self._config.max_tokens,
                ),
                timeout=self._config.call_timeout,
            )
        except asyncio.TimeoutError as e:
            raise LLMError(
                f"Explanation timed out after {self._config.call_timeout}s"
            ) from e
        return response.text.strip()

    async def run(
        self,
        source: str,
        instruction: str,
        file_name: str = "main.tex",
        history: Sequence[Message] = (),
    ) -> EditOutcome:
        """Explain, generate and apply an edit.

        The explanation and edit requests run concurrently on the same
        snapshot. A failed explanation only degrades intent resolution;
        a failed edit generation raises and cancels the explanation.
        """
        document = self._parser.parse(source)
        explain_task = asyncio.create_task(
            self._explain_quietly(source, instruction, history)
        )
        try:
            result = await self.generate_edits(source, instruction, file_name, history)
        except BaseException:
            explain_task.cancel()
            raise
        explanation = await explain_task

        intent = resolve(
            document.root,
            instruction,
            explanation or instruction,
            metrics_hook=self.metrics_hook,
        )
        patch = apply_result(source, result, self.metrics_hook)
        if not patch.ok:
            logger.warning(
                "%d of %d edits could not be applied",
                len(patch.failures),
                patch.applied + len(patch.failures),
            )

        logger.info(
            "Edit workflow finished: file=%s, tier=%d, applied=%d, target=%r",
            file_name,
            result.tier,
            patch.applied,
            intent.target,
        )
        return EditOutcome(document, explanation, intent, result, patch)

    async def _explain_quietly(
        self, source: str, instruction: str, history: Sequence[Message]
    ) -> str:
        try:
            return await self.explain(source, instruction, history)
        except LLMError as e:
            logger.warning("Explanation request failed, continuing without it: %s", e)
            return ""

    def _truncate(self, source: str) -> str:
        limit = self._config.max_context_chars
        if len(source) <= limit:
            return source
        return source[:limit] + TRUNCATION_MARKER
