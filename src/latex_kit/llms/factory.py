# src/latex_kit/llms/factory.py

import logging
from collections.abc import Callable

from latex_kit.observability.base import MetricsHook, NoOpMetricsHook

from .base import LLMClient
from .config import LLMConfig

logger = logging.getLogger(__name__)


def _openai() -> Callable[..., LLMClient]:
    from .openai import OpenAILLMClient

    return OpenAILLMClient


def _anthropic() -> Callable[..., LLMClient]:
    from .anthropic import AnthropicLLMClient

    return AnthropicLLMClient


# Provider SDKs are imported only when their client is requested
_PROVIDERS: dict[str, Callable[[], Callable[..., LLMClient]]] = {
    "openai": _openai,
    "anthropic": _anthropic,
}


def create_llm_client(
    config: LLMConfig,
    metrics_hook: MetricsHook = NoOpMetricsHook(),
) -> LLMClient:
    """Build the client for `config.provider`.

    Raises:
        ValueError: If provider is unknown.

    Example:
        >>> config = LLMConfig(provider="anthropic", model="claude-sonnet-4-20250514")
        >>> workflow = EditWorkflow(create_llm_client(config))
    """
    try:
        client_class = _PROVIDERS[config.provider]()
    except KeyError:
        raise ValueError(f"Unknown LLM provider: {config.provider}") from None

    logger.debug("Creating %s client for model %s", config.provider, config.model)
    return client_class(
        api_key=config.api_key,
        model=config.model,
        timeout=config.timeout,
        max_retries=config.max_retries,
        metrics_hook=metrics_hook,
    )
