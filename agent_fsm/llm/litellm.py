"""LiteLLM model adapter supporting multiple providers."""

from __future__ import annotations

from typing import Any, Awaitable, Callable

from .adapter import ConversationItem, ModelResponse, ResponseOptions
from .openai import build_request, collect_stream, parse_completion


class LiteLLMAdapter:
    """Adapter routing through ``litellm.acompletion``.

    LiteLLM returns OpenAI-shaped responses, so message conversion and
    response parsing are shared with OpenAIAdapter. Extra keyword arguments
    (``api_base``, ``api_key``...) are sent with every request.

    Args:
        model: A LiteLLM model string such as ``"gemini/gemini-pro"``.
        acompletion: Replacement for ``litellm.acompletion``, mainly for tests.
    """

    def __init__(
        self,
        model: str = "gemini/gemini-pro",
        api_key: str | None = None,
        *,
        acompletion: Callable[..., Awaitable[Any]] | None = None,
        **config: Any,
    ):
        if acompletion is None:
            try:
                import litellm
            except ImportError:
                raise ImportError("Install litellm: pip install 'agent-fsm[litellm]'")
            acompletion = litellm.acompletion
        self.model = model
        self.config = config
        if api_key:
            self.config["api_key"] = api_key
        self._acompletion = acompletion

    def _request(self, items: list[ConversationItem], options: ResponseOptions) -> dict[str, Any]:
        kwargs = build_request(self.model, items, options)
        kwargs.update(self.config)
        return kwargs

    async def create_response(
        self, items: list[ConversationItem], options: ResponseOptions
    ) -> ModelResponse:
        response = await self._acompletion(**self._request(items, options))
        return parse_completion(response)

    async def create_streaming_response(
        self,
        items: list[ConversationItem],
        options: ResponseOptions,
        on_delta: Callable[[str], None],
    ) -> ModelResponse:
        stream = await self._acompletion(stream=True, **self._request(items, options))
        return await collect_stream(stream, on_delta)
