"""OpenAI-compatible model adapter (chat completions API)."""

from __future__ import annotations

from typing import Any, Callable

from .adapter import (
    ConversationItem,
    FunctionCall,
    FunctionCallOutput,
    MessageItem,
    ModelResponse,
    ResponseOptions,
)


def to_chat_messages(
    items: list[ConversationItem], instructions: str = ""
) -> list[dict[str, Any]]:
    """Convert conversation items to chat-completions messages.

    Consecutive function calls are grouped into one assistant message with
    ``tool_calls``; outputs become ``tool`` messages.
    """
    msgs: list[dict[str, Any]] = []
    if instructions:
        msgs.append({"role": "system", "content": instructions})

    for item in items:
        if isinstance(item, MessageItem):
            msgs.append({"role": item.role, "content": item.content})
        elif isinstance(item, FunctionCall):
            tool_call = {
                "id": item.call_id,
                "type": "function",
                "function": {"name": item.name, "arguments": item.arguments or "{}"},
            }
            last = msgs[-1] if msgs else None
            if last is not None and last["role"] == "assistant" and "tool_calls" in last:
                last["tool_calls"].append(tool_call)
            elif last is not None and last["role"] == "assistant" and not last.get("tool_calls"):
                # Text and calls from the same response share one message.
                last["tool_calls"] = [tool_call]
            else:
                msgs.append({"role": "assistant", "content": None, "tool_calls": [tool_call]})
        elif isinstance(item, FunctionCallOutput):
            msgs.append({"role": "tool", "tool_call_id": item.call_id, "content": item.output})
    return msgs


def build_request(
    model: str,
    items: list[ConversationItem],
    options: ResponseOptions,
) -> dict[str, Any]:
    kwargs: dict[str, Any] = {
        "model": model,
        "messages": to_chat_messages(items, options.instructions),
    }
    if options.tools:
        kwargs["tools"] = [t.to_openai_schema() for t in options.tools]
        kwargs["parallel_tool_calls"] = options.parallel_tool_calls
    if options.output_schema is not None:
        schema = options.output_schema
        json_schema: dict[str, Any] = {
            "name": schema.name,
            "schema": schema.schema,
            "strict": schema.strict,
        }
        if schema.description:
            json_schema["description"] = schema.description
        kwargs["response_format"] = {"type": "json_schema", "json_schema": json_schema}
    if options.reasoning_effort is not None:
        kwargs["reasoning_effort"] = options.reasoning_effort
    if options.temperature is not None:
        kwargs["temperature"] = options.temperature
    if options.max_tokens is not None:
        kwargs["max_tokens"] = options.max_tokens
    return kwargs


def _usage(usage: Any) -> dict[str, int]:
    if not usage:
        return {}
    return {
        "prompt_tokens": getattr(usage, "prompt_tokens", 0) or 0,
        "completion_tokens": getattr(usage, "completion_tokens", 0) or 0,
        "total_tokens": getattr(usage, "total_tokens", 0) or 0,
    }


def parse_completion(response: Any) -> ModelResponse:
    """Convert a chat-completions response object into a ModelResponse."""
    choice = response.choices[0]
    message = choice.message
    output: list[ConversationItem] = []
    if message.content:
        output.append(MessageItem(role="assistant", content=message.content))
    for tc in message.tool_calls or []:
        output.append(
            FunctionCall(
                call_id=tc.id,
                name=tc.function.name,
                arguments=tc.function.arguments or "{}",
            )
        )
    return ModelResponse(
        id=getattr(response, "id", None) or ModelResponse().id,
        output=output,
        finish_reason=choice.finish_reason,
        usage=_usage(getattr(response, "usage", None)),
    )


async def collect_stream(stream: Any, on_delta: Callable[[str], None]) -> ModelResponse:
    """Accumulate a streamed completion, calling ``on_delta`` for each text chunk."""
    response_id: str | None = None
    finish_reason: str | None = None
    usage: dict[str, int] = {}
    text: list[str] = []
    calls: dict[int, dict[str, Any]] = {}

    async for chunk in stream:
        response_id = response_id or getattr(chunk, "id", None)
        if getattr(chunk, "usage", None):
            usage = _usage(chunk.usage)
        if not chunk.choices:
            continue
        choice = chunk.choices[0]
        if choice.finish_reason:
            finish_reason = choice.finish_reason
        delta = choice.delta
        if delta is None:
            continue
        if delta.content:
            text.append(delta.content)
            on_delta(delta.content)
        for tc in getattr(delta, "tool_calls", None) or []:
            entry = calls.setdefault(tc.index, {"id": "", "name": "", "arguments": ""})
            if tc.id:
                entry["id"] = tc.id
            if tc.function is not None:
                if tc.function.name:
                    entry["name"] += tc.function.name
                if tc.function.arguments:
                    entry["arguments"] += tc.function.arguments

    output: list[ConversationItem] = []
    if text:
        output.append(MessageItem(role="assistant", content="".join(text)))
    for index in sorted(calls):
        entry = calls[index]
        output.append(
            FunctionCall(
                call_id=entry["id"], name=entry["name"], arguments=entry["arguments"] or "{}"
            )
        )
    response = ModelResponse(output=output, finish_reason=finish_reason, usage=usage)
    if response_id:
        response.id = response_id
    return response


class OpenAIAdapter:
    """Adapter for the OpenAI chat completions API.

    Pass ``client`` to reuse an existing ``openai.AsyncOpenAI`` (or a test
    double); otherwise one is built from ``api_key`` and any extra keyword
    arguments (``base_url``, ``organization``...). Without an api key the SDK
    reads ``OPENAI_API_KEY``.
    """

    def __init__(
        self,
        model: str = "gpt-4o",
        api_key: str | None = None,
        *,
        client: Any = None,
        **kwargs: Any,
    ):
        self.model = model
        if client is None:
            try:
                import openai
            except ImportError:
                raise ImportError("Install openai: pip install 'agent-fsm[openai]'")
            client = openai.AsyncOpenAI(api_key=api_key, **kwargs)
        self._client = client

    async def create_response(
        self, items: list[ConversationItem], options: ResponseOptions
    ) -> ModelResponse:
        kwargs = build_request(self.model, items, options)
        response = await self._client.chat.completions.create(**kwargs)
        return parse_completion(response)

    async def create_streaming_response(
        self,
        items: list[ConversationItem],
        options: ResponseOptions,
        on_delta: Callable[[str], None],
    ) -> ModelResponse:
        kwargs = build_request(self.model, items, options)
        stream = await self._client.chat.completions.create(stream=True, **kwargs)
        return await collect_stream(stream, on_delta)
