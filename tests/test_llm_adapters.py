"""Tests for the OpenAI and LiteLLM adapters using fake clients."""

import json
from types import SimpleNamespace

import pytest
from pydantic import BaseModel

from agent_fsm.agent import Agent
from agent_fsm.llm.adapter import (
    FunctionCall,
    FunctionCallOutput,
    MessageItem,
    ModelAdapter,
    ResponseOptions,
)
from agent_fsm.llm.litellm import LiteLLMAdapter
from agent_fsm.llm.openai import OpenAIAdapter, build_request, to_chat_messages
from agent_fsm.runner import Runner


def completion(content=None, tool_calls=None, finish_reason="stop"):
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(
        id="chatcmpl-1",
        choices=[SimpleNamespace(message=message, finish_reason=finish_reason)],
        usage=SimpleNamespace(prompt_tokens=10, completion_tokens=5, total_tokens=15),
    )


def tool_call(call_id, name, arguments):
    return SimpleNamespace(
        id=call_id, type="function", function=SimpleNamespace(name=name, arguments=arguments)
    )


def chunk(content=None, tool_calls=None, finish_reason=None):
    delta = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(
        id="chatcmpl-s",
        usage=None,
        choices=[SimpleNamespace(delta=delta, finish_reason=finish_reason)],
    )


def tool_delta(index, call_id=None, name=None, arguments=None):
    return SimpleNamespace(
        index=index, id=call_id, function=SimpleNamespace(name=name, arguments=arguments)
    )


class FakeStream:
    def __init__(self, chunks):
        self._chunks = list(chunks)

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self._chunks:
            raise StopAsyncIteration
        return self._chunks.pop(0)


class FakeCompletions:
    def __init__(self, results):
        self._results = list(results)
        self.requests = []

    async def create(self, **kwargs):
        self.requests.append(kwargs)
        return self._results.pop(0)


class FakeClient:
    def __init__(self, *results):
        self.chat = SimpleNamespace(completions=FakeCompletions(results))


def lookup(key: str) -> str:
    """Look up a key."""
    return f"value of {key}"


class Answer(BaseModel):
    value: str


class TestMessageConversion:
    def test_instructions_become_system_message(self):
        msgs = to_chat_messages([MessageItem(role="user", content="hi")], "Be nice")
        assert msgs == [
            {"role": "system", "content": "Be nice"},
            {"role": "user", "content": "hi"},
        ]

    def test_calls_grouped_and_outputs_as_tool_messages(self):
        items = [
            MessageItem(role="user", content="go"),
            FunctionCall(call_id="a", name="lookup", arguments='{"key": "x"}'),
            FunctionCall(call_id="b", name="lookup", arguments='{"key": "y"}'),
            FunctionCallOutput(call_id="a", output="1"),
            FunctionCallOutput(call_id="b", output="2"),
        ]
        msgs = to_chat_messages(items)
        assert msgs[1]["role"] == "assistant"
        assert [tc["id"] for tc in msgs[1]["tool_calls"]] == ["a", "b"]
        assert msgs[2] == {"role": "tool", "tool_call_id": "a", "content": "1"}
        assert msgs[3] == {"role": "tool", "tool_call_id": "b", "content": "2"}

    def test_text_and_calls_share_assistant_message(self):
        items = [
            MessageItem(role="assistant", content="Let me check."),
            FunctionCall(call_id="a", name="lookup"),
        ]
        msgs = to_chat_messages(items)
        assert len(msgs) == 1
        assert msgs[0]["content"] == "Let me check."
        assert msgs[0]["tool_calls"][0]["function"]["arguments"] == "{}"

    def test_request_options(self):
        agent = Agent(
            object(), tools=[lookup], output_type=Answer, reasoning_effort="low", max_tokens=256
        )
        kwargs = build_request("gpt-test", [MessageItem(role="user", content="q")], agent.options())
        assert kwargs["model"] == "gpt-test"
        assert kwargs["tools"][0]["function"]["name"] == "lookup"
        assert kwargs["parallel_tool_calls"] is True
        assert kwargs["response_format"]["type"] == "json_schema"
        assert kwargs["response_format"]["json_schema"]["name"] == "Answer"
        assert kwargs["reasoning_effort"] == "low"
        assert kwargs["max_tokens"] == 256
        assert "temperature" not in kwargs

    def test_no_tools_no_tool_keys(self):
        kwargs = build_request("m", [], ResponseOptions(instructions="x"))
        assert "tools" not in kwargs
        assert "parallel_tool_calls" not in kwargs


class TestOpenAIAdapter:
    def test_satisfies_protocol(self):
        assert isinstance(OpenAIAdapter(client=FakeClient()), ModelAdapter)

    @pytest.mark.asyncio
    async def test_text_response(self):
        client = FakeClient(completion(content="Hello"))
        adapter = OpenAIAdapter(model="gpt-test", client=client)
        response = await adapter.create_response(
            [MessageItem(role="user", content="hi")], ResponseOptions()
        )
        assert response.text == "Hello"
        assert response.id == "chatcmpl-1"
        assert response.usage["total_tokens"] == 15
        assert client.chat.completions.requests[0]["model"] == "gpt-test"

    @pytest.mark.asyncio
    async def test_tool_loop_through_runner(self):
        client = FakeClient(
            completion(tool_calls=[tool_call("call_1", "lookup", '{"key": "k"}')],
                       finish_reason="tool_calls"),
            completion(content="The value of k."),
        )
        agent = Agent(OpenAIAdapter(client=client), tools=[lookup])
        result = await Runner().run(agent, "find k")

        assert result.text == "The value of k."
        second = client.chat.completions.requests[1]["messages"]
        assert second[-1] == {"role": "tool", "tool_call_id": "call_1", "content": "value of k"}
        assert second[-2]["tool_calls"][0]["function"]["name"] == "lookup"

    @pytest.mark.asyncio
    async def test_streaming_accumulates_text_and_calls(self):
        stream = FakeStream([
            chunk(content="Hel"),
            chunk(content="lo"),
            chunk(tool_calls=[tool_delta(0, "call_1", "look", '{"ke')]),
            chunk(tool_calls=[tool_delta(0, None, "up", 'y": "a"}')]),
            chunk(finish_reason="tool_calls"),
        ])
        client = FakeClient(stream)
        deltas = []
        response = await OpenAIAdapter(client=client).create_streaming_response(
            [MessageItem(role="user", content="hi")], ResponseOptions(), deltas.append
        )
        assert deltas == ["Hel", "lo"]
        assert response.text == "Hello"
        assert response.function_calls[0].name == "lookup"
        assert json.loads(response.function_calls[0].arguments) == {"key": "a"}
        assert response.finish_reason == "tool_calls"
        assert client.chat.completions.requests[0]["stream"] is True


class TestLiteLLMAdapter:
    @pytest.mark.asyncio
    async def test_config_sent_with_request(self):
        requests = []

        async def fake_acompletion(**kwargs):
            requests.append(kwargs)
            return completion(content="ok")

        adapter = LiteLLMAdapter(
            "gemini/gemini-pro", api_key="k", acompletion=fake_acompletion, api_base="http://x"
        )
        response = await adapter.create_response(
            [MessageItem(role="user", content="hi")], ResponseOptions()
        )
        assert response.text == "ok"
        assert requests[0]["model"] == "gemini/gemini-pro"
        assert requests[0]["api_key"] == "k"
        assert requests[0]["api_base"] == "http://x"

    @pytest.mark.asyncio
    async def test_streaming(self):
        async def fake_acompletion(**kwargs):
            assert kwargs["stream"] is True
            return FakeStream([chunk(content="a"), chunk(content="b", finish_reason="stop")])

        deltas = []
        response = await LiteLLMAdapter(acompletion=fake_acompletion).create_streaming_response(
            [], ResponseOptions(), deltas.append
        )
        assert deltas == ["a", "b"]
        assert response.text == "ab"
