"""
Tests for the LiteLLM streaming chat.

The completion callable is replaced by a fake that yields chunk objects
shaped like LiteLLM's streaming deltas.
"""

import asyncio
from types import SimpleNamespace

import pytest

from agentgate.llm_client import Chat, ContentEvent, ModelStreamError, ToolCallRequestEvent


def chunk(content=None, tool_calls=None):
    delta = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(delta=delta)])


def tool_delta(index, id=None, name=None, arguments=None):
    return SimpleNamespace(index=index, id=id, function=SimpleNamespace(name=name, arguments=arguments))


class FakeCompletion:
    def __init__(self, *streams, error=None):
        self.streams = list(streams)
        self.error = error
        self.calls = []

    async def __call__(self, **params):
        self.calls.append(params)
        if self.error:
            raise self.error
        chunks = self.streams.pop(0)

        async def stream():
            for item in chunks:
                if isinstance(item, Exception):
                    raise item
                yield item
        return stream()


async def collect(chat, message, signal=None):
    return [event async for event in chat.send_message_stream(message, signal, "prompt-1")]


class TestChat:
    """Tests for Chat.send_message_stream."""

    @pytest.mark.asyncio
    async def test_text_stream(self):
        """Test that text deltas become content events and history entries."""
        completion = FakeCompletion([chunk("Hel"), chunk("lo"), SimpleNamespace(choices=[])])
        chat = Chat("gpt-4o", system_prompt="be brief", completion=completion)

        events = await collect(chat, "hi")

        assert events == [ContentEvent("Hel"), ContentEvent("lo")]
        params = completion.calls[0]
        assert params["model"] == "gpt-4o"
        assert params["stream"] is True
        assert "tools" not in params
        assert params["messages"] == [
            {"role": "system", "content": "be brief"},
            {"role": "user", "content": "hi"},
        ]
        assert chat.history[-1] == {"role": "assistant", "content": "Hello"}

    @pytest.mark.asyncio
    async def test_tool_call_fragments_assembled(self):
        """Test that tool-call fragments are joined by index after the stream."""
        completion = FakeCompletion([
            chunk(tool_calls=[tool_delta(0, id="call_a", name="read_file", arguments='{"file_')]),
            chunk(tool_calls=[tool_delta(1, id="call_b", name="list_directory", arguments="")]),
            chunk(tool_calls=[tool_delta(0, arguments='path": "a.txt"}')]),
        ])
        tools = [{"type": "function", "function": {"name": "read_file"}}]
        chat = Chat("gpt-4o", tools=tools, completion=completion)

        events = await collect(chat, "read a.txt")

        assert all(isinstance(e, ToolCallRequestEvent) for e in events)
        first, second = (e.request for e in events)
        assert (first.call_id, first.name, first.args) == ("call_a", "read_file", {"file_path": "a.txt"})
        assert (second.call_id, second.name, second.args) == ("call_b", "list_directory", {})
        assert first.prompt_id == "prompt-1"
        assert completion.calls[0]["tools"] == tools

        assistant = chat.history[-1]
        assert assistant["content"] is None
        assert [c["id"] for c in assistant["tool_calls"]] == ["call_a", "call_b"]
        assert assistant["tool_calls"][1]["function"]["arguments"] == "{}"

    @pytest.mark.asyncio
    async def test_bad_arguments_reported(self):
        """Test that invalid argument JSON is flagged on the request."""
        completion = FakeCompletion([chunk(tool_calls=[tool_delta(0, id="c", name="read_file", arguments="{oops")])])
        events = await collect(Chat("gpt-4o", completion=completion), "x")
        assert events[0].request.args == {}
        assert events[0].request.args_error

    @pytest.mark.asyncio
    async def test_tool_outputs_become_tool_messages(self):
        """Test that function_call_output parts are sent as tool messages."""
        completion = FakeCompletion([chunk("ok")])
        chat = Chat("gpt-4o", completion=completion)
        parts = [{"type": "function_call_output", "call_id": "call_a", "name": "read_file", "output": '{"x": 1}'}]

        await collect(chat, parts)

        assert completion.calls[0]["messages"][-1] == {
            "role": "tool", "tool_call_id": "call_a", "content": '{"x": 1}',
        }

    @pytest.mark.asyncio
    async def test_open_failure_raises_model_stream_error(self):
        """Test that a provider error while opening the stream is wrapped."""
        chat = Chat("gpt-4o", completion=FakeCompletion(error=RuntimeError("API connection failed")))
        with pytest.raises(ModelStreamError, match="API connection failed"):
            await collect(chat, "hi")

    @pytest.mark.asyncio
    async def test_mid_stream_failure_raises_model_stream_error(self):
        """Test that a provider error while reading is wrapped."""
        completion = FakeCompletion([chunk("partial"), ConnectionError("reset")])
        with pytest.raises(ModelStreamError, match="reset"):
            await collect(Chat("gpt-4o", completion=completion), "hi")

    @pytest.mark.asyncio
    async def test_cancelled_stream_stops(self):
        """Test that a set signal stops consuming the stream."""
        completion = FakeCompletion([chunk("never")])
        signal = asyncio.Event()
        signal.set()
        events = await collect(Chat("gpt-4o", completion=completion), "hi", signal)
        assert events == []
