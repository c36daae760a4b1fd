"""
Pytest configuration and fixtures.
"""

import io
import sys
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, Mock

import pytest

from agentgate.config import Config
from agentgate.hooks import (
    HookExecutionContext,
    HookExecutor,
    HooksConfiguration,
    HooksManager,
    PreToolUseDecision,
)
from agentgate.tools import ToolCallRequest

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="hook commands run through /bin/sh")


class FakeChat:
    """
    Scripted stand-in for agentgate.llm_client.Chat.

    Each turn is a list of events to yield, or an exception to raise before
    the first event.
    """

    def __init__(self, *turns):
        self.turns = list(turns)
        self.calls: List[Dict[str, Any]] = []

    async def send_message_stream(self, message, signal=None, prompt_id=None):
        self.calls.append({"message": message, "signal": signal, "prompt_id": prompt_id})
        turn = self.turns.pop(0)
        if isinstance(turn, BaseException):
            raise turn
        for event in turn:
            yield event


def hooks_table(event: str, command: str, matcher: Optional[str] = None, timeout: Optional[int] = None) -> HooksConfiguration:
    """One-matcher, one-hook configuration."""
    hook = {"type": "command", "command": command}
    if timeout is not None:
        hook["timeout"] = timeout
    entry = {"hooks": [hook]}
    if matcher is not None:
        entry["matcher"] = matcher
    return HooksConfiguration.from_dict({event: [entry]})


@pytest.fixture
def hook_context() -> HookExecutionContext:
    return HookExecutionContext(session_id="test-session-id", transcript_path="/tmp/transcript.json")


@pytest.fixture
def executor() -> HookExecutor:
    """Executor with a short kill grace period so timeout tests stay fast."""
    return HookExecutor(kill_grace_period=0.5)


@pytest.fixture
def config(tmp_path) -> Config:
    return Config(session_id="test-session-id", max_session_turns=10, working_dir=str(tmp_path))


@pytest.fixture
def mock_hooks_manager() -> Mock:
    manager = Mock(spec=HooksManager)
    manager.run_pre_tool_use = AsyncMock(return_value=PreToolUseDecision(should_block=False))
    manager.run_post_tool_use = AsyncMock(return_value=[])
    manager.run_stop = AsyncMock(return_value=[])
    manager.get_transcript_path = Mock(return_value="/tmp/transcript.json")
    return manager


@pytest.fixture
def stdout() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def stderr() -> io.StringIO:
    return io.StringIO()


def tool_request(name: str = "read_file", call_id: str = "call-1", **args) -> ToolCallRequest:
    return ToolCallRequest(call_id=call_id, name=name, args=args, prompt_id="prompt-1")
