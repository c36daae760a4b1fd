"""
Tests for the Agent facade and the command-line entry point.
"""

import json
import os
import sys
from unittest.mock import AsyncMock, Mock, patch

import pytest

import helper
import main
from agent import Agent
from agentgate.hooks import HooksConfiguration, HooksManager, PreToolUseDecision
from agentgate.llm_client import ContentEvent
from agentgate.logger import logger

from conftest import FakeChat, posix_only


@pytest.fixture
def isolated(tmp_path, monkeypatch):
    """Run with an empty HOME and a fresh project directory as cwd."""
    home = tmp_path / "home"
    home.mkdir()
    project = tmp_path / "project"
    project.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("AGENTGATE_MODEL", raising=False)
    monkeypatch.chdir(project)
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield project
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate


def write_project_settings(project, data):
    settings_dir = project / ".agentgate"
    settings_dir.mkdir()
    (settings_dir / "settings.json").write_text(json.dumps(data))


class TestAgent:
    """Tests for session lifecycle glue."""

    @posix_only
    @pytest.mark.asyncio
    async def test_session_start_and_end_hooks(self, config, tmp_path, capsys):
        """Test that SessionStart and SessionEnd wrap the run."""
        start = tmp_path / "start.json"
        end = tmp_path / "end.json"
        config.hooks = HooksConfiguration.from_dict({
            "SessionStart": [{"hooks": [{"command": f"cat > '{start}'"}]}],
            "SessionEnd": [{"hooks": [{"command": f"cat > '{end}'"}]}],
        })
        agent = Agent(config, chat=FakeChat([ContentEvent("hi")]))

        assert await agent.run("hello") == 0

        assert capsys.readouterr().out == "hi\n"
        start_data = json.loads(start.read_text())
        assert start_data["mode"] == "non_interactive"
        assert start_data["working_directory"] == config.working_dir
        end_data = json.loads(end.read_text())
        assert end_data["exit_code"] == 0
        assert end_data["duration_ms"] >= 0
        assert end_data["session_id"] == "test-session-id"

    @pytest.mark.asyncio
    async def test_lifecycle_hook_failures_are_ignored(self, config, capsys):
        """Test that failing lifecycle dispatch does not change the exit code."""
        manager = Mock(spec=HooksManager)
        manager.run_hook = AsyncMock(side_effect=RuntimeError("hook runner down"))
        manager.run_pre_tool_use = AsyncMock(return_value=PreToolUseDecision(False))
        manager.run_post_tool_use = AsyncMock(return_value=[])
        manager.run_stop = AsyncMock(return_value=[])
        manager.get_transcript_path = Mock(return_value=None)
        agent = Agent(config, hooks_manager=manager, chat=FakeChat([ContentEvent("ok")]))

        assert await agent.run("hello") == 0
        assert manager.run_hook.await_count == 2

    def test_cancel_sets_session_signal(self, config):
        """Test that cancel reaches the controller's signal."""
        agent = Agent(config, chat=FakeChat())
        agent.cancel()
        assert agent.controller.signal.is_set()


class TestHelper:
    """Tests for provider key lookup."""

    @pytest.fixture(autouse=True)
    def no_keys(self, monkeypatch):
        monkeypatch.setattr(helper, "load_env", lambda: None)
        for name in ("OPENAI_API_KEY", "ANTHROPIC_API_KEY", "GOOGLE_API_KEY", "GEMINI_API_KEY"):
            monkeypatch.delenv(name, raising=False)

    def test_provider_by_prefix(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "a-key")
        monkeypatch.setenv("GEMINI_API_KEY", "g-key")
        assert helper.get_api_key_for_model("claude-sonnet") == ("anthropic", "a-key")
        assert helper.get_api_key_for_model("gemini/gemini-2.0-flash") == ("gemini", "g-key")

    def test_missing_key(self):
        """Test that the error names the variables that were checked."""
        with pytest.raises(ValueError, match="OPENAI_API_KEY"):
            helper.get_api_key_for_model("gpt-4.1-mini")

    def test_google_key_copied_for_litellm(self, monkeypatch):
        monkeypatch.setenv("GOOGLE_API_KEY", "g-key")
        helper.setup_api_keys_for_litellm()
        assert os.environ["GEMINI_API_KEY"] == "g-key"
        monkeypatch.delenv("GEMINI_API_KEY")


class TestMain:
    """Tests for main.py."""

    def test_hooks_list(self, isolated, capsys):
        """Test listing configured hooks."""
        write_project_settings(isolated, {
            "hooks": {"PreToolUse": [{"matcher": "write_file", "hooks": [{"command": "check.sh"}]}]},
        })
        assert main.main(["hooks", "list"]) == 0
        out = capsys.readouterr().out
        assert "PreToolUse:" in out
        assert "[write_file] check.sh" in out

    def test_hooks_list_empty(self, isolated, capsys):
        assert main.main(["hooks", "list"]) == 0
        assert "No hooks configured." in capsys.readouterr().out

    def test_invalid_settings(self, isolated, capsys):
        """Test that a broken settings file exits with status 1."""
        settings_dir = isolated / ".agentgate"
        settings_dir.mkdir()
        (settings_dir / "settings.json").write_text("{broken")
        assert main.main(["-p", "hello"]) == 1
        assert "Error:" in capsys.readouterr().err

    def test_runs_prompt(self, isolated):
        """Test that -p runs the agent and returns its exit code."""
        fake_agent = Mock(spec=Agent)
        fake_agent.run = AsyncMock(return_value=1)
        with patch("main.create_agent", return_value=fake_agent) as create:
            assert main.main(["-p", "hello", "--max-session-turns", "3", "--model", "m"]) == 1
        config = create.call_args.args[0]
        assert config.max_session_turns == 3
        assert config.model == "m"
        fake_agent.run.assert_awaited_once_with("hello")

    def test_missing_prompt(self, isolated, monkeypatch):
        """Test that running without a prompt is a usage error."""
        monkeypatch.setattr(sys, "stdin", Mock(isatty=Mock(return_value=True)))
        with pytest.raises(SystemExit) as exc:
            main.main([])
        assert exc.value.code == 2
