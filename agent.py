"""
Agent facade.

Wires a Config to its collaborators (LiteLLM chat, tool registry, hooks
manager) and runs one non-interactive session wrapped in the SessionStart and
SessionEnd lifecycle hooks.
"""

import time
from typing import Optional

from agentgate.config import Config
from agentgate.hooks import HookTrigger, HooksManager
from agentgate.llm_client import Chat
from agentgate.logger import logger
from agentgate.tools import ToolRegistry
from agentgate.turn_controller import create_controller
from helper import get_api_key_for_model, setup_api_keys_for_litellm

SESSION_MODE = "non_interactive"

SYSTEM_PROMPT_DEFAULT = """You are a command-line assistant working inside the user's project directory.
Use the available tools to inspect and change files or run commands when the task needs it.
Tool calls may be blocked by the user's hooks; when that happens, explain what you wanted to do instead of retrying the same call.
Answer concisely."""


class Agent:
    """
    A non-interactive agent session.

    Example:
        agent = Agent(load_config())
        exit_code = await agent.run("List the Python files in this project")
    """

    def __init__(
        self,
        config: Config,
        system_prompt: Optional[str] = None,
        tool_registry: Optional[ToolRegistry] = None,
        hooks_manager: Optional[HooksManager] = None,
        chat: Optional[Chat] = None,
    ):
        """
        Initialize the agent.

        Args:
            config: Resolved session configuration
            system_prompt: Custom system prompt (default: SYSTEM_PROMPT_DEFAULT)
            tool_registry: Tool registry (default: the built-in tools)
            hooks_manager: Hook dispatcher (default: built from config.hooks)
            chat: Model chat (default: LiteLLM chat for config.model)
        """
        setup_api_keys_for_litellm()
        if chat is None:
            try:
                get_api_key_for_model(config.model)
            except ValueError as e:
                logger.warning(f"[agent] {e}")

        self.config = config
        self.controller = create_controller(
            config,
            chat=chat,
            hooks_manager=hooks_manager,
            tool_registry=tool_registry,
            system_prompt=system_prompt or SYSTEM_PROMPT_DEFAULT,
        )
        self.chat = self.controller.chat
        self.hooks_manager = self.controller.hooks_manager
        self.tool_registry = self.controller.tool_registry
        self.trigger = HookTrigger(self.hooks_manager, self.controller.hook_context())

    def cancel(self) -> None:
        """Cancel the running session (wired to SIGINT by main)."""
        logger.debug("[agent] Cancellation requested")
        self.controller.cancel()

    async def run(self, query: str, prompt_id: Optional[str] = None) -> int:
        """
        Run the session for ``query``.

        Returns:
            The process exit code reported by the turn controller
        """
        started = time.monotonic()
        await self._fire("SessionStart", self.trigger.session_start(SESSION_MODE, self.config.working_dir))

        exit_code = await self.controller.run(query, prompt_id)

        duration_ms = int((time.monotonic() - started) * 1000)
        await self._fire("SessionEnd", self.trigger.session_end(duration_ms, exit_code))
        return exit_code

    async def _fire(self, event: str, dispatch) -> None:
        # Lifecycle hooks are best-effort
        try:
            await dispatch
        except Exception as e:
            logger.warning(f"[hooks] {event} hooks failed: {e}")


def create_agent(config: Config, **kwargs) -> Agent:
    """
    Factory function to create an Agent instance.

    Args:
        config: Resolved session configuration
        **kwargs: Arguments to pass to the Agent constructor
    """
    return Agent(config, **kwargs)
