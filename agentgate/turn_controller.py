"""
Non-interactive turn loop.

The controller sends the user's message to the model, streams text to stdout,
and runs every requested tool between PreToolUse and PostToolUse hooks. Tool
results become the next message, until the model stops asking for tools or
the session turn limit is reached. The Stop hook runs once at the end, however
the session ended.

Exit codes: 0 on completion (including hitting the turn limit), 1 when the
model call fails, 130 when the session is cancelled.
"""

import asyncio
import sys
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional, TextIO

from .hooks import HookExecutionContext, HooksManager
from .llm_client import Chat, ContentEvent, ToolCallRequestEvent
from .logger import logger
from .tools import (
    ToolCallRequest,
    ToolCallResponse,
    ToolRegistry,
    create_default_registry,
    execute_tool_call,
    function_response_part,
)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_CANCELLED = 130

MAX_TURNS_MESSAGE = (
    "\n Reached max session turns for this session. Increase the number of turns "
    "by specifying maxSessionTurns in settings.json."
)
CANCELLED_MESSAGE = "Operation cancelled."
STOP_COMPLETED = "Non-interactive session completed"
STOP_FAILED = "Non-interactive session ended with error"

ExecuteTool = Callable[[Any, ToolCallRequest, ToolRegistry, Optional[asyncio.Event]], Awaitable[ToolCallResponse]]


class TurnController:
    """
    Drives one non-interactive session to termination.

    Example:
        controller = TurnController(config, chat, hooks_manager, registry)
        exit_code = await controller.run("Summarize README.md")
    """

    def __init__(
        self,
        config,
        chat: Chat,
        hooks_manager: HooksManager,
        tool_registry: ToolRegistry,
        execute_tool: ExecuteTool = execute_tool_call,
        stdout: Optional[TextIO] = None,
        stderr: Optional[TextIO] = None,
        signal: Optional[asyncio.Event] = None,
    ):
        """
        Initialize the controller.

        Args:
            config: Session config (session_id, max_session_turns, working_dir)
            chat: Model streaming collaborator
            hooks_manager: Hook dispatcher
            tool_registry: Registry the tools are resolved from
            execute_tool: Tool execution collaborator
            stdout: Stream for model text (default: sys.stdout)
            stderr: Stream for diagnostics (default: sys.stderr)
            signal: Session cancellation event (created when omitted)
        """
        self.config = config
        self.chat = chat
        self.hooks_manager = hooks_manager
        self.tool_registry = tool_registry
        self.execute_tool = execute_tool
        self.stdout = stdout or sys.stdout
        self.stderr = stderr or sys.stderr
        self.signal = signal or asyncio.Event()
        self.turn_count = 0

    def cancel(self) -> None:
        """Signal cancellation to the model stream, tools and hooks."""
        self.signal.set()

    def hook_context(self) -> HookExecutionContext:
        return HookExecutionContext(
            session_id=self.config.session_id,
            transcript_path=self.hooks_manager.get_transcript_path(),
        )

    def _write(self, text: str) -> None:
        self.stdout.write(text)
        self.stdout.flush()

    def _error(self, text: str) -> None:
        print(text, file=self.stderr, flush=True)

    async def run(self, user_input: str, prompt_id: Optional[str] = None) -> int:
        """
        Run the session and return its exit code.

        Model failures end the session with exit code 1 after printing
        ``[API Error: ...]``. The Stop hook runs in every case and its own
        failures never change the exit code.
        """
        prompt_id = prompt_id or uuid.uuid4().hex
        context = self.hook_context()
        exit_code = EXIT_FAILURE
        try:
            exit_code = await self._run_turns(user_input, prompt_id, context)
        except Exception as e:
            logger.debug("[agent] Session failed", exc_info=True)
            self._error(f"[API Error: {e}]")
            exit_code = EXIT_FAILURE
        finally:
            reason = STOP_COMPLETED if exit_code == EXIT_SUCCESS else STOP_FAILED
            await self._run_stop(reason, context)
        return exit_code

    async def _run_turns(self, user_input: str, prompt_id: str, context: HookExecutionContext) -> int:
        message: Any = user_input
        max_turns = self.config.max_session_turns

        while True:
            self.turn_count += 1
            if 0 <= max_turns < self.turn_count:
                self._error(MAX_TURNS_MESSAGE)
                return EXIT_SUCCESS
            if self.signal.is_set():
                return self._cancelled()

            logger.debug(f"[agent] Turn {self.turn_count}")
            requests: List[ToolCallRequest] = []
            async for event in self.chat.send_message_stream(message, self.signal, prompt_id):
                if isinstance(event, ContentEvent):
                    self._write(event.text)
                elif isinstance(event, ToolCallRequestEvent):
                    requests.append(event.request)

            if self.signal.is_set():
                return self._cancelled()
            if not requests:
                self._write("\n")
                return EXIT_SUCCESS

            parts: List[Dict[str, Any]] = []
            for request in requests:
                if self.signal.is_set():
                    return self._cancelled()
                parts.extend(await self._dispatch_tool(request, context))
            message = parts

    async def _dispatch_tool(
        self,
        request: ToolCallRequest,
        context: HookExecutionContext,
    ) -> List[Dict[str, Any]]:
        """Run one tool call between its Pre and Post hooks and return its response parts."""
        decision = await self.hooks_manager.run_pre_tool_use(
            request.name, request.args, context, self.signal
        )
        if decision.should_block:
            logger.warning(f"[hooks] Tool '{request.name}' blocked: {decision.block_reason}")
            return [function_response_part(
                request.call_id,
                request.name,
                {"error": f"Tool blocked: {decision.block_reason}"},
            )]

        response = await self.execute_tool(self.config, request, self.tool_registry, self.signal)

        await self.hooks_manager.run_post_tool_use(
            request.name, request.args, tool_response_payload(response), context, self.signal
        )

        if response.error:
            self._error(f"Error executing tool {request.name}: {response.result_display or response.error}")
        return list(response.response_parts)

    async def _run_stop(self, reason: str, context: HookExecutionContext) -> None:
        try:
            await self.hooks_manager.run_stop(reason, context)
        except Exception as e:
            logger.warning(f"[hooks] Stop hooks failed: {e}")
            self._error(f"Error running Stop hooks: {e}")

    def _cancelled(self) -> int:
        self._error(CANCELLED_MESSAGE)
        return EXIT_CANCELLED


def tool_response_payload(response: ToolCallResponse) -> Dict[str, Any]:
    """The ``tool_response`` field sent to PostToolUse hooks."""
    if response.error:
        return {"error": response.error}
    if isinstance(response.result_display, str):
        return {"output": response.result_display}
    return {}


def create_controller(
    config,
    chat: Optional[Chat] = None,
    hooks_manager: Optional[HooksManager] = None,
    tool_registry: Optional[ToolRegistry] = None,
    system_prompt: Optional[str] = None,
    **kwargs,
) -> TurnController:
    """
    Build a TurnController, filling in default collaborators.

    Args:
        config: Session config
        chat: Model chat (default: LiteLLM chat for config.model)
        hooks_manager: Hook dispatcher (default: built from config.hooks)
        tool_registry: Tool registry (default: the built-in tools)
        system_prompt: System prompt for the default chat
        **kwargs: Passed to TurnController (stdout, stderr, signal, execute_tool)
    """
    tool_registry = tool_registry or create_default_registry()
    hooks_manager = hooks_manager or HooksManager.from_config(config)
    chat = chat or Chat(
        config.model,
        tools=tool_registry.get_function_declarations(),
        system_prompt=system_prompt,
    )
    return TurnController(config, chat, hooks_manager, tool_registry, **kwargs)


async def run_non_interactive(
    config,
    user_input: str,
    prompt_id: Optional[str] = None,
    **kwargs,
) -> int:
    """
    Run one non-interactive session.

    Keyword arguments are passed to create_controller.

    Returns:
        The process exit code
    """
    controller = create_controller(config, **kwargs)
    return await controller.run(user_input, prompt_id)
