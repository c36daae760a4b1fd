"""
Hooks Manager: dispatches events to configured command hooks.

The manager owns the static hook configuration, builds the envelope for each
event, resolves the matching hooks and runs them concurrently. Individual hook
failures never propagate; they only show up as classified results. On top of
the generic ``run_hook`` it implements the PreToolUse (block/allow),
PostToolUse (observe) and Stop (session end) policies.
"""

import asyncio
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .executor import HookExecutor
from .matcher import find_matching_hooks
from .types import (
    DEFAULT_AGENT_TYPE,
    HookEventName,
    HookExecutionContext,
    HookExecutionOutcome,
    HookExecutionResult,
    HookInput,
    HooksConfiguration,
)
from ..logger import logger

DEFAULT_BLOCK_REASON = "Hook blocked execution"
TRANSCRIPT_FILENAME = "transcript.json"


@dataclass(frozen=True)
class PreToolUseDecision:
    """
    Whether a pending tool call may run.

    Attributes:
        should_block: True if any PreToolUse hook vetoed the call
        block_reason: Reason reported by the first blocking hook
        results: Every PreToolUse result, in match order
    """
    should_block: bool
    block_reason: Optional[str] = None
    results: Tuple[HookExecutionResult, ...] = ()


class HooksManager:
    """
    Dispatches hook events for one session.

    Example:
        manager = HooksManager(HooksConfiguration.from_dict(settings["hooks"]))
        context = HookExecutionContext(session_id, manager.get_transcript_path())

        decision = await manager.run_pre_tool_use("run_shell_command", args, context, signal)
        if decision.should_block:
            print(decision.block_reason)
    """

    def __init__(
        self,
        hooks: Optional[HooksConfiguration] = None,
        project_temp_dir: Optional[str] = None,
        executor: Optional[HookExecutor] = None,
        agent_type: str = DEFAULT_AGENT_TYPE,
        cwd: Optional[str] = None,
    ):
        """
        Initialize the hooks manager.

        Args:
            hooks: Parsed hook configuration (empty when None)
            project_temp_dir: Per-project temp directory holding the transcript
            executor: Hook process runner
            agent_type: Default agent tag stamped on envelopes
            cwd: Working directory reported to hooks (process cwd when None)
        """
        self.hooks = hooks or HooksConfiguration()
        self.project_temp_dir = project_temp_dir
        self.executor = executor or HookExecutor()
        self.agent_type = agent_type
        self.cwd = cwd

    @classmethod
    def from_config(cls, config, executor: Optional[HookExecutor] = None) -> "HooksManager":
        """Create a manager from an agentgate Config."""
        return cls(
            hooks=config.hooks,
            project_temp_dir=config.project_temp_dir,
            executor=executor,
            cwd=config.working_dir,
        )

    def get_transcript_path(self) -> Optional[str]:
        if not self.project_temp_dir:
            return None
        return os.path.join(self.project_temp_dir, TRANSCRIPT_FILENAME)

    async def run_hook(
        self,
        event_name: HookEventName,
        fields: Optional[Mapping[str, Any]],
        context: HookExecutionContext,
        signal: Optional[asyncio.Event] = None,
        agent_type: Optional[str] = None,
    ) -> List[HookExecutionResult]:
        """
        Run every hook matching ``event_name`` concurrently.

        Args:
            event_name: The event to dispatch
            fields: Event-specific payload fields
            context: Session id and transcript path
            signal: Optional session cancellation event
            agent_type: Agent tag override for this envelope

        Returns:
            Results of the hooks that settled, in match order

        Raises:
            ValueError: If ``fields`` do not fit the event's payload shape
        """
        event_name = HookEventName(event_name)
        hook_input = HookInput.build(
            event_name,
            context,
            fields,
            agent_type=agent_type or self.agent_type,
            cwd=self.cwd,
        )

        matching = find_matching_hooks(self.hooks.matchers_for(event_name), hook_input.tool_name)
        if not matching:
            return []

        logger.debug(f"[hooks] Running {len(matching)} {event_name.value} hook(s)")
        settled = await asyncio.gather(
            *(self.executor.execute(hook, hook_input, signal) for hook in matching),
            return_exceptions=True,
        )

        results: List[HookExecutionResult] = []
        for hook, outcome in zip(matching, settled):
            if isinstance(outcome, BaseException):
                logger.warning(f"[hooks] {event_name.value} hook '{hook.command}' failed: {outcome}")
                continue
            if outcome.outcome is not HookExecutionOutcome.Success:
                logger.debug(
                    f"[hooks] {event_name.value} hook '{hook.command}' -> {outcome.outcome.value}"
                )
            results.append(outcome)
        return results

    async def run_pre_tool_use(
        self,
        tool_name: str,
        tool_input: Mapping[str, Any],
        context: HookExecutionContext,
        signal: Optional[asyncio.Event] = None,
    ) -> PreToolUseDecision:
        """
        Run PreToolUse hooks and decide whether the tool call may proceed.

        All matching hooks run to completion before the decision is made. The
        first result that exits with code 2 or prints ``"continue": false``
        blocks the call.
        """
        results = await self.run_hook(
            HookEventName.PreToolUse,
            {'tool_name': tool_name, 'tool_input': dict(tool_input)},
            context,
            signal,
        )

        for result in results:
            stopped = result.output is not None and result.output.continue_ is False
            if result.outcome is HookExecutionOutcome.BlockingError or stopped:
                reason = (
                    (result.output.stop_reason if result.output else None)
                    or result.stderr.strip()
                    or DEFAULT_BLOCK_REASON
                )
                logger.debug(f"[hooks] {tool_name} blocked by '{result.command}': {reason}")
                return PreToolUseDecision(True, reason, tuple(results))

        return PreToolUseDecision(False, None, tuple(results))

    async def run_post_tool_use(
        self,
        tool_name: str,
        tool_input: Mapping[str, Any],
        tool_response: Mapping[str, Any],
        context: HookExecutionContext,
        signal: Optional[asyncio.Event] = None,
    ) -> List[HookExecutionResult]:
        """Run PostToolUse hooks. Results are informational only."""
        return await self.run_hook(
            HookEventName.PostToolUse,
            {
                'tool_name': tool_name,
                'tool_input': dict(tool_input),
                'tool_response': dict(tool_response),
            },
            context,
            signal,
        )

    async def run_stop(
        self,
        final_message: Optional[str],
        context: HookExecutionContext,
    ) -> List[HookExecutionResult]:
        """Run Stop hooks once at session end."""
        return await self.run_hook(
            HookEventName.Stop,
            {'final_message': final_message},
            context,
        )

    def has_hooks(self, event: HookEventName) -> bool:
        """Check if any hook is configured for an event."""
        return any(m.hooks for m in self.hooks.matchers_for(HookEventName(event)))

    def list_hooks(self, event: Optional[HookEventName] = None) -> Dict[str, List[str]]:
        """
        List configured hook commands.

        Args:
            event: Optional event to filter by

        Returns:
            Dictionary of event name -> list of "[matcher] command" strings
        """
        result = {}
        events = [HookEventName(event)] if event else list(HookEventName)

        for e in events:
            commands = [
                f"[{m.matcher}] {h.command}" if m.matcher else h.command
                for m in self.hooks.matchers_for(e)
                for h in m.hooks
            ]
            if commands:
                result[e.value] = commands

        return result
