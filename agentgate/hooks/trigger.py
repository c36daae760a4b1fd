"""
Convenience wrappers for firing lifecycle events.

Tool-call and Stop hooks have their own policies on HooksManager; everything
else in the event catalog goes through ``HookTrigger``, which binds a manager
to one session and maps keyword arguments onto the event's payload fields.
"""

import asyncio
from typing import Any, List, Optional, Sequence

from .manager import HooksManager
from .types import HookEventName, HookExecutionContext, HookExecutionResult


class HookTrigger:
    """
    Fires auxiliary hook events for one session.

    Example:
        trigger = HookTrigger(manager, context)
        await trigger.session_start("non_interactive", os.getcwd())
        await trigger.fire(HookEventName.FileChange, file_path="a.py", change_type="modify")
    """

    def __init__(
        self,
        hooks_manager: HooksManager,
        context: HookExecutionContext,
        signal: Optional[asyncio.Event] = None,
    ):
        self.hooks_manager = hooks_manager
        self.context = context
        self.signal = signal

    async def fire(self, event_name: HookEventName, **fields: Any) -> List[HookExecutionResult]:
        """Run hooks for any event with the given payload fields."""
        return await self.hooks_manager.run_hook(event_name, fields, self.context, self.signal)

    # Session lifecycle

    async def session_start(self, mode: str, working_directory: str) -> List[HookExecutionResult]:
        return await self.fire(HookEventName.SessionStart, mode=mode, working_directory=working_directory)

    async def session_end(self, duration_ms: int, exit_code: int) -> List[HookExecutionResult]:
        return await self.fire(HookEventName.SessionEnd, duration_ms=duration_ms, exit_code=exit_code)

    async def conversation_start(self, initial_message: Optional[str] = None) -> List[HookExecutionResult]:
        return await self.fire(HookEventName.ConversationStart, initial_message=initial_message)

    async def conversation_end(
        self, reason: str, final_message: Optional[str] = None
    ) -> List[HookExecutionResult]:
        return await self.fire(HookEventName.ConversationEnd, reason=reason, final_message=final_message)

    # Tool events

    async def tool_validation_failure(
        self, tool_name: str, validation_error: str, tool_input: dict
    ) -> List[HookExecutionResult]:
        return await self.fire(
            HookEventName.ToolValidationFailure,
            tool_name=tool_name,
            validation_error=validation_error,
            tool_input=tool_input,
        )

    async def tool_approval(self, tool_name: str, tool_input: dict, approval_mode: str) -> List[HookExecutionResult]:
        return await self.fire(
            HookEventName.ToolApproval,
            tool_name=tool_name,
            tool_input=tool_input,
            approval_mode=approval_mode,
        )

    async def tool_rejection(
        self, tool_name: str, tool_input: dict, rejection_reason: Optional[str] = None
    ) -> List[HookExecutionResult]:
        return await self.fire(
            HookEventName.ToolRejection,
            tool_name=tool_name,
            tool_input=tool_input,
            rejection_reason=rejection_reason,
        )

    async def tool_timeout(self, tool_name: str, timeout_ms: int) -> List[HookExecutionResult]:
        return await self.fire(HookEventName.ToolTimeout, tool_name=tool_name, timeout_ms=timeout_ms)

    async def tool_cancellation(
        self, tool_name: str, cancellation_reason: Optional[str] = None
    ) -> List[HookExecutionResult]:
        return await self.fire(
            HookEventName.ToolCancellation,
            tool_name=tool_name,
            cancellation_reason=cancellation_reason,
        )

    async def batch_tool_complete(
        self, tools_executed: Sequence[str], results_count: int
    ) -> List[HookExecutionResult]:
        return await self.fire(
            HookEventName.BatchToolComplete,
            tools_executed=list(tools_executed),
            results_count=results_count,
        )

    # Model and error events

    async def model_switch(
        self, from_model: str, to_model: str, reason: Optional[str] = None
    ) -> List[HookExecutionResult]:
        return await self.fire(HookEventName.ModelSwitch, from_model=from_model, to_model=to_model, reason=reason)

    async def api_error(
        self, status_code: int, error_message: str, endpoint: Optional[str] = None
    ) -> List[HookExecutionResult]:
        return await self.fire(
            HookEventName.ApiError,
            status_code=status_code,
            error_message=error_message,
            endpoint=endpoint,
        )

    async def network_error(self, error_message: str, url: Optional[str] = None) -> List[HookExecutionResult]:
        return await self.fire(HookEventName.NetworkError, error_message=error_message, url=url)

    async def unexpected_error(
        self, error_message: str, context: Optional[str] = None
    ) -> List[HookExecutionResult]:
        return await self.fire(HookEventName.UnexpectedError, error_message=error_message, context=context)

    # Agent events

    async def notification(
        self, notification_type: str, message: Optional[str] = None
    ) -> List[HookExecutionResult]:
        return await self.fire(HookEventName.Notification, notification_type=notification_type, message=message)

    async def subagent_stop(
        self, subagent_name: str, final_message: Optional[str] = None
    ) -> List[HookExecutionResult]:
        return await self.fire(
            HookEventName.SubagentStop,
            subagent_name=subagent_name,
            final_message=final_message,
        )

    async def pre_compact(self, current_token_count: int, max_token_count: int) -> List[HookExecutionResult]:
        return await self.fire(
            HookEventName.PreCompact,
            current_token_count=current_token_count,
            max_token_count=max_token_count,
        )
