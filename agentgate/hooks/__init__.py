"""
Command Hooks Module

External programs configured per event run around tool calls and at session
boundaries. Each hook receives a JSON envelope on stdin and reports back via
its exit code (0 = ok, 2 = block, other = non-blocking failure) and optionally
a JSON object on stdout: {"continue": bool, "stopReason": str, "suppressOutput": bool}.

Configuration (the "hooks" key of settings.json):

    {
      "PreToolUse": [
        {"matcher": "run_shell_command",
         "hooks": [{"type": "command", "command": "./check.sh", "timeout": 5000}]}
      ],
      "Stop": [
        {"hooks": [{"type": "command", "command": "notify-send done"}]}
      ]
    }

Example usage:
    from agentgate.hooks import HooksManager, HooksConfiguration, HookExecutionContext

    manager = HooksManager(HooksConfiguration.from_dict(settings.get("hooks")))
    context = HookExecutionContext(session_id="abc", transcript_path=manager.get_transcript_path())

    decision = await manager.run_pre_tool_use("write_file", {"file_path": "x"}, context)
    if decision.should_block:
        print(decision.block_reason)
"""

from .types import (
    DEFAULT_AGENT_TYPE,
    DEFAULT_HOOK_TIMEOUT_MS,
    EVENT_PAYLOADS,
    HookConfig,
    HookConfigError,
    HookEventName,
    HookExecutionContext,
    HookExecutionOutcome,
    HookExecutionResult,
    HookInput,
    HookMatcher,
    HookMetadata,
    HookOutput,
    HooksConfiguration,
    PayloadShape,
    classify_outcome,
)
from .matcher import MatchMode, MatchResult, find_matching_hooks, match_subject
from .executor import HookExecutor
from .manager import HooksManager, PreToolUseDecision
from .trigger import HookTrigger

__all__ = [
    'DEFAULT_AGENT_TYPE',
    'DEFAULT_HOOK_TIMEOUT_MS',
    'EVENT_PAYLOADS',
    'HookConfig',
    'HookConfigError',
    'HookEventName',
    'HookExecutionContext',
    'HookExecutionOutcome',
    'HookExecutionResult',
    'HookExecutor',
    'HookInput',
    'HookMatcher',
    'HookMetadata',
    'HookOutput',
    'HookTrigger',
    'HooksConfiguration',
    'HooksManager',
    'MatchMode',
    'MatchResult',
    'PayloadShape',
    'PreToolUseDecision',
    'classify_outcome',
    'find_matching_hooks',
    'match_subject',
]
