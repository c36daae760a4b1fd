"""
Hook types and data structures for the hook pipeline.

The event catalog is a closed enumeration. Every event shares one envelope
(:class:`HookInput`) and differs only in its payload, whose allowed fields are
declared once in :data:`EVENT_PAYLOADS` and checked when the envelope is built.
"""

import getpass
import json
import os
import platform
import socket
import sys
import time
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..logger import logger

DEFAULT_HOOK_TIMEOUT_MS = 60_000
DEFAULT_AGENT_TYPE = "agentgate"


class HookEventName(str, Enum):
    """
    Lifecycle and tool moments that external hooks can subscribe to.

    The value is the name used both in the hook configuration table and in the
    ``hook_event_name`` field of the JSON sent to the hook process.
    """
    # Tool events
    PreToolUse = "PreToolUse"
    PostToolUse = "PostToolUse"
    ToolValidationFailure = "ToolValidationFailure"
    ToolApproval = "ToolApproval"
    ToolRejection = "ToolRejection"
    ToolTimeout = "ToolTimeout"
    ToolCancellation = "ToolCancellation"
    BatchToolComplete = "BatchToolComplete"

    # Message / conversation events
    PreUserMessage = "PreUserMessage"
    PostUserMessage = "PostUserMessage"
    PreModelResponse = "PreModelResponse"
    PostModelResponse = "PostModelResponse"
    ConversationStart = "ConversationStart"
    ConversationEnd = "ConversationEnd"
    MessageReceived = "MessageReceived"
    MessageSent = "MessageSent"
    ThoughtGenerated = "ThoughtGenerated"

    # Authentication events
    AuthenticationStart = "AuthenticationStart"
    AuthenticationSuccess = "AuthenticationSuccess"
    AuthenticationFailure = "AuthenticationFailure"
    TokenRefresh = "TokenRefresh"
    Logout = "Logout"
    UnauthorizedAccess = "UnauthorizedAccess"

    # Session lifecycle events
    SessionStart = "SessionStart"
    SessionEnd = "SessionEnd"
    ChatStart = "ChatStart"
    ChatReset = "ChatReset"
    Checkpoint = "Checkpoint"
    Resume = "Resume"

    # Error events
    Error = "Error"
    ApiError = "ApiError"
    NetworkError = "NetworkError"
    ValidationError = "ValidationError"
    TimeoutError = "TimeoutError"
    UnexpectedError = "UnexpectedError"

    # Model events
    ModelSwitch = "ModelSwitch"
    ModelFallback = "ModelFallback"
    QuotaExceeded = "QuotaExceeded"
    ModelUnavailable = "ModelUnavailable"

    # Memory / context events
    MemorySave = "MemorySave"
    MemoryLoad = "MemoryLoad"
    MemoryRefresh = "MemoryRefresh"
    ContextCompress = "ContextCompress"
    ContextExpand = "ContextExpand"
    MemoryImport = "MemoryImport"
    MemoryExport = "MemoryExport"

    # IDE integration events
    IdeConnect = "IdeConnect"
    IdeDisconnect = "IdeDisconnect"
    FileOpen = "FileOpen"
    FileClose = "FileClose"
    CursorMove = "CursorMove"
    SelectionChange = "SelectionChange"
    FileChange = "FileChange"

    # MCP server events
    McpServerConnect = "McpServerConnect"
    McpServerDisconnect = "McpServerDisconnect"
    McpServerError = "McpServerError"
    McpToolDiscovered = "McpToolDiscovered"
    McpPromptDiscovered = "McpPromptDiscovered"
    McpOAuthStart = "McpOAuthStart"
    McpOAuthComplete = "McpOAuthComplete"

    # File operation events
    FileRead = "FileRead"
    FileWrite = "FileWrite"
    FileEdit = "FileEdit"
    FileDelete = "FileDelete"
    DirectoryList = "DirectoryList"
    FileSearch = "FileSearch"

    # Approval / permission events
    ApprovalRequested = "ApprovalRequested"
    ApprovalGranted = "ApprovalGranted"
    ApprovalDenied = "ApprovalDenied"
    PermissionCheck = "PermissionCheck"
    TrustDecision = "TrustDecision"

    # Agent events
    Notification = "Notification"
    Stop = "Stop"
    SubagentStop = "SubagentStop"
    PreCompact = "PreCompact"


@dataclass(frozen=True)
class PayloadShape:
    """Event-specific fields an envelope may carry."""
    required: Tuple[str, ...] = ()
    optional: Tuple[str, ...] = ()

    @property
    def fields(self) -> Tuple[str, ...]:
        return self.required + self.optional


def _shape(*required: str, optional: Tuple[str, ...] = ()) -> PayloadShape:
    return PayloadShape(required=tuple(required), optional=tuple(optional))


E = HookEventName

EVENT_PAYLOADS: Dict[HookEventName, PayloadShape] = {
    E.PreToolUse: _shape("tool_name", "tool_input"),
    E.PostToolUse: _shape("tool_name", "tool_input", "tool_response"),
    E.ToolValidationFailure: _shape("tool_name", "validation_error", "tool_input"),
    E.ToolApproval: _shape("tool_name", "tool_input", "approval_mode"),
    E.ToolRejection: _shape("tool_name", "tool_input", optional=("rejection_reason",)),
    E.ToolTimeout: _shape("tool_name", "timeout_ms"),
    E.ToolCancellation: _shape("tool_name", optional=("cancellation_reason",)),
    E.BatchToolComplete: _shape("tools_executed", "results_count"),

    E.PreUserMessage: _shape("message", optional=("attachments",)),
    E.PostUserMessage: _shape("message", "processed"),
    E.PreModelResponse: _shape("model", "context_length"),
    E.PostModelResponse: _shape("model", "response", optional=("tool_calls", "tokens_used")),
    E.ConversationStart: _shape(optional=("initial_message",)),
    E.ConversationEnd: _shape("reason", optional=("final_message",)),
    E.MessageReceived: _shape("sender", "content"),
    E.MessageSent: _shape("recipient", "content"),
    E.ThoughtGenerated: _shape("thought"),

    E.AuthenticationStart: _shape("auth_method"),
    E.AuthenticationSuccess: _shape("auth_method", optional=("user_id",)),
    E.AuthenticationFailure: _shape("auth_method", "error"),
    E.TokenRefresh: _shape("token_type", "success"),
    E.Logout: _shape(optional=("user_id",)),
    E.UnauthorizedAccess: _shape("resource", "status_code"),

    E.SessionStart: _shape("mode", "working_directory"),
    E.SessionEnd: _shape("duration_ms", "exit_code"),
    E.ChatStart: _shape("model"),
    E.ChatReset: _shape("reason"),
    E.Checkpoint: _shape("checkpoint_id", "message_count"),
    E.Resume: _shape("checkpoint_id", optional=("conversation_id",)),

    E.Error: _shape("error_type", "error_message", optional=("stack_trace",)),
    E.ApiError: _shape("status_code", "error_message", optional=("endpoint",)),
    E.NetworkError: _shape("error_message", optional=("url",)),
    E.ValidationError: _shape("error_message", optional=("field",)),
    E.TimeoutError: _shape("operation", "timeout_ms"),
    E.UnexpectedError: _shape("error_message", optional=("context",)),

    E.ModelSwitch: _shape("from_model", "to_model", optional=("reason",)),
    E.ModelFallback: _shape("primary_model", "fallback_model", optional=("error",)),
    E.QuotaExceeded: _shape("model", "quota_type"),
    E.ModelUnavailable: _shape("model", optional=("reason",)),

    E.MemorySave: _shape("memory_type", optional=("size_bytes",)),
    E.MemoryLoad: _shape("memory_type", "source"),
    E.MemoryRefresh: _shape("files_count"),
    E.ContextCompress: _shape("before_tokens", "after_tokens"),
    E.ContextExpand: _shape("expanded_by"),
    E.MemoryImport: _shape("source", "items_count"),
    E.MemoryExport: _shape("destination", "items_count"),

    E.IdeConnect: _shape("ide_name", optional=("ide_version",)),
    E.IdeDisconnect: _shape("ide_name", optional=("reason",)),
    E.FileOpen: _shape("file_path", optional=("file_type",)),
    E.FileClose: _shape("file_path"),
    E.CursorMove: _shape("file_path", "line", "column"),
    E.SelectionChange: _shape("file_path", optional=("selection_text", "selection_range")),
    E.FileChange: _shape("file_path", "change_type"),

    E.McpServerConnect: _shape("server_name", "transport_type"),
    E.McpServerDisconnect: _shape("server_name", optional=("reason",)),
    E.McpServerError: _shape("server_name", "error_message"),
    E.McpToolDiscovered: _shape("server_name", "tool_name", optional=("tool_description",)),
    E.McpPromptDiscovered: _shape("server_name", "prompt_name", optional=("prompt_description",)),
    E.McpOAuthStart: _shape("server_name", "provider"),
    E.McpOAuthComplete: _shape("server_name", "success"),

    E.FileRead: _shape("file_path", optional=("size_bytes",)),
    E.FileWrite: _shape("file_path", "overwrite", optional=("size_bytes",)),
    E.FileEdit: _shape("file_path", "edits_count"),
    E.FileDelete: _shape("file_path"),
    E.DirectoryList: _shape("directory_path", "items_count"),
    E.FileSearch: _shape("search_pattern", "search_type", optional=("results_count",)),

    E.ApprovalRequested: _shape("approval_type", "resource", optional=("details",)),
    E.ApprovalGranted: _shape("approval_type", "resource", optional=("granted_by",)),
    E.ApprovalDenied: _shape("approval_type", "resource", optional=("denied_by", "reason")),
    E.PermissionCheck: _shape("permission", "resource", "result"),
    E.TrustDecision: _shape("resource", "trusted", optional=("trust_level",)),

    E.Notification: _shape("notification_type", optional=("message",)),
    E.Stop: _shape(optional=("final_message",)),
    E.SubagentStop: _shape("subagent_name", optional=("final_message",)),
    E.PreCompact: _shape("current_token_count", "max_token_count"),
}

del E


class HookConfigError(ValueError):
    """Raised when the static hook configuration table is malformed."""
    pass


@dataclass(frozen=True)
class HookExecutionContext:
    """Per-session values stamped onto every envelope."""
    session_id: str
    transcript_path: Optional[str] = None


@dataclass(frozen=True)
class HookMetadata:
    """Where and when an envelope was produced."""
    timestamp: int
    user: Optional[str] = None
    hostname: Optional[str] = None
    platform: Optional[str] = None
    python_version: Optional[str] = None

    @classmethod
    def collect(cls) -> "HookMetadata":
        try:
            user = getpass.getuser()
        except (KeyError, OSError):
            # No passwd entry and no LOGNAME/USER (common in containers)
            user = None
        return cls(
            timestamp=int(time.time() * 1000),
            user=user,
            hostname=socket.gethostname(),
            platform=sys.platform,
            python_version=platform.python_version(),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'timestamp': self.timestamp,
            'user': self.user,
            'hostname': self.hostname,
            'platform': self.platform,
            'python_version': self.python_version,
        }
        return {k: v for k, v in data.items() if v is not None}


@dataclass(frozen=True)
class HookInput:
    """
    The envelope written to a hook process's stdin.

    One record type serves every event: ``hook_event_name`` is the
    discriminant and ``payload`` holds the event-specific fields, validated
    against :data:`EVENT_PAYLOADS` by :meth:`build`.

    Attributes:
        hook_event_name: The event being dispatched
        session_id: Identifier of the running session
        agent_type: Tag identifying the agent that produced the event
        cwd: Working directory of the agent process
        transcript_path: Optional path of the session transcript
        metadata: Timestamp/user/host/platform block
        payload: Read-only event-specific fields
    """
    hook_event_name: HookEventName
    session_id: str
    agent_type: str = DEFAULT_AGENT_TYPE
    cwd: str = ""
    transcript_path: Optional[str] = None
    metadata: Optional[HookMetadata] = None
    payload: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def build(
        cls,
        event_name: HookEventName,
        context: HookExecutionContext,
        fields: Optional[Mapping[str, Any]] = None,
        *,
        agent_type: str = DEFAULT_AGENT_TYPE,
        cwd: Optional[str] = None,
        metadata: Optional[HookMetadata] = None,
    ) -> "HookInput":
        """
        Build an envelope for ``event_name``.

        Args:
            event_name: The event being dispatched
            context: Session id and transcript path
            fields: Event-specific payload fields
            agent_type: Agent identity tag
            cwd: Working directory (defaults to the process cwd)
            metadata: Metadata block (collected from the host when omitted)

        Raises:
            ValueError: If a field is not part of the event's payload shape or
                a required field is missing
        """
        event_name = HookEventName(event_name)
        fields = dict(fields or {})
        shape = EVENT_PAYLOADS[event_name]

        unknown = sorted(set(fields) - set(shape.fields))
        if unknown:
            raise ValueError(
                f"Unknown field(s) for {event_name.value} hook: {', '.join(unknown)}"
            )
        missing = [name for name in shape.required if fields.get(name) is None]
        if missing:
            raise ValueError(
                f"Missing field(s) for {event_name.value} hook: {', '.join(missing)}"
            )

        payload = {name: fields[name] for name in shape.fields if fields.get(name) is not None}
        return cls(
            hook_event_name=event_name,
            session_id=context.session_id,
            agent_type=agent_type,
            cwd=cwd if cwd is not None else os.getcwd(),
            transcript_path=context.transcript_path,
            metadata=metadata or HookMetadata.collect(),
            payload=MappingProxyType(payload),
        )

    @property
    def tool_name(self) -> Optional[str]:
        """Matching subject for tool-scoped events, None otherwise."""
        return self.payload.get('tool_name')

    def to_dict(self) -> Dict[str, Any]:
        """Convert the envelope to the flat dictionary sent to hooks."""
        data: Dict[str, Any] = {'session_id': self.session_id}
        if self.transcript_path:
            data['transcript_path'] = self.transcript_path
        data['hook_event_name'] = self.hook_event_name.value
        data['agent_type'] = self.agent_type
        data['cwd'] = self.cwd
        if self.metadata is not None:
            data['metadata'] = self.metadata.to_dict()
        data.update(self.payload)
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


@dataclass(frozen=True)
class HookOutput:
    """
    Structured output a hook may print to stdout as one JSON object.

    Attributes:
        continue_: ``continue`` field; False asks the agent to stop the action
        stop_reason: ``stopReason`` field
        suppress_output: ``suppressOutput`` field
    """
    continue_: Optional[bool] = None
    stop_reason: Optional[str] = None
    suppress_output: Optional[bool] = None

    @classmethod
    def parse(cls, text: Optional[str]) -> Optional["HookOutput"]:
        """
        Parse hook stdout into a HookOutput.

        Returns None when stdout is empty, is not JSON, or is not a JSON
        object. Unexpected field types are ignored.
        """
        if not text or not text.strip():
            return None
        try:
            data = json.loads(text.strip())
        except ValueError:
            return None
        if not isinstance(data, dict):
            return None

        continue_ = data.get('continue')
        stop_reason = data.get('stopReason')
        suppress_output = data.get('suppressOutput')
        return cls(
            continue_=continue_ if isinstance(continue_, bool) else None,
            stop_reason=stop_reason if isinstance(stop_reason, str) else None,
            suppress_output=suppress_output if isinstance(suppress_output, bool) else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'continue': self.continue_,
            'stopReason': self.stop_reason,
            'suppressOutput': self.suppress_output,
        }
        return {k: v for k, v in data.items() if v is not None}


class HookExecutionOutcome(Enum):
    """Classification of one hook process run."""
    Success = "success"
    BlockingError = "blocking_error"
    NonBlockingError = "non_blocking_error"
    Timeout = "timeout"


def classify_outcome(exit_code: int, timed_out: bool) -> HookExecutionOutcome:
    """Timeout wins over any exit code; then 0 / 2 / anything else."""
    if timed_out:
        return HookExecutionOutcome.Timeout
    if exit_code == 0:
        return HookExecutionOutcome.Success
    if exit_code == 2:
        return HookExecutionOutcome.BlockingError
    return HookExecutionOutcome.NonBlockingError


@dataclass(frozen=True)
class HookExecutionResult:
    """
    Outcome of one spawned hook process.

    Attributes:
        exit_code: Process exit code, or -1 if none could be reported
        stdout: Captured standard output
        stderr: Captured standard error
        timed_out: True if the process outlived its timeout
        output: Parsed structured stdout, if any
        command: The command that produced this result
    """
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    output: Optional[HookOutput] = None
    command: str = ""

    @property
    def outcome(self) -> HookExecutionOutcome:
        return classify_outcome(self.exit_code, self.timed_out)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'exit_code': self.exit_code,
            'stdout': self.stdout,
            'stderr': self.stderr,
            'timed_out': self.timed_out,
            'output': self.output.to_dict() if self.output else None,
            'outcome': self.outcome.value,
            'command': self.command,
        }


@dataclass(frozen=True)
class HookConfig:
    """
    One external command hook.

    Attributes:
        command: Shell command line to run
        timeout: Timeout in milliseconds (None means the 60s default)
        type: Hook type; only "command" is supported
    """
    command: str
    timeout: Optional[int] = None
    type: str = "command"

    @property
    def timeout_ms(self) -> int:
        return self.timeout if self.timeout is not None else DEFAULT_HOOK_TIMEOUT_MS

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "HookConfig":
        if not isinstance(data, Mapping):
            raise HookConfigError(f"Hook entry must be an object, got {type(data).__name__}")

        hook_type = data.get('type', 'command')
        if hook_type != 'command':
            raise HookConfigError(f"Invalid hook type: {hook_type}")

        command = data.get('command')
        if not isinstance(command, str) or not command.strip():
            raise HookConfigError("Hook entry requires a non-empty 'command'")

        timeout = data.get('timeout')
        if timeout is not None:
            if isinstance(timeout, bool) or not isinstance(timeout, int) or timeout <= 0:
                raise HookConfigError(f"Invalid hook timeout for '{command}': {timeout!r}")

        return cls(command=command, timeout=timeout, type=hook_type)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'type': self.type, 'command': self.command}
        if self.timeout is not None:
            data['timeout'] = self.timeout
        return data


@dataclass(frozen=True)
class HookMatcher:
    """
    A pattern scoping a list of hooks to matching subjects.

    Attributes:
        hooks: Hooks run when the matcher applies
        matcher: Regular expression or exact name; None/empty matches all
    """
    hooks: Tuple[HookConfig, ...] = ()
    matcher: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "HookMatcher":
        if not isinstance(data, Mapping):
            raise HookConfigError(f"Matcher entry must be an object, got {type(data).__name__}")

        pattern = data.get('matcher')
        if pattern is not None and not isinstance(pattern, str):
            raise HookConfigError(f"Matcher pattern must be a string, got {pattern!r}")

        hooks = data.get('hooks', [])
        if not isinstance(hooks, list):
            raise HookConfigError("Matcher 'hooks' must be a list")

        return cls(hooks=tuple(HookConfig.from_dict(h) for h in hooks), matcher=pattern)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'hooks': [h.to_dict() for h in self.hooks]}
        if self.matcher is not None:
            data['matcher'] = self.matcher
        return data


@dataclass
class HooksConfiguration:
    """Hook matchers per event name, in configuration order."""
    events: Dict[HookEventName, List[HookMatcher]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "HooksConfiguration":
        """
        Parse the ``hooks`` table of a settings file.

        Unknown event names are skipped with a warning; malformed entries
        raise HookConfigError.
        """
        config = cls()
        if not data:
            return config
        if not isinstance(data, Mapping):
            raise HookConfigError("'hooks' must be an object keyed by event name")

        for event_name, matchers in data.items():
            try:
                event = HookEventName(event_name)
            except ValueError:
                logger.warning(f"[config] Unknown hook event: {event_name}")
                continue
            if not isinstance(matchers, list):
                raise HookConfigError(f"Hooks for {event_name} must be a list of matchers")
            config.events[event] = [HookMatcher.from_dict(m) for m in matchers]

        return config

    def matchers_for(self, event: HookEventName) -> List[HookMatcher]:
        return list(self.events.get(event, []))

    def to_dict(self) -> Dict[str, Any]:
        return {
            event.value: [m.to_dict() for m in matchers]
            for event, matchers in self.events.items()
        }
