"""
Tools for the agent loop.

Provides the tool registry, the built-in file system and shell tools, and
``execute_tool_call``, which runs one model-requested call and turns any
failure into an error response part instead of raising.
"""

import asyncio
import fnmatch
import json
import os
import subprocess
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from .logger import logger, log_tool_call

# Built-in tool names. Hook matchers reference these.
READ_FILE = "read_file"
WRITE_FILE = "write_file"
REPLACE = "replace"
READ_MANY_FILES = "read_many_files"
LIST_DIRECTORY = "list_directory"
SEARCH_FILE_CONTENT = "search_file_content"
GLOB = "glob"
RUN_SHELL_COMMAND = "run_shell_command"
WEB_FETCH = "web_fetch"
GOOGLE_WEB_SEARCH = "google_web_search"
SAVE_MEMORY = "save_memory"

TOOL_NAMES = (
    READ_FILE,
    WRITE_FILE,
    REPLACE,
    READ_MANY_FILES,
    LIST_DIRECTORY,
    SEARCH_FILE_CONTENT,
    GLOB,
    RUN_SHELL_COMMAND,
    WEB_FETCH,
    GOOGLE_WEB_SEARCH,
    SAVE_MEMORY,
)

SHELL_TIMEOUT_SECONDS = 120
_MAX_OUTPUT_CHARS = 20_000


class ToolError(Exception):
    """Custom exception for tool failures."""
    pass


class ToolErrorType(Enum):
    TOOL_NOT_REGISTERED = "tool_not_registered"
    INVALID_TOOL_PARAMS = "invalid_tool_params"
    EXECUTION_FAILED = "execution_failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ToolCallRequest:
    """
    One tool invocation requested by the model.

    Attributes:
        call_id: Provider call id, echoed back in the response part
        name: Tool name
        args: Parsed arguments
        prompt_id: Id of the prompt that produced the call
        args_error: Set when the model's argument text was not valid JSON
    """
    call_id: str
    name: str
    args: Dict[str, Any] = field(default_factory=dict)
    prompt_id: Optional[str] = None
    args_error: Optional[str] = None


@dataclass(frozen=True)
class ToolCallResponse:
    """
    Outcome of one tool invocation.

    Attributes:
        call_id: Id of the request this answers
        response_parts: Parts fed back to the model on the next turn
        result_display: Human-readable result text
        error: Error message when the call failed
        error_type: Classification of the failure
    """
    call_id: str
    response_parts: List[Dict[str, Any]]
    result_display: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[ToolErrorType] = None


def function_response_part(call_id: str, name: str, result: Dict[str, Any]) -> Dict[str, Any]:
    """Build the part that carries a tool result back to the model."""
    return {
        "type": "function_call_output",
        "call_id": call_id,
        "name": name,
        "output": json.dumps(result, default=str),
    }


def error_response(
    request: ToolCallRequest,
    message: str,
    error_type: Optional[ToolErrorType] = None,
) -> ToolCallResponse:
    return ToolCallResponse(
        call_id=request.call_id,
        response_parts=[function_response_part(request.call_id, request.name, {"error": message})],
        result_display=message,
        error=message,
        error_type=error_type,
    )


def secure_path(requested_path: str, working_dir: str = None) -> str:
    """Keep paths locked to working_dir."""
    working_dir = working_dir or os.getcwd()
    wd_real = os.path.realpath(working_dir)

    if not requested_path:
        return wd_real

    if os.path.isabs(requested_path):
        target_real = os.path.realpath(requested_path)
    else:
        target_real = os.path.realpath(os.path.join(wd_real, requested_path))

    if not target_real.startswith(wd_real + os.sep) and target_real != wd_real:
        raise ToolError(f"Path '{requested_path}' escapes working directory '{working_dir}'.")

    return target_real


def _truncate(text: str) -> str:
    if len(text) > _MAX_OUTPUT_CHARS:
        return text[:_MAX_OUTPUT_CHARS] + f"\n... [truncated {len(text) - _MAX_OUTPUT_CHARS} chars]"
    return text


# Built-in tools. Each returns (result, metadata); metadata may carry "display".

def list_directory(
    path: str = ".",
    ignore: Optional[List[str]] = None,
    working_dir: str = None,
) -> Tuple[dict, dict]:
    """List directory contents, directories first."""
    path = secure_path(path, working_dir)

    if not os.path.exists(path):
        raise ToolError(f"Path does not exist: {path}")
    if not os.path.isdir(path):
        raise ToolError(f"Path is not a directory: {path}")

    entries = []
    for item in os.listdir(path):
        if ignore and any(fnmatch.fnmatch(item, pattern) for pattern in ignore):
            continue
        item_path = os.path.join(path, item)
        entries.append({
            "name": item,
            "type": "directory" if os.path.isdir(item_path) else "file",
        })

    entries.sort(key=lambda x: (x["type"] != "directory", x["name"]))
    display = f"Listed {len(entries)} item(s) in {path}"
    return {"path": path, "entries": entries}, {"display": display}


def read_file(
    file_path: str,
    offset: int = 0,
    limit: Optional[int] = None,
    working_dir: str = None,
) -> Tuple[dict, dict]:
    """Read a text file, optionally a window of lines."""
    file_path = secure_path(file_path, working_dir)

    if not os.path.exists(file_path):
        raise ToolError(f"File does not exist: {file_path}")
    if not os.path.isfile(file_path):
        raise ToolError(f"Path is not a file: {file_path}")

    with open(file_path, "r", encoding="utf-8", errors="replace") as f:
        lines = f.readlines()

    start = max(0, offset)
    end = start + limit if limit else len(lines)
    content = "".join(lines[start:end])
    return (
        {"path": file_path, "content": _truncate(content), "total_lines": len(lines)},
        {"display": f"Read {len(lines[start:end])} line(s) from {file_path}"},
    )


def write_file(
    file_path: str,
    content: str,
    working_dir: str = None,
) -> Tuple[dict, dict]:
    """Write content to file, creating directories if needed."""
    file_path = secure_path(file_path, working_dir)

    directory = os.path.dirname(file_path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    with open(file_path, "w", encoding="utf-8") as f:
        f.write(content)

    size = os.path.getsize(file_path)
    message = f"Wrote {size} bytes to {file_path}"
    return {"path": file_path, "size": size, "message": message}, {"display": message}


def run_shell_command(
    command: str,
    directory: Optional[str] = None,
    timeout: int = SHELL_TIMEOUT_SECONDS,
    working_dir: str = None,
) -> Tuple[dict, dict]:
    """Run a shell command inside the working directory."""
    cwd = secure_path(directory or ".", working_dir)
    try:
        proc = subprocess.run(
            command,
            shell=True,
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        raise ToolError(f"Command timed out after {timeout}s: {command}")

    result = {
        "command": command,
        "directory": cwd,
        "stdout": _truncate(proc.stdout),
        "stderr": _truncate(proc.stderr),
        "exit_code": proc.returncode,
    }
    return result, {"display": proc.stdout or proc.stderr or f"(exit code {proc.returncode})"}


BUILTIN_TOOL_SCHEMAS: Dict[str, Dict[str, Any]] = {
    LIST_DIRECTORY: {
        "name": LIST_DIRECTORY,
        "description": "List the files and directories in a directory of the workspace.",
        "parameters": {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Directory path, relative to the workspace."},
                "ignore": {"type": "array", "items": {"type": "string"}, "description": "Glob patterns to skip."},
            },
            "required": [],
        },
    },
    READ_FILE: {
        "name": READ_FILE,
        "description": "Read a text file from the workspace.",
        "parameters": {
            "type": "object",
            "properties": {
                "file_path": {"type": "string", "description": "Path of the file to read."},
                "offset": {"type": "integer", "description": "First line to read (0-based)."},
                "limit": {"type": "integer", "description": "Maximum number of lines to read."},
            },
            "required": ["file_path"],
        },
    },
    WRITE_FILE: {
        "name": WRITE_FILE,
        "description": "Write content to a file in the workspace, replacing it if it exists.",
        "parameters": {
            "type": "object",
            "properties": {
                "file_path": {"type": "string", "description": "Path of the file to write."},
                "content": {"type": "string", "description": "Full file content."},
            },
            "required": ["file_path", "content"],
        },
    },
    RUN_SHELL_COMMAND: {
        "name": RUN_SHELL_COMMAND,
        "description": "Run a shell command in the workspace and return its output.",
        "parameters": {
            "type": "object",
            "properties": {
                "command": {"type": "string", "description": "Command line to run."},
                "directory": {"type": "string", "description": "Directory to run in, relative to the workspace."},
                "timeout": {"type": "integer", "description": "Timeout in seconds."},
            },
            "required": ["command"],
        },
    },
}


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    function: Callable[..., Tuple[dict, dict]]
    schema: Dict[str, Any]

    def validate(self, args: Dict[str, Any]) -> Optional[str]:
        """Return a message describing why ``args`` don't fit the schema, or None."""
        parameters = self.schema.get("parameters", {})
        properties = parameters.get("properties", {})
        missing = [name for name in parameters.get("required", []) if name not in args]
        if missing:
            return f"Missing required parameter(s): {', '.join(missing)}"
        unknown = [name for name in args if name not in properties]
        if unknown:
            return f"Unknown parameter(s): {', '.join(unknown)}"
        return None


class ToolRegistry:
    """
    Maps tool names to callables and their function declarations.

    Example:
        registry = ToolRegistry()
        registry.register("echo", echo, {"name": "echo", "parameters": {...}})
        registry.get_function_declarations()
    """

    def __init__(self):
        self._tools: Dict[str, ToolDefinition] = {}

    def register(self, name: str, function: Callable[..., Tuple[dict, dict]], schema: Dict[str, Any]) -> None:
        if name in self._tools:
            logger.warning(f"[tools] Replacing already registered tool: {name}")
        self._tools[name] = ToolDefinition(name=name, function=function, schema=schema)

    def get_tool(self, name: str) -> Optional[ToolDefinition]:
        return self._tools.get(name)

    def names(self) -> List[str]:
        return list(self._tools)

    def get_function_declarations(self) -> List[Dict[str, Any]]:
        """Declarations in the chat-completions ``tools`` format."""
        return [{"type": "function", "function": tool.schema} for tool in self._tools.values()]

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)


def create_default_registry() -> ToolRegistry:
    registry = ToolRegistry()
    registry.register(LIST_DIRECTORY, list_directory, BUILTIN_TOOL_SCHEMAS[LIST_DIRECTORY])
    registry.register(READ_FILE, read_file, BUILTIN_TOOL_SCHEMAS[READ_FILE])
    registry.register(WRITE_FILE, write_file, BUILTIN_TOOL_SCHEMAS[WRITE_FILE])
    registry.register(RUN_SHELL_COMMAND, run_shell_command, BUILTIN_TOOL_SCHEMAS[RUN_SHELL_COMMAND])
    return registry


async def execute_tool_call(
    config,
    request: ToolCallRequest,
    registry: ToolRegistry,
    signal: Optional[asyncio.Event] = None,
) -> ToolCallResponse:
    """
    Execute one tool call requested by the model.

    Failures never raise: unknown tools, bad arguments, tool exceptions and
    cancellation all come back as a ToolCallResponse with ``error`` set.

    Args:
        config: Session config; its ``working_dir`` confines the built-in tools
        request: The model's tool call
        registry: Registry to resolve the tool from
        signal: Optional session cancellation event

    Returns:
        ToolCallResponse carrying the response part for the model
    """
    tool = registry.get_tool(request.name)
    if tool is None:
        return error_response(
            request,
            f'Tool "{request.name}" not found in registry.',
            ToolErrorType.TOOL_NOT_REGISTERED,
        )

    if request.args_error:
        return error_response(
            request,
            f"{request.name} failed to parse arguments: {request.args_error}",
            ToolErrorType.INVALID_TOOL_PARAMS,
        )

    problem = tool.validate(request.args)
    if problem:
        return error_response(request, f"{request.name}: {problem}", ToolErrorType.INVALID_TOOL_PARAMS)

    if signal is not None and signal.is_set():
        return error_response(request, f"{request.name} was cancelled.", ToolErrorType.CANCELLED)

    working_dir = getattr(config, "working_dir", None) or os.getcwd()
    try:
        result, metadata = await asyncio.to_thread(tool.function, working_dir=working_dir, **request.args)
    except ToolError as e:
        log_tool_call(request.name, request.args, None, error=str(e))
        return error_response(request, str(e), ToolErrorType.EXECUTION_FAILED)
    except Exception as e:
        logger.debug(f"[tools] {request.name} raised", exc_info=True)
        log_tool_call(request.name, request.args, None, error=str(e))
        return error_response(request, f"{type(e).__name__}: {e}", ToolErrorType.EXECUTION_FAILED)

    display = (metadata or {}).get("display") or json.dumps(result, default=str)
    log_tool_call(request.name, request.args, display)
    return ToolCallResponse(
        call_id=request.call_id,
        response_parts=[function_response_part(request.call_id, request.name, result)],
        result_display=display,
    )
