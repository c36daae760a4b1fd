"""
LiteLLM-based streaming chat.

``Chat`` owns the conversation history and turns one LiteLLM streaming
completion into a sequence of events: ``ContentEvent`` for text deltas and,
once the stream ends, one ``ToolCallRequestEvent`` per tool call the model
asked for. Tool-call fragments are assembled by their stream index.
"""

import asyncio
import json
import uuid
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Tuple, Union

import litellm

from .logger import logger
from .tools import ToolCallRequest

# Configure LiteLLM
litellm.suppress_debug_info = True

Message = Union[str, List[Dict[str, Any]]]


class ModelStreamError(Exception):
    """Raised when the model stream cannot be opened or read."""
    pass


@dataclass(frozen=True)
class ContentEvent:
    text: str


@dataclass(frozen=True)
class ToolCallRequestEvent:
    request: ToolCallRequest


StreamEvent = Union[ContentEvent, ToolCallRequestEvent]


def _parse_arguments(text: str) -> Tuple[Dict[str, Any], Optional[str]]:
    """Parse streamed tool arguments into a dict, or report why not."""
    if not text or not text.strip():
        return {}, None
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as e:
        return {}, str(e)
    if not isinstance(parsed, dict):
        return {}, f"expected a JSON object, got {type(parsed).__name__}"
    return parsed, None


class Chat:
    """
    One conversation with a model through LiteLLM.

    Example:
        chat = Chat("gpt-4o", tools=registry.get_function_declarations())
        async for event in chat.send_message_stream("hello", signal, "prompt-1"):
            if isinstance(event, ContentEvent):
                print(event.text, end="")
    """

    def __init__(
        self,
        model: str,
        tools: Optional[List[Dict[str, Any]]] = None,
        system_prompt: Optional[str] = None,
        completion: Optional[Callable[..., Any]] = None,
        **completion_kwargs,
    ):
        """
        Initialize the chat.

        Args:
            model: LiteLLM model name (e.g., "gpt-4o", "anthropic/claude-3-5-sonnet-20241022")
            tools: Tool declarations in chat-completions format
            system_prompt: Optional system message placed first in the history
            completion: Async completion callable (defaults to litellm.acompletion)
            **completion_kwargs: Extra parameters passed on every call
        """
        self.model = model
        self.tools = tools or []
        self.history: List[Dict[str, Any]] = []
        self._completion = completion or litellm.acompletion
        self._completion_kwargs = completion_kwargs
        if system_prompt:
            self.history.append({"role": "system", "content": system_prompt})

    def _append_message(self, message: Message) -> None:
        if isinstance(message, str):
            self.history.append({"role": "user", "content": message})
            return

        for part in message:
            if part.get("type") == "function_call_output":
                self.history.append({
                    "role": "tool",
                    "tool_call_id": part.get("call_id", ""),
                    "content": part.get("output", ""),
                })
            elif "role" in part:
                self.history.append(part)
            else:
                logger.warning(f"[agent] Dropping unsupported message part: {part.get('type')}")

    async def send_message_stream(
        self,
        message: Message,
        signal: Optional[asyncio.Event] = None,
        prompt_id: Optional[str] = None,
    ) -> AsyncIterator[StreamEvent]:
        """
        Send ``message`` and stream back the model's events.

        Args:
            message: User text, or tool response parts from the previous turn
            signal: Optional cancellation event; the stream stops once it is set
            prompt_id: Id attached to the tool call requests of this turn

        Yields:
            ContentEvent for each text delta, then ToolCallRequestEvent per tool call

        Raises:
            ModelStreamError: If the provider call or the stream fails
        """
        self._append_message(message)

        params: Dict[str, Any] = {
            "model": self.model,
            "messages": list(self.history),
            "stream": True,
            **self._completion_kwargs,
        }
        if self.tools:
            params["tools"] = self.tools

        try:
            stream = await self._completion(**params)
        except Exception as e:
            raise ModelStreamError(str(e)) from e

        text_parts: List[str] = []
        fragments: Dict[int, Dict[str, str]] = {}

        try:
            async for chunk in stream:
                if signal is not None and signal.is_set():
                    logger.debug("[agent] Stream cancelled")
                    break
                choices = getattr(chunk, "choices", None) or []
                if not choices:
                    continue
                delta = choices[0].delta

                content = getattr(delta, "content", None)
                if content:
                    text_parts.append(content)
                    yield ContentEvent(content)

                for tool_call in getattr(delta, "tool_calls", None) or []:
                    index = getattr(tool_call, "index", None) or 0
                    fragment = fragments.setdefault(index, {"id": "", "name": "", "arguments": ""})
                    if getattr(tool_call, "id", None):
                        fragment["id"] = tool_call.id
                    function = getattr(tool_call, "function", None)
                    if function is not None:
                        if function.name and not fragment["name"]:
                            fragment["name"] = function.name
                        if function.arguments:
                            fragment["arguments"] += function.arguments
        except Exception as e:
            raise ModelStreamError(str(e)) from e

        requests = []
        for index in sorted(fragments):
            fragment = fragments[index]
            call_id = fragment["id"] or f"call_{uuid.uuid4().hex[:24]}"
            args, args_error = _parse_arguments(fragment["arguments"])
            requests.append(ToolCallRequest(
                call_id=call_id,
                name=fragment["name"],
                args=args,
                prompt_id=prompt_id,
                args_error=args_error,
            ))
            fragment["id"] = call_id

        assistant: Dict[str, Any] = {"role": "assistant", "content": "".join(text_parts) or None}
        if fragments:
            assistant["tool_calls"] = [
                {
                    "id": fragments[index]["id"],
                    "type": "function",
                    "function": {
                        "name": fragments[index]["name"],
                        "arguments": fragments[index]["arguments"] or "{}",
                    },
                }
                for index in sorted(fragments)
            ]
        self.history.append(assistant)

        for request in requests:
            yield ToolCallRequestEvent(request)
