# The module translates between session messages and the chat-completions wire format.
# Author: Shibo Li
# Date: 2025-07-03
# Version: 0.1.0

import json
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import ValidationError

from agentloop.core.config import RunConfig
from agentloop.core.errors import ProtocolError
from agentloop.models.common import Message, ToolSpec
from agentloop.models.wire import ChatCompletion


def encode_message(message: Message) -> Dict[str, Any]:
    """Maps one session message to its wire shape."""
    if message.role == "tool":
        return {
            "role": "tool",
            "tool_call_id": message.tool_call_id,
            "name": message.tool_name,
            "content": message.content,
        }

    wire_message: Dict[str, Any] = {
        "role": message.role,
        "content": message.content or "",
    }
    if message.tool_calls:
        wire_message["tool_calls"] = [
            {
                "id": call.id,
                "type": call.type,
                "function": {"name": call.function_name, "arguments": call.arguments},
            }
            for call in message.tool_calls
        ]
    return wire_message


def encode_tool_definition(spec: ToolSpec) -> Dict[str, Any]:
    """
    Returns the tool's definition in a format compliant with OpenAI's
    function-calling format.
    """
    parameters: Dict[str, Any] = {
        "type": "object",
        "properties": {
            name: {"type": param.type, "description": param.description}
            for name, param in spec.parameters.items()
        },
    }
    if spec.required:
        parameters["required"] = list(spec.required)

    return {
        "type": "function",
        "function": {
            "name": spec.name,
            "description": spec.description,
            "parameters": parameters,
        },
    }


def encode_request(
    history: Iterable[Message],
    tools: Optional[List[ToolSpec]],
    config: RunConfig,
) -> Dict[str, Any]:
    """
    Builds the request body for one chat-completions call.
    The tools array is only included when tool use is enabled and at least one spec exists.
    """
    request: Dict[str, Any] = {
        "model": config.model,
        "messages": [encode_message(message) for message in history],
        "temperature": config.temperature,
        "max_tokens": config.max_tokens,
    }
    if config.enable_tools and tools:
        request["tools"] = [encode_tool_definition(spec) for spec in tools]
    return request


def decode_response(raw: Union[bytes, str]) -> ChatCompletion:
    """
    Parses a raw chat-completions response body.

    Missing optional fields (content, reasoning, tool calls, usage, timings) are
    never an error; they come back empty or zero-valued.

    Raises:
        ProtocolError: If the body is not a JSON object or has no choices.
    """
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise ProtocolError(f"Response body is not valid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise ProtocolError(f"Expected a JSON object, got {type(payload).__name__}.")

    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        raise ProtocolError("Invalid response format: 'choices' is missing or empty.")

    try:
        return ChatCompletion.model_validate(payload)
    except ValidationError as e:
        raise ProtocolError(f"Invalid response format: {e}") from e
