"""
Shared pytest fixtures: a scripted transport, response builders and a registry of test tools.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Type

import pytest
from pydantic import BaseModel, Field

from agentloop.core.config import RunConfig
from agentloop.core.errors import ToolExecutionError
from agentloop.core.tool_registry import ToolRegistry
from agentloop.models.common import Message, Session
from agentloop.tools.base_tool import BaseTool


# ===== RESPONSE BUILDERS =====


def tool_call(call_id: str, name: str, arguments: Any = None) -> Dict[str, Any]:
    return {
        "id": call_id,
        "type": "function",
        "function": {"name": name, "arguments": json.dumps(arguments or {})},
    }


def completion(
    content: Optional[str] = None,
    tool_calls: Optional[List[Dict[str, Any]]] = None,
    finish_reason: Optional[str] = None,
    usage: Optional[Dict[str, int]] = None,
    timings: Optional[Dict[str, float]] = None,
    reasoning: Optional[str] = None,
) -> Dict[str, Any]:
    """Builds a chat-completions response body like the backends return."""
    if finish_reason is None:
        finish_reason = "tool_calls" if tool_calls else "stop"
    message: Dict[str, Any] = {"role": "assistant", "content": content}
    if reasoning is not None:
        message["reasoning_content"] = reasoning
    if tool_calls:
        message["tool_calls"] = tool_calls
    body: Dict[str, Any] = {
        "id": "chatcmpl-test",
        "object": "chat.completion",
        "created": 1720000000,
        "model": "test-model",
        "choices": [{"index": 0, "message": message, "finish_reason": finish_reason}],
    }
    if usage is not None:
        body["usage"] = usage
    if timings is not None:
        body["timings"] = timings
    return body


class FakeTransport:
    """Replays scripted responses and records every request it was given."""

    def __init__(self, responses: List[Any]):
        self._responses = list(responses)
        self.requests: List[Dict[str, Any]] = []

    async def send(self, request: Dict[str, Any]) -> bytes:
        self.requests.append(request)
        if not self._responses:
            raise AssertionError("FakeTransport ran out of scripted responses")
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, bytes):
            return response
        return json.dumps(response).encode("utf-8")


# ===== TEST TOOLS =====


class CreateObjectInput(BaseModel):
    name: str = Field(..., description="Name of the object to create.")
    color: str = Field(default="white", description="Color of the object.")


class CreateGameObjectTool(BaseTool):
    name = "create_game_object"
    description = "Creates a primitive object in the scene."
    args_schema: Type[BaseModel] = CreateObjectInput

    def __init__(self):
        self.created: List[str] = []

    def run(self, name: str, color: str = "white") -> str:
        self.created.append(name)
        return f"Successfully created {color} object '{name}'."


class EmptyInput(BaseModel):
    pass


class ExplodingTool(BaseTool):
    name = "explode"
    description = "Always fails."
    args_schema: Type[BaseModel] = EmptyInput

    def run(self) -> str:
        raise RuntimeError("boom")


class GrumblingTool(BaseTool):
    name = "grumble"
    description = "Succeeds but logs a warning."
    args_schema: Type[BaseModel] = EmptyInput

    def run(self) -> str:
        logging.getLogger("tests.grumble").warning("disk almost full")
        return "done"


class RefusingTool(BaseTool):
    name = "refuse"
    description = "Fails with a tool error."
    args_schema: Type[BaseModel] = EmptyInput

    def run(self) -> str:
        raise ToolExecutionError("not allowed here")


# ===== FIXTURES =====


@pytest.fixture
def registry() -> ToolRegistry:
    return ToolRegistry([CreateGameObjectTool, ExplodingTool, GrumblingTool, RefusingTool])


@pytest.fixture
def run_config() -> RunConfig:
    return RunConfig(model="test-model", temperature=0.2, max_tokens=256, enable_tools=True, max_iterations=50)


@pytest.fixture
def session() -> Session:
    session = Session.new(name="Test Chat")
    session.append(Message(role="user", content="create a red cube at origin"))
    return session


@pytest.fixture
def sessions_file(tmp_path):
    return tmp_path / "data" / "sessions.json"
