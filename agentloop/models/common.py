# The module is to define the common model for the application.
# Author: Shibo Li
# Date: 2025-07-02
# Version: 0.2.0

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from agentloop.models.wire import Timings, Usage

Role = Literal["system", "user", "assistant", "tool"]

ATTACHMENTS_HEADER = "[Attached Objects]:"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ToolCall(BaseModel):
    """
    Represents a tool call made by the assistant.
    Attributes:
        id (str): The backend-assigned ID for the tool call.
        type (str): The type of the tool call, e.g., 'function'.
        function_name (str): The name of the tool to invoke.
        arguments (str): The raw serialized argument payload, validated only by the tool.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(..., description="The unique ID for the tool call.")
    type: str = Field(default="function", description="The type of the tool call, e.g., 'function'.")
    function_name: str = Field(..., alias="functionName", description="The name of the called function.")
    arguments: str = Field(default="{}", description="The raw JSON arguments for the function.")


class Attachment(BaseModel):
    """
    An external object attached to a user message to give the model context.
    It is inlined into the message content only when the session is projected for the wire.
    """
    model_config = ConfigDict(frozen=True)

    name: str
    kind: str = "Object"
    properties: Dict[str, Any] = Field(default_factory=dict)

    def describe(self) -> str:
        lines = [f"Object: {self.name} (Type: {self.kind})", "{"]
        for key, value in self.properties.items():
            lines.append(f"  {key}: {value}")
        lines.append("}")
        return "\n".join(lines)


class Message(BaseModel):
    """
    Represents a message in the conversation, which can be from the system, user, assistant, or tool.
    Messages are immutable once created; sessions only ever append them.
    Attributes:
        role (Role): The role of the message sender (system, user, assistant, or tool).
        content (Optional[str]): The content of the message.
        reasoning_content (Optional[str]): Model-internal rationale, assistant messages only.
        tool_calls (Optional[List[ToolCall]]): A list of tool calls requested by the assistant.
        tool_call_id (Optional[str]): The ID of the tool call this message is a result of.
        tool_name (Optional[str]): The name of the tool this message is a result of.
        attachments (List[Attachment]): Contextual objects attached to a user message.
        timestamp (datetime): When the message was created.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    role: Role = Field(..., description="The role of the message sender.")
    content: Optional[str] = Field(default=None, description="The content of the message.")
    reasoning_content: Optional[str] = Field(default=None, alias="reasoningContent", description="The model's reasoning, if reported.")
    tool_calls: Optional[List[ToolCall]] = Field(default=None, alias="toolCalls", description="A list of tool calls requested by the assistant.")
    tool_call_id: Optional[str] = Field(default=None, alias="toolCallId", description="The ID of the tool call this message is a result of.")
    tool_name: Optional[str] = Field(default=None, alias="toolName", description="The name of the tool this message is a result of.")
    attachments: List[Attachment] = Field(default_factory=list, description="Objects attached to a user message.")
    timestamp: datetime = Field(default_factory=_utcnow)

    def inline_attachments(self) -> "Message":
        """Returns a copy whose content carries the attachment descriptions, or self if there are none."""
        if self.role != "user" or not self.attachments:
            return self
        content = (self.content or "") + f"\n\n{ATTACHMENTS_HEADER}\n"
        for attachment in self.attachments:
            content += f"\n{attachment.describe()}"
        return self.model_copy(update={"content": content, "attachments": []})


class ParameterSpec(BaseModel):
    type: str = Field(..., description="Primitive type tag, e.g. 'string' or 'integer'.")
    description: str = ""


class ToolSpec(BaseModel):
    """
    The machine-readable description of a tool, sent to the model as a function definition.
    Attributes:
        name (str): Unique key of the tool within a registry.
        description (str): What the tool does, written for the model.
        parameters (Dict[str, ParameterSpec]): Named parameters, in declaration order.
        required (List[str]): The names of the parameters the model must supply.
    """
    name: str
    description: str = ""
    parameters: Dict[str, ParameterSpec] = Field(default_factory=dict)
    required: List[str] = Field(default_factory=list)

    def add_parameter(self, name: str, type: str, description: str, required: bool = False) -> "ToolSpec":
        self.parameters[name] = ParameterSpec(type=type, description=description)
        if required and name not in self.required:
            self.required.append(name)
        return self


class ToolResult(BaseModel):
    """The outcome of one tool execution. Failures are values, not exceptions."""
    success: bool
    content: str


class UsageStats(BaseModel):
    """
    Token and timing statistics summed over every iteration of one orchestration run.
    """
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    predicted_ms: float = 0.0
    predicted_n: int = 0

    def accumulate(self, usage: "Usage", timings: "Timings"):
        self.prompt_tokens += usage.prompt_tokens
        self.completion_tokens += usage.completion_tokens
        self.total_tokens += usage.total_tokens
        self.predicted_ms += timings.predicted_ms
        self.predicted_n += timings.predicted_n

    @property
    def tokens_per_second(self) -> float:
        if self.predicted_ms <= 0:
            return 0.0
        return self.predicted_n / (self.predicted_ms / 1000.0)


class Session(BaseModel):
    """
    Represents a complete conversation session: identity, display metadata and the
    append-only message log. This is the unit of persisted state.
    """
    model_config = ConfigDict(populate_by_name=True)

    chat_id: str = Field(default_factory=lambda: str(uuid.uuid4()), alias="chatId")
    chat_name: str = Field(default="New Chat", alias="chatName")
    created_time: datetime = Field(default_factory=_utcnow, alias="createdTime")
    checkpoint_iteration: Optional[int] = Field(
        default=None, alias="checkpointIteration",
        description="Last iteration recorded by a checkpoint hook; None when no run is in flight.",
    )
    messages: List[Message] = Field(default_factory=list, description="The history of messages in the conversation.")

    @classmethod
    def new(cls, name: Optional[str] = None, index: Optional[int] = None) -> "Session":
        if name is None:
            name = f"Chat {index}" if index is not None else "New Chat"
        return cls(chat_name=name)

    def append(self, message: Message):
        if message.role == "tool":
            if not message.tool_call_id:
                raise ValueError("A tool message must reference a tool_call_id.")
            pending = {call.id for call in self.unresolved_tool_calls()}
            if message.tool_call_id not in pending:
                raise ValueError(
                    f"Tool message references unknown or already answered tool call '{message.tool_call_id}'."
                )
        elif message.tool_calls and message.role != "assistant":
            raise ValueError("Only assistant messages may carry tool calls.")
        self.messages.append(message)

    def unresolved_tool_calls(self) -> List[ToolCall]:
        """Tool calls emitted by assistant messages that have no tool result yet."""
        pending: List[ToolCall] = []
        for message in self.messages:
            if message.role == "assistant" and message.tool_calls:
                pending.extend(message.tool_calls)
            elif message.role == "tool" and message.tool_call_id:
                for index, call in enumerate(pending):
                    if call.id == message.tool_call_id:
                        del pending[index]
                        break
        return pending

    def project_for_wire(self) -> List[Message]:
        """The ordered messages the codec encodes, with attachment descriptions inlined."""
        return [message.inline_attachments() for message in self.messages]

    def display_name(self) -> str:
        if not self.messages:
            return self.chat_name
        return f"{self.chat_name}\n({len(self.messages)} msgs)"
