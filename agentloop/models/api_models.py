# The module is to define the API models for the application.
# Author: Shibo Li
# Date: 2025-07-05
# Version: 0.2.0

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from agentloop.core.orchestrator import RunStatus
from agentloop.models.common import Attachment, Session, UsageStats


class ChatRequest(BaseModel):
    """
    Defines the request body for the /v1/chat endpoint.
    Attributes:
        session_id (str): The unique ID for the conversation session.
        user_input (str): The user's text input to be processed by the chat service.
        attachments (List[Attachment]): Contextual objects attached to the message.
    """
    session_id: str = Field(..., description="The unique ID for the conversation session.")
    user_input: str = Field(..., min_length=1, description="The user's text input.")
    attachments: List[Attachment] = Field(default_factory=list, description="Objects attached to the message.")


class ChatResponse(BaseModel):
    """
    Defines the response body for the /v1/chat endpoints.
    Attributes:
        session_id (str): The unique ID for the conversation session.
        status (RunStatus): 'completed' or 'cancelled'.
        content (Optional[str]): The final answer, for completed runs.
        reasoning_content (Optional[str]): The model's reasoning for the final answer, if any.
        usage (UsageStats): Usage summed over every request of the run.
        iterations (int): Number of requests sent during the run.
        message_count (int): Number of messages in the session after the run.
    """
    session_id: str
    status: RunStatus
    content: Optional[str] = None
    reasoning_content: Optional[str] = None
    usage: UsageStats
    iterations: int
    message_count: int


class NewSessionRequest(BaseModel):
    name: Optional[str] = Field(default=None, description="Display name; defaults to 'Chat <n>'.")


class SessionSummary(BaseModel):
    """
    Defines the short description of a session returned by the session endpoints.
    """
    session_id: str
    name: str
    display_name: str
    message_count: int
    created_time: datetime
    checkpoint_iteration: Optional[int] = None

    @classmethod
    def from_session(cls, session: Session) -> "SessionSummary":
        return cls(
            session_id=session.chat_id,
            name=session.chat_name,
            display_name=session.display_name(),
            message_count=len(session.messages),
            created_time=session.created_time,
            checkpoint_iteration=session.checkpoint_iteration,
        )


class CancelResponse(BaseModel):
    session_id: str
    message: str


class ToolExecuteRequest(BaseModel):
    arguments: str = Field(default="{}", description="Raw JSON argument payload, as the model would send it.")


class ToolExecuteResponse(BaseModel):
    tool_name: str
    success: bool
    content: str


class ToolRefreshResponse(BaseModel):
    tool_count: int
    tools: List[str]


class ToolDefinitionsResponse(BaseModel):
    definitions: List[Dict[str, Any]]
