# The module defines the parsed shape of a chat-completions response.
# Author: Shibo Li
# Date: 2025-07-02
# Version: 0.1.0

import json
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

TOOL_CALLS_FINISH_REASON = "tool_calls"


class WireModel(BaseModel):
    """
    Base for every response model. Cloud and local inference servers disagree on which
    optional fields they send, so null values are dropped and the field default applies.
    """
    model_config = ConfigDict(extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {key: value for key, value in data.items() if value is not None}
        return data


class Usage(WireModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class Timings(WireModel):
    """Throughput fields reported by llama.cpp-style local servers."""
    cache_n: int = 0
    prompt_n: int = 0
    prompt_ms: float = 0.0
    prompt_per_token_ms: float = 0.0
    prompt_per_second: float = 0.0
    predicted_n: int = 0
    predicted_ms: float = 0.0
    predicted_per_token_ms: float = 0.0
    predicted_per_second: float = 0.0


class FunctionCall(WireModel):
    name: str = ""
    arguments: str = ""

    @field_validator("arguments", mode="before")
    @classmethod
    def _serialize_object_arguments(cls, value: Any) -> Any:
        # Some servers send the arguments as a JSON object instead of a string.
        if isinstance(value, (dict, list)):
            return json.dumps(value)
        return value


class WireToolCall(WireModel):
    id: str = ""
    type: str = "function"
    function: FunctionCall = Field(default_factory=FunctionCall)


class ResponseMessage(WireModel):
    role: str = "assistant"
    content: Optional[str] = None
    reasoning_content: Optional[str] = None
    tool_calls: List[WireToolCall] = Field(default_factory=list)


class Choice(WireModel):
    index: int = 0
    message: ResponseMessage = Field(default_factory=ResponseMessage)
    finish_reason: Optional[str] = None


class ChatCompletion(WireModel):
    """
    A decoded chat-completions response. `choices` is guaranteed non-empty by the codec.
    """
    id: str = ""
    object: str = ""
    created: int = 0
    model: str = ""
    choices: List[Choice] = Field(default_factory=list)
    usage: Usage = Field(default_factory=Usage)
    timings: Timings = Field(default_factory=Timings)

    @property
    def first_choice(self) -> Choice:
        return self.choices[0]

    @property
    def wants_tools(self) -> bool:
        choice = self.first_choice
        return choice.finish_reason == TOOL_CALLS_FINISH_REASON and bool(choice.message.tool_calls)
