# agentloop/core/orchestrator.py
# The tool-calling conversation loop: request, decode, dispatch tools, repeat.
# Author: Shibo Li
# Date: 2025-07-04
# Version: 4.0.0

import asyncio
import inspect
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, Field

from agentloop.core.codec import decode_response, encode_request
from agentloop.core.config import RunConfig
from agentloop.core.errors import IterationLimitError, ToolNotFoundError
from agentloop.core.tool_registry import ToolRegistry
from agentloop.models.common import Message, Session, ToolCall, UsageStats
from agentloop.models.wire import WireToolCall
from agentloop.services.llm_connector import ChatTransport
from agentloop.utils.logger import console

CancelPredicate = Callable[[], bool]
CheckpointCallback = Callable[[int], Union[None, Awaitable[None]]]


class RunStatus(str, Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class RunResult(BaseModel):
    """
    Outcome of one orchestration run that ended without an error.
    Attributes:
        status (RunStatus): COMPLETED when the model gave a final answer, CANCELLED otherwise.
        usage (UsageStats): Usage summed over every request of this run.
        iterations (int): Number of requests sent during this run.
        final_message (Optional[Message]): The final assistant message, for completed runs.
    """
    status: RunStatus
    usage: UsageStats = Field(default_factory=UsageStats)
    iterations: int = 0
    final_message: Optional[Message] = None


def _to_tool_call(wire_call: WireToolCall) -> ToolCall:
    # Some local servers omit the id; the tool result still needs one to point back to.
    call_id = wire_call.id or f"call_{uuid4().hex[:24]}"
    return ToolCall(
        id=call_id,
        type=wire_call.type or "function",
        function_name=wire_call.function.name,
        arguments=wire_call.function.arguments,
    )


class Orchestrator:
    """
    Drives one session at a time through the request / tool-dispatch loop.

    A run ends in one of three ways: the model answers without tool calls
    (COMPLETED), the cancel predicate fires at an iteration boundary (CANCELLED),
    or an error is raised (ConfigurationError, ProtocolError, IterationLimitError).
    Tool failures never end a run; they become tool-result content.
    """
    def __init__(self, registry: ToolRegistry, transport: ChatTransport, config: RunConfig):
        self.registry = registry
        self.transport = transport
        self.config = config

    async def run(
        self,
        session: Session,
        cancel_requested: Optional[CancelPredicate] = None,
        checkpoint: Optional[CheckpointCallback] = None,
        resume_from: int = 0,
    ) -> RunResult:
        """
        Runs the loop on `session` until a terminal state.

        Args:
            session: The conversation to continue. Messages are appended in place.
            cancel_requested: Polled before every request; True stops the run cleanly.
            checkpoint: Called with the iteration number before each tool execution,
                so the caller can durably record progress. May be a coroutine function.
            resume_from: Iterations already spent by an interrupted run of this session.
                Numbering continues from here and counts against max_iterations.

        Returns:
            A RunResult with the accumulated usage statistics.

        Raises:
            ConfigurationError: If the run config is unusable. Nothing is sent.
            ProtocolError: If a response is malformed or has no choices.
            IterationLimitError: If max_iterations is exceeded.
        """
        self.config.validate_for_run()

        pending = session.unresolved_tool_calls()
        if pending:
            console.warning(
                f"Resuming session '{session.chat_id}' with {len(pending)} unanswered tool call(s): "
                f"{[call.function_name for call in pending]}"
            )

        usage = UsageStats()
        requests_sent = 0
        max_iterations = self.config.max_iterations

        for iteration in range(resume_from + 1, max_iterations + 1):
            if cancel_requested is not None and cancel_requested():
                console.warning(f"Run for session '{session.chat_id}' cancelled before iteration {iteration}.")
                return RunResult(status=RunStatus.CANCELLED, usage=usage, iterations=requests_sent)

            console.rule(f"Iteration {iteration}")
            tools = self.registry.get_definitions() if self.config.enable_tools else None
            request = encode_request(session.project_for_wire(), tools, self.config)

            raw = await self.transport.send(request)
            requests_sent += 1
            response = decode_response(raw)

            choice = response.first_choice
            console.info(f"Iteration {iteration}: finish_reason = {choice.finish_reason}")
            usage.accumulate(response.usage, response.timings)

            if not response.wants_tools:
                final_message = Message(
                    role="assistant",
                    content=choice.message.content or "",
                    reasoning_content=choice.message.reasoning_content,
                )
                session.append(final_message)
                console.success(f"Session '{session.chat_id}' completed after {requests_sent} request(s).")
                return RunResult(
                    status=RunStatus.COMPLETED,
                    usage=usage,
                    iterations=requests_sent,
                    final_message=final_message,
                )

            tool_calls = [_to_tool_call(call) for call in choice.message.tool_calls]
            session.append(Message(
                role="assistant",
                content=choice.message.content,
                reasoning_content=choice.message.reasoning_content,
                tool_calls=tool_calls,
            ))

            for tool_call in tool_calls:
                if checkpoint is not None:
                    await self._invoke_checkpoint(checkpoint, iteration)
                session.append(Message(
                    role="tool",
                    tool_call_id=tool_call.id,
                    tool_name=tool_call.function_name,
                    content=await self._execute_tool(tool_call),
                ))

        raise IterationLimitError(max_iterations)

    async def _execute_tool(self, tool_call: ToolCall) -> str:
        """Runs the tool in a worker thread so the event loop keeps serving requests."""
        try:
            result = await asyncio.to_thread(self.registry.execute, tool_call.function_name, tool_call.arguments)
        except ToolNotFoundError as e:
            return f"Error: {e}"
        return result.content

    @staticmethod
    async def _invoke_checkpoint(checkpoint: CheckpointCallback, iteration: int):
        result: Any = checkpoint(iteration)
        if inspect.isawaitable(result):
            await result


async def run_conversation(
    session: Session,
    registry: ToolRegistry,
    config: RunConfig,
    transport: ChatTransport,
    cancel_requested: Optional[CancelPredicate] = None,
    checkpoint: Optional[CheckpointCallback] = None,
    resume_from: int = 0,
) -> RunResult:
    """Convenience wrapper: builds an Orchestrator and runs it once."""
    orchestrator = Orchestrator(registry=registry, transport=transport, config=config)
    return await orchestrator.run(
        session,
        cancel_requested=cancel_requested,
        checkpoint=checkpoint,
        resume_from=resume_from,
    )
