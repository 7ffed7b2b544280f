"""
Tests for the orchestration loop: termination, usage accumulation, cancellation,
iteration cap, tool failure containment and resumption.
"""

import asyncio
import threading
from typing import Type

import pytest
from pydantic import BaseModel

from agentloop.core.config import RunConfig
from agentloop.core.errors import ConfigurationError, IterationLimitError, ProtocolError, TransportError
from agentloop.core.orchestrator import Orchestrator, RunStatus, run_conversation
from agentloop.core.tool_registry import ToolRegistry
from agentloop.models.common import Message, Session
from agentloop.tools.base_tool import BaseTool

from conftest import EmptyInput, FakeTransport, completion, tool_call


class WaitingTool(BaseTool):
    name = "wait_for_release"
    description = "Blocks until released from another thread."
    args_schema: Type[BaseModel] = EmptyInput

    def __init__(self):
        self.started = threading.Event()
        self.release = threading.Event()
        self.thread_id = None

    def run(self) -> str:
        self.thread_id = threading.get_ident()
        self.started.set()
        return "released" if self.release.wait(timeout=5) else "timed out"


async def test_red_cube_end_to_end(session, registry, run_config):
    transport = FakeTransport([
        completion(
            tool_calls=[tool_call("call_1", "create_game_object", {"name": "Cube", "color": "red"})],
            usage={"prompt_tokens": 100, "completion_tokens": 20, "total_tokens": 120},
        ),
        completion(
            content="Done, I created a red cube.",
            usage={"prompt_tokens": 150, "completion_tokens": 10, "total_tokens": 160},
        ),
    ])

    result = await Orchestrator(registry, transport, run_config).run(session)

    assert result.status == RunStatus.COMPLETED
    assert result.iterations == 2
    assert len(transport.requests) == 2
    assert result.usage.prompt_tokens == 250
    assert result.usage.completion_tokens == 30
    assert result.usage.total_tokens == 280

    roles = [message.role for message in session.messages]
    assert roles == ["user", "assistant", "tool", "assistant"]

    assistant = session.messages[1]
    assert assistant.tool_calls[0].id == "call_1"
    assert assistant.tool_calls[0].function_name == "create_game_object"
    assert assistant.tool_calls[0].type == "function"

    tool_message = session.messages[2]
    assert tool_message.tool_call_id == "call_1"
    assert tool_message.tool_name == "create_game_object"
    assert tool_message.content.startswith("Successfully created red object 'Cube'")

    assert session.messages[3].content == "Done, I created a red cube."
    assert result.final_message == session.messages[3]
    assert registry.get_tool("create_game_object").created == ["Cube"]


async def test_second_request_carries_tool_results(session, registry, run_config):
    transport = FakeTransport([
        completion(tool_calls=[tool_call("call_1", "create_game_object", {"name": "Cube"})]),
        completion(content="ok"),
    ])

    await Orchestrator(registry, transport, run_config).run(session)

    second = transport.requests[1]["messages"]
    assert [m["role"] for m in second] == ["user", "assistant", "tool"]
    assert second[1]["tool_calls"][0]["function"]["name"] == "create_game_object"
    assert second[2]["tool_call_id"] == "call_1"
    assert second[2]["name"] == "create_game_object"


async def test_timings_are_summed(session, registry, run_config):
    transport = FakeTransport([
        completion(tool_calls=[tool_call("a", "create_game_object", {"name": "A"})],
                   timings={"predicted_ms": 500.0, "predicted_n": 40}),
        completion(content="done", timings={"predicted_ms": 250.0, "predicted_n": 10}),
    ])

    result = await Orchestrator(registry, transport, run_config).run(session)

    assert result.usage.predicted_ms == pytest.approx(750.0)
    assert result.usage.predicted_n == 50
    assert result.usage.tokens_per_second == pytest.approx(50 / 0.75)


async def test_stop_without_tool_calls_completes_after_one_request(session, registry, run_config):
    transport = FakeTransport([completion(content=None, reasoning="thinking...")])

    result = await Orchestrator(registry, transport, run_config).run(session)

    assert result.status == RunStatus.COMPLETED
    assert len(transport.requests) == 1
    final = session.messages[-1]
    assert final.role == "assistant"
    assert final.content == ""
    assert final.reasoning_content == "thinking..."


async def test_tool_calls_with_stop_finish_reason_is_final(session, registry, run_config):
    transport = FakeTransport([
        completion(content="answer", tool_calls=[tool_call("x", "create_game_object")], finish_reason="stop"),
    ])

    await Orchestrator(registry, transport, run_config).run(session)

    assert len(session.messages) == 2
    assert session.messages[-1].tool_calls is None
    assert registry.get_tool("create_game_object").created == []


async def test_multiple_tool_calls_run_in_order_with_checkpoints(session, registry, run_config):
    transport = FakeTransport([
        completion(tool_calls=[
            tool_call("c1", "create_game_object", {"name": "First"}),
            tool_call("c2", "create_game_object", {"name": "Second"}),
        ]),
        completion(content="both created"),
    ])
    checkpoints = []

    await Orchestrator(registry, transport, run_config).run(session, checkpoint=checkpoints.append)

    assert checkpoints == [1, 1]
    assert registry.get_tool("create_game_object").created == ["First", "Second"]
    assert [m.tool_call_id for m in session.messages if m.role == "tool"] == ["c1", "c2"]


async def test_async_checkpoint_sees_assistant_message(session, registry, run_config):
    transport = FakeTransport([
        completion(tool_calls=[tool_call("c1", "create_game_object", {"name": "Cube"})]),
        completion(content="ok"),
    ])
    snapshots = []

    async def checkpoint(iteration):
        snapshots.append((iteration, len(session.messages)))

    await Orchestrator(registry, transport, run_config).run(session, checkpoint=checkpoint)

    assert snapshots == [(1, 2)]


async def test_unknown_tool_becomes_not_found_content(session, registry, run_config):
    transport = FakeTransport([
        completion(tool_calls=[tool_call("c1", "teleport")]),
        completion(content="I could not find that tool."),
    ])

    result = await Orchestrator(registry, transport, run_config).run(session)

    assert result.status == RunStatus.COMPLETED
    assert len(transport.requests) == 2
    tool_message = session.messages[2]
    assert tool_message.role == "tool"
    assert "not found" in tool_message.content
    assert "teleport" in tool_message.content


async def test_failing_tool_does_not_abort_run(session, registry, run_config):
    transport = FakeTransport([
        completion(tool_calls=[tool_call("c1", "explode"), tool_call("c2", "refuse")]),
        completion(content="Both tools failed."),
    ])

    result = await Orchestrator(registry, transport, run_config).run(session)

    assert result.status == RunStatus.COMPLETED
    explode, refuse = session.messages[2], session.messages[3]
    assert "Error executing tool 'explode': boom" in explode.content
    assert "Error executing tool 'refuse': not allowed here" in refuse.content


async def test_invalid_tool_arguments_become_error_content(session, registry, run_config):
    transport = FakeTransport([
        completion(tool_calls=[{"id": "c1", "type": "function",
                                "function": {"name": "create_game_object", "arguments": "{not json"}}]),
        completion(content="retrying later"),
    ])

    await Orchestrator(registry, transport, run_config).run(session)

    assert "Invalid arguments for tool 'create_game_object'" in session.messages[2].content


async def test_cancel_before_first_request_sends_nothing(session, registry, run_config):
    transport = FakeTransport([])

    result = await Orchestrator(registry, transport, run_config).run(session, cancel_requested=lambda: True)

    assert result.status == RunStatus.CANCELLED
    assert result.iterations == 0
    assert transport.requests == []
    assert len(session.messages) == 1


async def test_cancel_between_iterations_keeps_first_iteration(session, registry, run_config):
    transport = FakeTransport([
        completion(tool_calls=[tool_call("c1", "create_game_object", {"name": "Cube"})],
                   usage={"prompt_tokens": 5, "completion_tokens": 5, "total_tokens": 10}),
        completion(content="never sent"),
    ])
    polls = []

    def cancel_requested():
        polls.append(True)
        return len(polls) > 1

    result = await Orchestrator(registry, transport, run_config).run(session, cancel_requested=cancel_requested)

    assert result.status == RunStatus.CANCELLED
    assert len(transport.requests) == 1
    assert result.usage.total_tokens == 10
    assert [m.role for m in session.messages] == ["user", "assistant", "tool"]


async def test_iteration_limit_raises_and_keeps_history(session, registry):
    config = RunConfig(model="test-model", enable_tools=True, max_iterations=3)
    transport = FakeTransport([
        completion(tool_calls=[tool_call(f"c{i}", "create_game_object", {"name": f"Obj{i}"})])
        for i in range(5)
    ])

    with pytest.raises(IterationLimitError) as excinfo:
        await Orchestrator(registry, transport, config).run(session)

    assert excinfo.value.max_iterations == 3
    assert len(transport.requests) == 3
    assert len(session.messages) == 1 + 3 * 2


async def test_resume_from_counts_against_limit(session, registry):
    config = RunConfig(model="test-model", enable_tools=True, max_iterations=3)
    transport = FakeTransport([
        completion(tool_calls=[tool_call(f"c{i}", "create_game_object", {"name": f"Obj{i}"})])
        for i in range(5)
    ])
    checkpoints = []

    with pytest.raises(IterationLimitError):
        await Orchestrator(registry, transport, config).run(session, checkpoint=checkpoints.append, resume_from=2)

    assert len(transport.requests) == 1
    assert checkpoints == [3]


async def test_protocol_error_appends_nothing(session, registry, run_config):
    transport = FakeTransport([{"id": "x", "choices": []}])

    with pytest.raises(ProtocolError):
        await Orchestrator(registry, transport, run_config).run(session)

    assert len(session.messages) == 1


async def test_transport_error_propagates(session, registry, run_config):
    transport = FakeTransport([TransportError("Request failed: 503")])

    with pytest.raises(ProtocolError):
        await Orchestrator(registry, transport, run_config).run(session)


async def test_invalid_config_fails_before_any_request(session, registry):
    transport = FakeTransport([completion(content="unused")])
    config = RunConfig(model="", enable_tools=True)

    with pytest.raises(ConfigurationError):
        await Orchestrator(registry, transport, config).run(session)

    assert transport.requests == []


async def test_tools_omitted_when_disabled(session, registry):
    transport = FakeTransport([completion(content="hi")])
    config = RunConfig(model="test-model", enable_tools=False)

    await Orchestrator(registry, transport, config).run(session)

    assert "tools" not in transport.requests[0]


async def test_tools_sent_when_enabled(session, registry, run_config):
    transport = FakeTransport([completion(content="hi")])

    await Orchestrator(registry, transport, run_config).run(session)

    names = [tool["function"]["name"] for tool in transport.requests[0]["tools"]]
    assert names == ["create_game_object", "explode", "grumble", "refuse"]
    assert transport.requests[0]["model"] == "test-model"
    assert transport.requests[0]["max_tokens"] == 256


async def test_missing_tool_call_id_is_generated(session, registry, run_config):
    transport = FakeTransport([
        completion(tool_calls=[{"type": "function",
                                "function": {"name": "create_game_object", "arguments": '{"name": "Cube"}'}}]),
        completion(content="ok"),
    ])

    await Orchestrator(registry, transport, run_config).run(session)

    call_id = session.messages[1].tool_calls[0].id
    assert call_id.startswith("call_")
    assert session.messages[2].tool_call_id == call_id


async def test_resume_after_interruption_does_not_repeat_work(registry, run_config):
    session = Session.new(name="Interrupted")
    session.append(Message(role="user", content="make two cubes"))
    transport = FakeTransport([
        completion(tool_calls=[
            tool_call("c1", "create_game_object", {"name": "One"}),
            tool_call("c2", "create_game_object", {"name": "Two"}),
        ]),
    ])

    class Crash(Exception):
        pass

    def checkpoint(iteration):
        # The process dies before the second tool call runs.
        if len(session.messages) == 3:
            raise Crash()

    with pytest.raises(Crash):
        await Orchestrator(registry, transport, run_config).run(session, checkpoint=checkpoint)

    assert [m.role for m in session.messages] == ["user", "assistant", "tool"]
    assert [c.id for c in session.unresolved_tool_calls()] == ["c2"]

    resumed = FakeTransport([completion(content="One cube exists.")])
    result = await run_conversation(session, registry, run_config, resumed, resume_from=1)

    assert result.status == RunStatus.COMPLETED
    assert registry.get_tool("create_game_object").created == ["One"]
    assert [m.role for m in session.messages] == ["user", "assistant", "tool", "assistant"]
    assert len(resumed.requests[0]["messages"]) == 3


async def test_attachments_are_inlined_in_request_only(registry, run_config):
    from agentloop.models.common import Attachment

    session = Session.new(name="Attachments")
    session.append(Message(
        role="user",
        content="what is this?",
        attachments=[Attachment(name="Player", kind="GameObject", properties={"Tag": "Player"})],
    ))
    transport = FakeTransport([completion(content="A player object.")])

    await Orchestrator(registry, transport, run_config).run(session)

    sent = transport.requests[0]["messages"][0]["content"]
    assert sent.startswith("what is this?\n\n[Attached Objects]:\n")
    assert "Object: Player (Type: GameObject)" in sent
    assert "  Tag: Player" in sent
    assert session.messages[0].content == "what is this?"


async def test_tools_run_off_the_event_loop(session, run_config):
    registry = ToolRegistry([WaitingTool])
    tool = registry.get_tool("wait_for_release")
    stop = threading.Event()
    transport = FakeTransport([completion(tool_calls=[tool_call("call_1", "wait_for_release")])])

    async def cancel_while_tool_runs():
        while not tool.started.is_set():
            await asyncio.sleep(0.01)
        stop.set()
        tool.release.set()

    result, _ = await asyncio.gather(
        Orchestrator(registry, transport, run_config).run(session, cancel_requested=stop.is_set),
        cancel_while_tool_runs(),
    )

    assert tool.thread_id != threading.get_ident()
    assert session.messages[-1].content == "released"
    assert result.status == RunStatus.CANCELLED
    assert result.iterations == 1
