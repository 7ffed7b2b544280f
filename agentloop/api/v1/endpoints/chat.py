# The module is to define the API endpoints for chat interactions.
# Author: Shibo Li
# Date: 2025-07-05
# Version: 0.2.0

import threading
from contextlib import contextmanager
from typing import Iterator

from fastapi import APIRouter, Depends, HTTPException, status

from agentloop.api.deps import (
    ActiveRuns,
    RunAlreadyActiveError,
    get_active_runs,
    get_run_config,
    get_store,
    get_tool_registry,
    get_transport,
)
from agentloop.core.config import RunConfig
from agentloop.core.orchestrator import Orchestrator, RunResult
from agentloop.core.tool_registry import ToolRegistry
from agentloop.models.api_models import CancelResponse, ChatRequest, ChatResponse
from agentloop.models.common import Message, Session
from agentloop.services.llm_connector import ChatTransport
from agentloop.services.session_manager import SessionStore
from agentloop.utils.logger import console

router = APIRouter()


async def _load_session(store: SessionStore, session_id: str) -> Session:
    session = await store.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Session '{session_id}' not found.")
    return session


@contextmanager
def _exclusive_run(runs: ActiveRuns, session_id: str) -> Iterator[threading.Event]:
    """
    Claims the session for one run. The claim is taken before the session is loaded
    and held until the run ends, so a concurrent request cannot write a stale snapshot.
    """
    try:
        with runs.track(session_id) as cancel_flag:
            yield cancel_flag
    except RunAlreadyActiveError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e


async def _drive(
    session: Session,
    store: SessionStore,
    orchestrator: Orchestrator,
    cancel_flag: threading.Event,
    resume_from: int = 0,
) -> RunResult:
    """
    Runs the orchestrator on the session. Before every tool execution the session and the
    current iteration are saved, so a restarted server can resume the run.
    """
    async def checkpoint(iteration: int):
        session.checkpoint_iteration = iteration
        await store.save_session(session)

    try:
        result = await orchestrator.run(
            session,
            cancel_requested=cancel_flag.is_set,
            checkpoint=checkpoint,
            resume_from=resume_from,
        )
    finally:
        session.checkpoint_iteration = None
        await store.save_session(session)

    if result.iterations:
        console.display_usage_table(
            {**result.usage.model_dump(), "tokens_per_second": result.usage.tokens_per_second},
            title=f"Run statistics for {session.chat_id}",
        )
    return result


def _to_response(session: Session, result: RunResult) -> ChatResponse:
    final = result.final_message
    return ChatResponse(
        session_id=session.chat_id,
        status=result.status,
        content=final.content if final else None,
        reasoning_content=final.reasoning_content if final else None,
        usage=result.usage,
        iterations=result.iterations,
        message_count=len(session.messages),
    )


@router.post("/", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    store: SessionStore = Depends(get_store),
    registry: ToolRegistry = Depends(get_tool_registry),
    transport: ChatTransport = Depends(get_transport),
    config: RunConfig = Depends(get_run_config),
    runs: ActiveRuns = Depends(get_active_runs),
):
    """
    Appends the user's message to the session and runs the conversation until the
    model answers, the run is cancelled, or it fails.
    """
    console.info(f"Received chat request for session_id: {request.session_id}")
    with _exclusive_run(runs, request.session_id) as cancel_flag:
        session = await _load_session(store, request.session_id)
        session.append(Message(role="user", content=request.user_input, attachments=request.attachments))
        await store.save_session(session)

        orchestrator = Orchestrator(registry=registry, transport=transport, config=config)
        result = await _drive(session, store, orchestrator, cancel_flag)
    return _to_response(session, result)


@router.post("/{session_id}/resume", response_model=ChatResponse)
async def resume_chat(
    session_id: str,
    store: SessionStore = Depends(get_store),
    registry: ToolRegistry = Depends(get_tool_registry),
    transport: ChatTransport = Depends(get_transport),
    config: RunConfig = Depends(get_run_config),
    runs: ActiveRuns = Depends(get_active_runs),
):
    """
    Continues an interrupted or cancelled run with the history as it stands.
    Nothing already in the session is re-executed.
    """
    with _exclusive_run(runs, session_id) as cancel_flag:
        session = await _load_session(store, session_id)
        resume_from = session.checkpoint_iteration or 0
        console.info(f"Resuming session '{session_id}' from iteration {resume_from}.")

        orchestrator = Orchestrator(registry=registry, transport=transport, config=config)
        result = await _drive(session, store, orchestrator, cancel_flag, resume_from=resume_from)
    return _to_response(session, result)


@router.post("/{session_id}/cancel", response_model=CancelResponse)
async def cancel_chat(session_id: str, runs: ActiveRuns = Depends(get_active_runs)):
    """
    Asks the run in progress to stop. It stops at the next iteration boundary.
    """
    if not runs.cancel(session_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No run in progress for session '{session_id}'.",
        )
    console.warning(f"Cancellation requested for session '{session_id}'.")
    return CancelResponse(session_id=session_id, message="Cancellation requested.")
