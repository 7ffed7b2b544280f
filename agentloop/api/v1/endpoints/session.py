# The module is to define the API endpoints for session management.
# Author: Shibo Li
# Date: 2025-07-05
# Version: 0.2.0

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from agentloop.api.deps import get_store
from agentloop.models.api_models import NewSessionRequest, SessionSummary
from agentloop.models.common import Session
from agentloop.services.session_manager import SessionStore, export_sessions_json
from agentloop.utils.logger import console

router = APIRouter()


@router.post("/new", response_model=SessionSummary)
async def create_new_session(
    request: Optional[NewSessionRequest] = None,
    store: SessionStore = Depends(get_store),
):
    """
    Creates an empty session and returns its summary.
    """
    existing = await store.list_sessions()
    session = Session.new(name=request.name if request else None, index=len(existing) + 1)
    await store.save_session(session)
    console.info(f"New session created: {session.chat_id}")
    return SessionSummary.from_session(session)


@router.get("/", response_model=List[SessionSummary])
async def list_sessions(store: SessionStore = Depends(get_store)):
    return [SessionSummary.from_session(session) for session in await store.list_sessions()]


@router.get("/export")
async def export_sessions(store: SessionStore = Depends(get_store)):
    """
    Returns every session in the persisted JSON array format.
    """
    return export_sessions_json(await store.list_sessions())


@router.get("/{session_id}", response_model=Session, response_model_by_alias=True)
async def get_session(session_id: str, store: SessionStore = Depends(get_store)):
    session = await store.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Session '{session_id}' not found.")
    return session


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(session_id: str, store: SessionStore = Depends(get_store)):
    if not await store.delete_session(session_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Session '{session_id}' not found.")
    console.info(f"Session deleted: {session_id}")
