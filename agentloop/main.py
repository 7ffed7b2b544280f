# The module provides a FastAPI application that serves as the main entry point for agentloop.
# Author: Shibo Li
# Date: 2025-07-05
# Version: 0.2.0

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from agentloop.api.deps import get_store, get_tool_registry
from agentloop.api.v1.api import api_router
from agentloop.core.config import get_settings
from agentloop.core.errors import ConfigurationError, IterationLimitError, ProtocolError
from agentloop.utils.logger import console


@asynccontextmanager
async def lifespan(app: FastAPI):
    console.set_level(get_settings().LOG_LEVEL)
    get_tool_registry()
    for session in await get_store().list_sessions():
        if session.checkpoint_iteration is not None:
            console.warning(
                f"Session '{session.chat_id}' was interrupted at iteration {session.checkpoint_iteration}. "
                f"POST /v1/chat/{session.chat_id}/resume to continue it."
            )
    yield


app = FastAPI(
    title="agentloop",
    version="0.2.0",
    description="Drives tool-calling conversations between users, an LLM backend and pluggable tools.",
    lifespan=lifespan,
)


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    console.error(f"Configuration error: {exc}")
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": str(exc)})


@app.exception_handler(ProtocolError)
async def protocol_error_handler(request: Request, exc: ProtocolError):
    console.display_error_panel("LLM backend error", str(exc))
    return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content={"detail": str(exc)})


@app.exception_handler(IterationLimitError)
async def iteration_limit_handler(request: Request, exc: IterationLimitError):
    console.display_error_panel("Run aborted", str(exc))
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


@app.get("/", summary="Health Check", tags=["Status"])
def read_root():
    """Root endpoint to check if the service is alive."""
    console.info("Health check endpoint was hit.")
    return {"message": "agentloop is alive and running!"}


# Include the v1 router with a global '/v1' prefix
app.include_router(api_router, prefix="/v1")
