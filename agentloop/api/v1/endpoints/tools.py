# This module provides API endpoints for browsing and testing the registered tools.
# Author: Shibo Li
# Date: 2025-07-05
# Version: 0.1.0

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import PlainTextResponse

from agentloop.api.deps import get_tool_registry
from agentloop.core.codec import encode_tool_definition
from agentloop.core.errors import ToolNotFoundError
from agentloop.core.tool_registry import ToolRegistry
from agentloop.models.api_models import (
    ToolDefinitionsResponse,
    ToolExecuteRequest,
    ToolExecuteResponse,
    ToolRefreshResponse,
)

router = APIRouter()


@router.get("/", response_model=ToolDefinitionsResponse)
def list_tools(registry: ToolRegistry = Depends(get_tool_registry)):
    """
    Returns the tool definitions exactly as they are sent to the model.
    """
    return ToolDefinitionsResponse(
        definitions=[encode_tool_definition(spec) for spec in registry.get_definitions()]
    )


@router.get("/summary", response_class=PlainTextResponse)
def tools_summary(registry: ToolRegistry = Depends(get_tool_registry)):
    return registry.get_summary()


@router.post("/refresh", response_model=ToolRefreshResponse)
def refresh_tools(registry: ToolRegistry = Depends(get_tool_registry)):
    """
    Re-runs tool discovery, replacing the current catalog.
    """
    count = registry.discover()
    return ToolRefreshResponse(tool_count=count, tools=list(registry.tools))


@router.post("/{tool_name}/execute", response_model=ToolExecuteResponse)
def execute_tool(
    tool_name: str,
    request: ToolExecuteRequest,
    registry: ToolRegistry = Depends(get_tool_registry),
):
    """
    Runs one tool directly with a raw argument payload, outside of any conversation.
    """
    try:
        result = registry.execute(tool_name, request.arguments)
    except ToolNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    return ToolExecuteResponse(tool_name=tool_name, success=result.success, content=result.content)
