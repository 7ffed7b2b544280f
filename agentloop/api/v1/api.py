# The module is to define the API router for the application.
# Author: Shibo Li
# Date: 2025-07-05
# Version: 0.2.0

from fastapi import APIRouter
from agentloop.api.v1.endpoints import session, chat, tools

api_router = APIRouter()

# Include the session router with a '/session' prefix
api_router.include_router(session.router, prefix="/session", tags=["Session Management"])

# Include the chat router with a '/chat' prefix
api_router.include_router(chat.router, prefix="/chat", tags=["Conversation"])

# Include the tools router with a '/tools' prefix
api_router.include_router(tools.router, prefix="/tools", tags=["Tool Management"])
