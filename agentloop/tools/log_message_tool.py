# A tool that writes a message to the server log.
# Author: Shibo Li
# Date: 2025-07-03
# Version: 0.1.0

import logging
from pydantic import BaseModel, Field
from typing import Literal, Type
from .base_tool import BaseTool

logger = logging.getLogger(__name__)

_LEVELS = {
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class LogMessageInput(BaseModel):
    """Input model for the Log Message tool."""
    message: str = Field(..., description="The message to log.")
    type: Literal["info", "warning", "error"] = Field(
        default="info", description="Log type: 'info', 'warning', or 'error' (default: 'info')."
    )


class LogMessageTool(BaseTool):
    """
    Writes a message to the server log. Warnings and errors logged here are captured by
    the tool registry and returned to the model together with the result.
    """
    name: str = "log_message"
    description: str = "Logs a message to the server console. Useful for debugging or providing feedback."
    args_schema: Type[BaseModel] = LogMessageInput

    def run(self, message: str, type: str = "info") -> str:
        logger.log(_LEVELS[type], message)
        return f"Logged {type} message: {message}"
