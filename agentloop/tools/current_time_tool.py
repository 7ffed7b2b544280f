# A tool that reports the current date and time in a given timezone.
# Author: Shibo Li
# Date: 2025-07-03
# Version: 0.1.0

from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
from pydantic import BaseModel, Field
from typing import Type
from .base_tool import BaseTool
from agentloop.core.errors import ToolExecutionError


class CurrentTimeInput(BaseModel):
    """Input model for the Current Time tool."""
    timezone: str = Field(default="UTC", description="IANA timezone name, e.g. 'Europe/Paris'. Defaults to UTC.")


class CurrentTimeTool(BaseTool):
    """Returns the current date and time as an ISO-8601 string."""
    name: str = "get_current_time"
    description: str = "Returns the current date and time in the requested timezone (ISO-8601)."
    args_schema: Type[BaseModel] = CurrentTimeInput

    def run(self, timezone: str = "UTC") -> str:
        try:
            zone = ZoneInfo(timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ToolExecutionError(f"Unknown timezone '{timezone}'.") from e
        return f"The current time in {timezone} is {datetime.now(zone).isoformat(timespec='seconds')}."
