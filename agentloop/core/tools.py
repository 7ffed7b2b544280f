# agentloop/core/tools.py
# This file acts as the registration list for all tools the orchestrator can use.
# Add a tool class here to make it discoverable by the ToolRegistry.

from typing import List, Type

from agentloop.tools.base_tool import BaseTool
from agentloop.tools.current_time_tool import CurrentTimeTool
from agentloop.tools.log_message_tool import LogMessageTool

BUILTIN_TOOLS: List[Type[BaseTool]] = [
    LogMessageTool,
    CurrentTimeTool,
]
