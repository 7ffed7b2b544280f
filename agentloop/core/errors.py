# The module defines the exception hierarchy of the orchestration core.
# Author: Shibo Li
# Date: 2025-07-02
# Version: 0.1.0


class AgentLoopError(Exception):
    """Base class for every error raised by agentloop."""


class ConfigurationError(AgentLoopError):
    """Raised before any request is sent when the run cannot be configured (e.g. missing API key)."""


class ProtocolError(AgentLoopError):
    """Raised when the backend response is malformed or carries no choices."""


class TransportError(ProtocolError):
    """Raised when the request could not be delivered or the backend answered with an HTTP error."""


class IterationLimitError(AgentLoopError):
    """Raised when a run exceeds its maximum number of iterations."""

    def __init__(self, max_iterations: int):
        self.max_iterations = max_iterations
        super().__init__(
            f"Maximum iteration limit ({max_iterations}) reached. Possible infinite loop in tool calls."
        )


class ToolError(AgentLoopError):
    """Base class for tool failures. These never escape the orchestration loop."""


class ToolExecutionError(ToolError):
    """Raised by a tool when it cannot complete the requested action."""


class ToolNotFoundError(ToolError):
    """Raised by the registry when no tool is registered under the requested name."""

    def __init__(self, tool_name: str):
        self.tool_name = tool_name
        super().__init__(f"Tool '{tool_name}' not found in registry")
