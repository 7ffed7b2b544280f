# Discovers and manages all available tools.
# Author: Shibo Li
# Date: 2025-07-03
# Version: 2.0.0: Static registration list, log capture and contained failures.

import logging
import threading
import traceback
import warnings
from contextlib import contextmanager
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional

from agentloop.core.errors import ToolExecutionError, ToolNotFoundError
from agentloop.core.tools import BUILTIN_TOOLS
from agentloop.models.common import ToolResult, ToolSpec
from agentloop.utils.logger import console

CAPTURED_LOGS_HEADER = "--- Captured Logs During Execution ---"


class _CaptureHandler(logging.Handler):
    """Collects info, warning and error records emitted on one thread."""

    def __init__(self, thread_id: int):
        super().__init__(level=logging.INFO)
        self._thread_id = thread_id
        self.errors: List[str] = []
        self.warnings: List[str] = []
        self.logs: List[str] = []

    def emit(self, record: logging.LogRecord):
        if record.thread != self._thread_id:
            return
        message = record.getMessage()
        if record.levelno >= logging.ERROR:
            self.errors.append(f"[{record.levelname.title()}] {message}")
            if record.exc_info:
                self.errors.append(f"Stack trace: {logging.Formatter().formatException(record.exc_info)}")
        elif record.levelno >= logging.WARNING:
            self.warnings.append(f"[Warning] {message}")
        else:
            self.logs.append(message)


class CapturedDiagnostics:
    def __init__(self):
        self.errors: List[str] = []
        self.warnings: List[str] = []
        self.logs: List[str] = []

    def __bool__(self) -> bool:
        return bool(self.errors or self.warnings or self.logs)

    def render(self) -> str:
        text = f"\n\n{CAPTURED_LOGS_HEADER}"
        if self.errors:
            text += "\n\n⚠️ Errors:\n" + "\n".join(self.errors)
        if self.warnings:
            text += "\n\n⚠️ Warnings:\n" + "\n".join(self.warnings)
        if self.logs:
            text += "\n\nInfo:\n" + "\n".join(self.logs)
        return text


@contextmanager
def capture_diagnostics() -> Iterator[CapturedDiagnostics]:
    """
    Captures log records at INFO or above and `warnings.warn` calls made on the
    current thread while the block runs. Records below a logger's effective level
    are never created, so they cannot be captured.
    """
    captured = CapturedDiagnostics()
    handler = _CaptureHandler(threading.get_ident())
    root = logging.getLogger()
    root.addHandler(handler)
    try:
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            yield captured
    finally:
        root.removeHandler(handler)
        captured.errors.extend(handler.errors)
        captured.warnings.extend(handler.warnings)
        captured.logs.extend(handler.logs)
        captured.warnings.extend(f"[Warning] {w.category.__name__}: {w.message}" for w in caught)


class ToolRegistry:
    """
    A class to discover, register, and dispatch tools.

    The catalog is read-mostly: `discover` builds a new catalog off to the side and
    swaps it in under a lock, so concurrent `execute` calls always see a complete one.
    """
    def __init__(self, tool_classes: Optional[Iterable[Callable[[], Any]]] = None, discover: bool = True):
        self._tool_classes = list(BUILTIN_TOOLS if tool_classes is None else tool_classes)
        self._tools: Dict[str, Any] = {}
        self._lock = threading.Lock()
        self._execution_lock = threading.Lock()
        if discover:
            self.discover()

    def register_class(self, tool_class: Callable[[], Any]):
        """Adds a tool class to the registration list. Takes effect on the next discover()."""
        with self._lock:
            self._tool_classes.append(tool_class)

    def discover(self) -> int:
        """
        Instantiates every registered tool class and replaces the catalog.
        Tools with an empty name, a duplicate name or a failing constructor are
        logged and skipped; the first registration of a name wins.
        """
        with self._lock:
            catalog: Dict[str, Any] = {}
            for tool_class in self._tool_classes:
                class_name = getattr(tool_class, "__name__", repr(tool_class))
                try:
                    instance = tool_class()
                    spec = instance.get_spec()
                except Exception as e:
                    console.error(f"Failed to instantiate tool '{class_name}': {e}")
                    continue

                if not spec.name:
                    console.warning(f"Tool '{class_name}' has no name specified. Skipping.")
                    continue
                if spec.name in catalog:
                    console.warning(f"Duplicate tool name '{spec.name}' found in {class_name}. Skipping.")
                    continue

                catalog[spec.name] = instance
                console.debug(f"Registered tool: {spec.name} ({class_name})")

            self._tools = catalog

        console.success(f"Tool discovery complete. Found {len(catalog)} tools: {list(catalog)}")
        return len(catalog)

    @property
    def tools(self) -> Mapping[str, Any]:
        return MappingProxyType(self._tools)

    def get_tool(self, tool_name: str) -> Optional[Any]:
        return self._tools.get(tool_name)

    def get_definitions(self) -> List[ToolSpec]:
        """Returns a snapshot of all tool specs for the LLM."""
        return [tool.get_spec() for tool in self._tools.values()]

    def get_summary(self) -> str:
        tools = self._tools
        if not tools:
            return "No tools registered."

        summary = f"Registered Tools ({len(tools)}):\n"
        for tool in tools.values():
            spec = tool.get_spec()
            summary += f"\n• {spec.name}: {spec.description}"
            if spec.parameters:
                summary += f"\n  Parameters: {', '.join(spec.parameters)}"
        return summary

    def execute(self, tool_name: str, arguments: str) -> ToolResult:
        """
        Executes a tool by its name with the raw argument payload from the model.
        Any exception raised by the tool is turned into a failed ToolResult, and
        anything logged while it ran is appended to the result text.
        Executions are serialized: one tool runs at a time, whichever thread calls this.

        Raises:
            ToolNotFoundError: If no tool is registered under `tool_name`.
        """
        tool = self._tools.get(tool_name)
        if tool is None:
            console.error(f"Attempted to execute unknown tool: {tool_name}")
            raise ToolNotFoundError(tool_name)

        console.info(f"Executing tool: {tool_name} with arguments: {arguments}")
        failure: Optional[BaseException] = None
        with self._execution_lock, capture_diagnostics() as captured:
            try:
                content = str(tool.execute(arguments))
            except ToolExecutionError as e:
                failure = e
                content = f"Error executing tool '{tool_name}': {e}"
            except Exception as e:
                failure = e
                content = f"Error executing tool '{tool_name}': {e}\n{traceback.format_exc()}"

        if captured:
            content += captured.render()

        if failure is not None:
            console.error(f"Tool '{tool_name}' failed: {failure}")
            return ToolResult(success=False, content=content)

        console.debug(f"Tool execution result: {content}")
        return ToolResult(success=True, content=content)
