# Shared FastAPI dependencies: the tool registry, the session store, the LLM transport
# and the table of in-flight runs.
# Author: Shibo Li
# Date: 2025-07-05
# Version: 0.1.0

import threading
from contextlib import contextmanager
from functools import lru_cache
from typing import Dict, Iterator

from agentloop.core.config import RunConfig, get_settings
from agentloop.core.tool_registry import ToolRegistry
from agentloop.services.llm_connector import ChatTransport, LLMConnector
from agentloop.services.session_manager import SessionStore, get_session_store


class RunAlreadyActiveError(Exception):
    """Raised when a second run is started for a session that is still running."""


class ActiveRuns:
    """
    Tracks the runs in flight so that a cancel request can reach them.
    One session is driven by at most one run at a time.
    """
    def __init__(self):
        self._flags: Dict[str, threading.Event] = {}
        self._lock = threading.Lock()

    @contextmanager
    def track(self, session_id: str) -> Iterator[threading.Event]:
        with self._lock:
            if session_id in self._flags:
                raise RunAlreadyActiveError(f"Session '{session_id}' already has a run in progress.")
            flag = threading.Event()
            self._flags[session_id] = flag
        try:
            yield flag
        finally:
            with self._lock:
                self._flags.pop(session_id, None)

    def cancel(self, session_id: str) -> bool:
        flag = self._flags.get(session_id)
        if flag is None:
            return False
        flag.set()
        return True


@lru_cache
def get_tool_registry() -> ToolRegistry:
    return ToolRegistry()


@lru_cache
def get_active_runs() -> ActiveRuns:
    return ActiveRuns()


@lru_cache
def _connector() -> LLMConnector:
    return LLMConnector.from_settings(get_settings())


def get_transport() -> ChatTransport:
    return _connector()


def get_run_config() -> RunConfig:
    return RunConfig.from_settings(get_settings())


def get_store() -> SessionStore:
    return get_session_store()
