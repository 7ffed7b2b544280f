# This module handles the persistence of conversation sessions.
# Author: Shibo Li
# Date: 2025-07-05
# Version: 0.3.0: Record-level loading, backups of damaged files, file I/O off the event loop.

import asyncio
import json
import os
import shutil
import tempfile
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import List, Optional, Tuple

from pydantic import TypeAdapter, ValidationError
from redis.asyncio import Redis, from_url
from redis.exceptions import RedisError

from agentloop.core.config import Settings, get_settings
from agentloop.models.common import Session
from agentloop.utils.logger import console

_sessions_adapter = TypeAdapter(List[Session])


def dump_sessions(sessions: List[Session]) -> str:
    """Serializes sessions as the JSON array of {chatId, chatName, createdTime, messages}."""
    return _sessions_adapter.dump_json(sessions, by_alias=True, indent=2).decode("utf-8")


def parse_sessions(data: str) -> Tuple[List[Session], int]:
    """
    Parses the JSON array written by dump_sessions one record at a time.

    Returns:
        The readable sessions and the number of records that could not be read.
        A body that is not a JSON array counts as one unreadable record.
    """
    if not data or not data.strip():
        return [], 0
    try:
        records = json.loads(data)
    except json.JSONDecodeError as e:
        console.error(f"Stored sessions are not valid JSON: {e}")
        return [], 1
    if not isinstance(records, list):
        console.error(f"Stored sessions must be a JSON array, got {type(records).__name__}.")
        return [], 1

    sessions: List[Session] = []
    skipped = 0
    for index, record in enumerate(records):
        try:
            sessions.append(Session.model_validate(record))
        except ValidationError as e:
            skipped += 1
            console.error(f"Skipping unreadable session record #{index}: {e}")
    return sessions, skipped


def load_sessions(data: str) -> List[Session]:
    """Parses the JSON array written by dump_sessions, leaving out unreadable records."""
    sessions, _ = parse_sessions(data)
    return sessions


class SessionStore(ABC):
    """Interface for saving and loading whole session snapshots."""

    @abstractmethod
    async def get_session(self, session_id: str) -> Optional[Session]:
        pass

    @abstractmethod
    async def save_session(self, session: Session):
        pass

    @abstractmethod
    async def delete_session(self, session_id: str) -> bool:
        pass

    @abstractmethod
    async def list_sessions(self) -> List[Session]:
        pass


class FileSessionStore(SessionStore):
    """
    Keeps every session in one JSON file, rewritten wholesale on each save.
    Writes go to a temporary file that replaces the old one, so a crash mid-write
    never leaves a truncated file behind. When the file holds records that cannot
    be read, it is copied aside before the first rewrite so that nothing is lost.
    File access runs in a worker thread to keep the event loop free.
    """
    def __init__(self, path: str):
        self._path = Path(path)
        self._lock = asyncio.Lock()

    def _read(self) -> Tuple[List[Session], int]:
        if not self._path.exists():
            return [], 0
        return parse_sessions(self._path.read_text(encoding="utf-8"))

    def _backup(self) -> Path:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        backup_path = self._path.with_name(f"{self._path.name}.{stamp}.bak")
        shutil.copy2(self._path, backup_path)
        console.warning(f"{self._path} contains unreadable sessions. The original file was copied to {backup_path}.")
        return backup_path

    def _write(self, sessions: List[Session], damaged: bool = False):
        self._path.parent.mkdir(parents=True, exist_ok=True)
        if damaged and self._path.exists():
            self._backup()
        fd, tmp_path = tempfile.mkstemp(dir=self._path.parent, prefix=".sessions-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(dump_sessions(sessions))
            os.replace(tmp_path, self._path)
        except BaseException:
            os.unlink(tmp_path)
            raise

    async def get_session(self, session_id: str) -> Optional[Session]:
        async with self._lock:
            sessions, _ = await asyncio.to_thread(self._read)
        for session in sessions:
            if session.chat_id == session_id:
                return session
        return None

    async def save_session(self, session: Session):
        async with self._lock:
            sessions, skipped = await asyncio.to_thread(self._read)
            for index, stored in enumerate(sessions):
                if stored.chat_id == session.chat_id:
                    sessions[index] = session
                    break
            else:
                sessions.append(session)
            await asyncio.to_thread(self._write, sessions, skipped > 0)
        console.debug(f"Session '{session.chat_id}' saved to {self._path}.")

    async def delete_session(self, session_id: str) -> bool:
        async with self._lock:
            sessions, skipped = await asyncio.to_thread(self._read)
            remaining = [session for session in sessions if session.chat_id != session_id]
            if len(remaining) == len(sessions):
                return False
            await asyncio.to_thread(self._write, remaining, skipped > 0)
        return True

    async def list_sessions(self) -> List[Session]:
        async with self._lock:
            sessions, _ = await asyncio.to_thread(self._read)
        return sessions


class RedisSessionStore(SessionStore):
    """
    Manages the lifecycle of a session by persisting one JSON snapshot per session in Redis.
    """
    key_prefix = "agentloop:session:"

    def __init__(self, redis_client: Redis, session_ttl: int = 86400):
        self._redis_client = redis_client
        self._session_ttl = session_ttl

    @classmethod
    def from_url(cls, url: str, session_ttl: int = 86400) -> "RedisSessionStore":
        console.info("Async Redis client for session management initialized.")
        return cls(from_url(url, decode_responses=True), session_ttl=session_ttl)

    def _key(self, session_id: str) -> str:
        return f"{self.key_prefix}{session_id}"

    async def get_session(self, session_id: str) -> Optional[Session]:
        try:
            session_json = await self._redis_client.get(self._key(session_id))
        except RedisError:
            console.exception(f"Could not read session '{session_id}' from Redis.")
            raise
        if not session_json:
            return None
        return Session.model_validate_json(session_json)

    async def save_session(self, session: Session):
        try:
            await self._redis_client.set(
                self._key(session.chat_id),
                session.model_dump_json(by_alias=True),
                ex=self._session_ttl,
            )
        except RedisError:
            console.exception(f"Failed to save session '{session.chat_id}' to Redis.")
            raise
        console.debug(f"Session '{session.chat_id}' saved to Redis.")

    async def delete_session(self, session_id: str) -> bool:
        return bool(await self._redis_client.delete(self._key(session_id)))

    async def list_sessions(self) -> List[Session]:
        sessions: List[Session] = []
        async for key in self._redis_client.scan_iter(match=f"{self.key_prefix}*"):
            session_json = await self._redis_client.get(key)
            if session_json:
                sessions.append(Session.model_validate_json(session_json))
        sessions.sort(key=lambda session: session.created_time)
        return sessions


def create_session_store(settings: Settings) -> SessionStore:
    if settings.SESSION_BACKEND == "redis":
        return RedisSessionStore.from_url(settings.REDIS_URL, session_ttl=settings.SESSION_TTL)
    return FileSessionStore(settings.SESSIONS_FILE)


@lru_cache
def get_session_store() -> SessionStore:
    return create_session_store(get_settings())


def export_sessions_json(sessions: List[Session]) -> list:
    """The persisted array as plain Python objects, for API responses."""
    return json.loads(dump_sessions(sessions))
