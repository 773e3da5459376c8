"""
Memory image session management.

One session per image path. The Volatility 3 runner is created lazily the
first time a command needs it, and plugin results are cached so that
commands built on the same data (pslist, pstree) only run it once.
"""
from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from ..config import PROCESS_PLUGIN, PSSCAN_PLUGIN
from .vol3_runner import Vol3Runner, check_volatility_available

logger = logging.getLogger(__name__)

# Open sessions keyed by absolute image path
_sessions: dict[str, "MemorySession"] = {}


@dataclass
class CachedResult:
    """Cached plugin result with timestamp."""
    data: Any
    timestamp: float
    plugin_name: str


def _cache_key(plugin_name: str, kwargs: dict[str, Any]) -> str:
    def make_hashable(v):
        if isinstance(v, dict):
            return tuple(sorted(v.items()))
        if isinstance(v, list):
            return tuple(v)
        return v

    items = tuple((k, make_hashable(v)) for k, v in sorted(kwargs.items()))
    return f"{plugin_name}:{hash(items)}"


class MemorySession:
    """
    Analysis state for a single memory image.

    - Vol3 runner is lazy-loaded on first use
    - Plugin results are cached per (plugin, arguments)
    """

    def __init__(self, image_path: str | Path):
        self.image_path = Path(image_path).absolute()
        self._session_id = self._generate_session_id()
        self._runner: Optional[Vol3Runner] = None
        self._cache: dict[str, CachedResult] = {}
        self._profile: dict[str, Any] = {}
        self._created_at = time.time()

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def is_initialized(self) -> bool:
        return self._runner is not None and self._runner.is_initialized

    @property
    def profile(self) -> dict[str, Any]:
        return self._profile

    @property
    def os_type(self) -> Optional[str]:
        if self._runner:
            return self._runner.os_type
        return None

    @property
    def age_seconds(self) -> float:
        return time.time() - self._created_at

    def _generate_session_id(self) -> str:
        hash_input = f"{self.image_path}:{time.time()}"
        return f"mem_{hashlib.md5(hash_input.encode()).hexdigest()[:12]}"

    def initialize(self) -> dict[str, Any]:
        """
        Create the Vol3 runner and detect the OS profile.

        Raises ImportError when volatility3 is missing and FileNotFoundError
        when the image does not exist.
        """
        if self.is_initialized:
            return self._describe(from_cache=True)

        check_volatility_available()
        logger.info(f"Initializing session for: {self.image_path}")

        self._runner = Vol3Runner(self.image_path)
        self._profile = self._runner.initialize()
        return self._describe(from_cache=False)

    def _describe(self, from_cache: bool) -> dict[str, Any]:
        file_size = self.image_path.stat().st_size
        return {
            "session_id": self._session_id,
            "image_path": str(self.image_path),
            "file_size_bytes": file_size,
            "file_size_gb": round(file_size / (1024 ** 3), 2),
            "os_type": self.os_type,
            "profile": self._profile,
            "from_cache": from_cache,
        }

    def run_plugin(self, plugin_name: str, use_cache: bool = True, **kwargs) -> list[dict[str, Any]]:
        """Run a Vol3 plugin by full name and return its rows."""
        if not self.is_initialized:
            self.initialize()

        cache_key = _cache_key(plugin_name, kwargs)
        if use_cache and cache_key in self._cache:
            logger.debug(f"Using cached result for {plugin_name}")
            return self._cache[cache_key].data

        logger.info(f"Running Vol3 plugin: {plugin_name}")
        results = list(self._runner.run_plugin(plugin_name, **kwargs))

        self._cache[cache_key] = CachedResult(
            data=results,
            timestamp=time.time(),
            plugin_name=plugin_name,
        )
        return results

    def get_processes(self, include_terminated: bool = False) -> list[dict[str, Any]]:
        if not self.is_initialized:
            self.initialize()

        if self.os_type != "windows":
            raise NotImplementedError("Process listing only implemented for Windows")

        processes = [dict(p) for p in self.run_plugin(PROCESS_PLUGIN)]

        if include_terminated:
            pslist_pids = {p.get("PID") for p in processes}
            for proc in self.run_plugin(PSSCAN_PLUGIN):
                if proc.get("PID") not in pslist_pids:
                    processes.append(dict(proc, _hidden=True))

        return processes

    def clear_cache(self, plugin_name: Optional[str] = None) -> int:
        if plugin_name is None:
            count = len(self._cache)
            self._cache.clear()
            return count

        keys_to_remove = [k for k in self._cache if k.startswith(f"{plugin_name}:")]
        for key in keys_to_remove:
            del self._cache[key]
        return len(keys_to_remove)

    def get_cache_stats(self) -> dict[str, Any]:
        return {
            "entries": len(self._cache),
            "plugins_cached": sorted(set(c.plugin_name for c in self._cache.values())),
            "session_age_seconds": self.age_seconds,
        }


def get_session(image_path: str | Path, create: bool = True) -> Optional[MemorySession]:
    """Get or create the session for a memory image."""
    key = str(Path(image_path).absolute())
    session = _sessions.get(key)
    if session is None and create:
        session = _sessions[key] = MemorySession(key)
        logger.debug(f"New session {session.session_id} for {key}")
    return session


def get_session_by_id(session_id: str) -> Optional[MemorySession]:
    for session in _sessions.values():
        if session.session_id == session_id:
            return session
    return None


def clear_sessions(max_age_seconds: Optional[int] = None) -> int:
    """Drop all sessions, or only those older than ``max_age_seconds``."""
    stale = [
        key for key, session in _sessions.items()
        if max_age_seconds is None or session.age_seconds > max_age_seconds
    ]
    for key in stale:
        del _sessions[key]
    return len(stale)


def list_sessions() -> list[dict[str, Any]]:
    return [
        {
            "session_id": session.session_id,
            "image_path": key,
            "initialized": session.is_initialized,
            "os_type": session.os_type,
            "cache": session.get_cache_stats(),
        }
        for key, session in _sessions.items()
    ]
