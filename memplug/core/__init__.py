"""
Core components: options, the command base classes, plugin registry and
the Volatility3-backed image sessions.
"""
from .exceptions import (
    MemplugError,
    OptionError,
    OptionConflictError,
    PluginConflictError,
    PluginNotFoundError,
    RenderError,
)
from .options import ConfObject, Option
from .command import Command, MemoryCommand, TabularCommand
from .registry import PluginRegistry, find_name_conflicts, iter_module_commands
from .session import MemorySession, get_session, clear_sessions, list_sessions
from .vol3_runner import (
    Vol3Runner,
    VOL3_AVAILABLE,
    VOL3_PATH,
    check_volatility_available,
)

__all__ = [
    "MemplugError",
    "OptionError",
    "OptionConflictError",
    "PluginConflictError",
    "PluginNotFoundError",
    "RenderError",
    "ConfObject",
    "Option",
    "Command",
    "MemoryCommand",
    "TabularCommand",
    "PluginRegistry",
    "find_name_conflicts",
    "iter_module_commands",
    "MemorySession",
    "get_session",
    "clear_sessions",
    "list_sessions",
    "Vol3Runner",
    "VOL3_AVAILABLE",
    "VOL3_PATH",
    "check_volatility_available",
]
