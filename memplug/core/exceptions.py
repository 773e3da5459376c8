"""
Exceptions raised by the plugin framework.
"""
from __future__ import annotations


class MemplugError(Exception):
    """Base class for framework errors."""


class OptionError(MemplugError):
    """Bad option value, unknown option, or malformed command line."""


class OptionConflictError(OptionError):
    """An option name or short flag was registered twice with different settings."""


class PluginConflictError(MemplugError):
    """Two plugin classes were registered under the same name."""

    def __init__(self, name: str, modules: list[str]):
        self.name = name
        self.modules = list(modules)
        super().__init__(
            f"Plugin '{name}' in {self.modules[-1]} has already been defined by "
            f"{', '.join(self.modules[:-1])}. Import plugin modules, not plugin classes "
            f"(use 'from memplug.plugins import pslist' instead of "
            f"'from memplug.plugins.pslist import PsList')."
        )


class PluginNotFoundError(MemplugError, KeyError):
    """No plugin is registered under the requested name."""

    def __init__(self, name: str, suggestions: list[str] | None = None):
        self.name = name
        self.suggestions = suggestions or []
        super().__init__(name)

    def __str__(self) -> str:
        msg = f"Unknown plugin: {self.name}"
        if self.suggestions:
            msg += f" (did you mean: {', '.join(self.suggestions)}?)"
        return msg


class RenderError(MemplugError):
    """The selected output format cannot be produced."""
