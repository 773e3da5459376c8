"""
List the registered commands.
"""
from __future__ import annotations

from memplug.core.command import TabularCommand
from memplug.core.exceptions import MemplugError


class Plugins(TabularCommand):
    """List registered plugins with the module that defines them"""

    columns = [("Plugin", "<12"), ("Module", "<32"), ("Description", "<50")]

    def calculate(self) -> list[tuple[str, str, str]]:
        if self._registry is None:
            raise MemplugError("The plugins command must be created through a PluginRegistry")
        return [
            (name, self._registry.origin(name), cls.summary())
            for name, cls in self._registry.items()
        ]

    def generator(self, data):
        yield from data
