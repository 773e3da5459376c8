"""
memplug: plugin framework for memory forensics

Plugins are Command subclasses that declare options, compute results in
calculate(), and render them with render_<format>() methods. Memory access
is delegated to Volatility3.

Example:
    # Command line
    memplug -f memory.raw pslist -p 4,1234

    # Or use as library
    from memplug.core import ConfObject, PluginRegistry

    config = ConfObject()
    registry = PluginRegistry(config)
    registry.load_package("memplug.plugins")
    registry.create("imagehash", config).execute()
"""
from .core import (
    Command,
    ConfObject,
    MemoryCommand,
    PluginRegistry,
    TabularCommand,
    VOL3_AVAILABLE,
)

__version__ = "0.1.0"
__all__ = [
    "Command",
    "ConfObject",
    "MemoryCommand",
    "PluginRegistry",
    "TabularCommand",
    "VOL3_AVAILABLE",
]
