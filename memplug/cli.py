"""
memplug command line.

    memplug [global options] <plugin> [plugin options]

Global options come from every loaded plugin's ``register_options`` hook;
plugin options exist only once the plugin has been selected.
"""
from __future__ import annotations

import logging
import sys
from typing import Optional

from .config import BUILTIN_PLUGIN_PACKAGE, PLUGIN_PATH_SEPARATOR
from .core.exceptions import (
    OptionError,
    PluginConflictError,
    PluginNotFoundError,
    RenderError,
)
from .core.options import ConfObject
from .core.registry import PluginRegistry
from .logging_utils import configure_logging

LOG = logging.getLogger("memplug")

USAGE = "Usage: memplug [global options] <plugin> [plugin options]"
HELP_FLAGS = ("-h", "--help")


def _register_cli_options(config: ConfObject) -> None:
    config.add_option(
        "PLUGINS", default=None,
        help=f"Additional plugin directories ({PLUGIN_PATH_SEPARATOR!r} separated)",
        action="store", type="str",
    )
    config.add_option(
        "INFO", default=False,
        help="List registered plugins",
        action="store_true",
    )


def build_registry(config: ConfObject) -> PluginRegistry:
    """Load the built-in plugins and any --plugins directories."""
    registry = PluginRegistry(config)
    registry.load_package(BUILTIN_PLUGIN_PACKAGE)
    for directory in (config.PLUGINS or "").split(PLUGIN_PATH_SEPARATOR):
        if directory.strip():
            registry.load_directory(directory.strip())
    return registry


def _find_command(args: list[str], registry: PluginRegistry) -> Optional[str]:
    positionals = [a for a in args if not a.startswith("-")]
    for arg in positionals:
        if arg in registry:
            return arg
    return positionals[0] if positionals else None


def _write_general_help(config: ConfObject, registry: PluginRegistry, out) -> None:
    out.write(f"{USAGE}\n\nGlobal options:\n  -h, --help{' ' * 26}Show help (after a plugin: plugin help)\n")
    out.write(config.format_help() + "\n\nPlugins:\n")
    for name, cls in registry.items():
        out.write(f"  {name:<14} {cls.summary()}\n")


def _write_command_help(command, config: ConfObject, out) -> None:
    out.write(f"Usage: memplug [global options] {command.name} [plugin options]\n\n")
    out.write(command.help() + "\n")
    private = config.format_help(owner=command.name, include_global=False)
    if private:
        out.write(f"\nPlugin options:\n{private}\n")
    out.write(f"\nOutput formats: {', '.join(command.supported_formats())}\n")


def main(argv: list[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    want_help = any(a in HELP_FLAGS for a in argv)
    argv = [a for a in argv if a not in HELP_FLAGS]

    try:
        config = ConfObject()
        _register_cli_options(config)
        # --plugins must be known before the registry is built
        config.parse(argv)
        registry = build_registry(config)

        extras = config.parse(argv)
        configure_logging(config.VERBOSE)
        for source, error in registry.load_errors.items():
            LOG.warning(f"Plugin {source} was not loaded: {error}")

        name = _find_command(extras, registry)
        if name is None:
            if not config.INFO:
                _write_general_help(config, registry, sys.stdout if want_help else sys.stderr)
                return 0 if want_help else 2
            name = "plugins"

        command = registry.create(name, config)
        if want_help:
            _write_command_help(command, config, sys.stdout)
            return 0

        remaining = list(argv)
        if name in remaining:
            remaining.remove(name)
        config.parse(remaining, strict=True)

        command.execute()
        return 0
    except (OptionError, PluginNotFoundError, RenderError) as e:
        sys.stderr.write(f"Error: {e}\n")
        return 2
    except PluginConflictError as e:
        sys.stderr.write(f"Plugin registration failed: {e}\n")
        return 1
    except (FileNotFoundError, ImportError, NotImplementedError) as e:
        sys.stderr.write(f"Error: {e}\n")
        return 1
    except KeyboardInterrupt:
        sys.stderr.write("Interrupted.\n")
        return 130
    except Exception as e:
        LOG.exception("Unhandled error")
        sys.stderr.write(f"Error: {e}\n")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
