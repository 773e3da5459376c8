"""
Base classes for memplug commands (plugins).

A plugin is a subclass of ``Command`` that implements ``calculate`` and one
or more ``render_<type>`` methods:

    from memplug.core import command


    class HelloWorld(command.Command):
        \"\"\"Say hello.\"\"\"

        def __init__(self, config, *args, **kwargs):
            super().__init__(config, *args, **kwargs)
            config.add_option("NAME", short_option="n", default="world",
                              help="Who to greet", action="store", type="str")

        def calculate(self):
            return self._config.NAME

        def render_text(self, outfd, data):
            outfd.write(f"Hello {data}\\n")

Options added in ``__init__`` are private to the command. Options that every
command shares are added in the ``register_options`` staticmethod, which the
registry calls for each class when the plugin is loaded.

Import plugin modules, never plugin classes: every concrete ``Command``
subclass found in a plugin module's namespace is registered, so
``from memplug.plugins.pslist import PsList`` registers ``pslist`` a second
time and fails with ``PluginConflictError``.
"""
from __future__ import annotations

import csv
import inspect
import logging
import sys
from pathlib import Path
from typing import Any, Iterable, Optional

from ..config import DEFAULT_OUTPUT
from .exceptions import OptionError, RenderError
from .options import ConfObject
from .render import TextTable, write_json

logger = logging.getLogger(__name__)

RENDER_PREFIX = "render_"


class Command:
    """Base class for all commands."""

    # Registry key; defaults to the lower-cased class name
    name: str = "command"
    meta_info: dict[str, str] = {}
    # Classes with ``_abstract = True`` in their own body are never registered
    _abstract = True

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        if "name" not in cls.__dict__:
            cls.name = cls.__name__.lower()

    def __init__(self, config: ConfObject, *args, registry=None, **kwargs):
        self._config = config
        self._registry = registry
        self._table: Optional[TextTable] = None
        # Direct instantiation (tests, library use) still gets the global options
        with config.owner(None):
            type(self).register_options(config)

    @staticmethod
    def register_options(config: ConfObject) -> None:
        """Register global options. Called once per plugin class at load time."""
        config.add_option(
            "OUTPUT", default=DEFAULT_OUTPUT,
            help="Output in this format (support is plugin specific, e.g. text, json, csv)",
            action="store", type="str",
        )
        config.add_option(
            "OUTPUT-FILE", default=None,
            help="Write output to this file instead of stdout",
            action="store", type="str",
        )
        config.add_option(
            "VERBOSE", short_option="v", default=0,
            help="Verbose information (repeat for debug output)",
            action="count",
        )

    @classmethod
    def help(cls) -> str:
        """Return the command's help text (its docstring)."""
        return inspect.cleandoc(cls.__doc__) if cls.__doc__ else "No help available"

    @classmethod
    def summary(cls) -> str:
        return cls.help().splitlines()[0]

    def calculate(self) -> Any:
        """Perform the analysis and return the data object passed to ``render_*``."""
        raise NotImplementedError(f"{type(self).__name__} does not implement calculate()")

    def supported_formats(self) -> list[str]:
        formats = []
        for attr in dir(self):
            if attr.startswith(RENDER_PREFIX) and callable(getattr(self, attr, None)):
                formats.append(attr[len(RENDER_PREFIX):])
        return sorted(formats)

    def get_renderer(self, output: str):
        func = getattr(self, RENDER_PREFIX + output, None)
        if output not in self.supported_formats() or not callable(func):
            raise RenderError(
                f"Plugin {self.name} is unable to produce output in format '{output}'. "
                f"Supported formats are {self.supported_formats()}. "
                f"Please send a feature request"
            )
        return func

    def execute(self, outfd=None) -> Any:
        """
        Run the command: ``calculate()`` then ``render_<OUTPUT>``.

        Output goes to ``outfd`` if given, else to OUTPUT-FILE, else stdout.
        Returns the data object produced by ``calculate``.
        """
        output = (self._config.OUTPUT or DEFAULT_OUTPUT).lower()
        renderer = self.get_renderer(output)

        output_file = None
        if outfd is None and self._config.OUTPUT_FILE:
            output_file = Path(self._config.OUTPUT_FILE)
            if output_file.exists():
                raise RenderError(f"File {output_file} already exists, refusing to overwrite")

        logger.info(f"Running plugin: {self.name}")
        data = self.calculate()

        if output_file is not None:
            with output_file.open("w", encoding="utf-8", newline="") as fd:
                renderer(fd, data)
            logger.info(f"Output written to {output_file}")
        else:
            renderer(outfd or sys.stdout, data)
        return data

    def table_header(self, outfd, title_format_list: list[tuple[str, Any]]) -> None:
        """Write a table header and remember the column formats for ``table_row``."""
        self._table = TextTable(title_format_list)
        outfd.write(self._table.header())

    def table_row(self, outfd, *args) -> None:
        if self._table is None:
            raise RenderError("table_row() called before table_header()")
        outfd.write(self._table.row(args))


class TabularCommand(Command):
    """
    Command whose results are rows with a fixed set of columns.

    Subclasses set ``columns`` to ``[(title, spec), ...]`` and implement
    ``generator(data)`` yielding one tuple per row; text, JSON and CSV
    renderers come for free.
    """
    _abstract = True
    columns: list[tuple[str, Any]] = []

    def generator(self, data) -> Iterable[tuple]:
        raise NotImplementedError(f"{type(self).__name__} does not implement generator()")

    def titles(self) -> list[str]:
        return [title for title, _ in self.columns]

    def render_text(self, outfd, data) -> None:
        self.table_header(outfd, self.columns)
        for row in self.generator(data):
            self.table_row(outfd, *row)

    def render_json(self, outfd, data) -> None:
        titles = self.titles()
        write_json(outfd, [dict(zip(titles, row)) for row in self.generator(data)])

    def render_csv(self, outfd, data) -> None:
        writer = csv.writer(outfd)
        writer.writerow(self.titles())
        for row in self.generator(data):
            writer.writerow(["" if v is None else v for v in row])


class MemoryCommand(Command):
    """Command that operates on a memory image given with -f/--filename."""
    _abstract = True

    @staticmethod
    def register_options(config: ConfObject) -> None:
        Command.register_options(config)
        config.add_option(
            "FILENAME", short_option="f", default=None,
            help="Filename of the memory image to analyze",
            action="store", type="str",
        )

    def image_path(self) -> Path:
        filename = self._config.FILENAME
        if not filename:
            raise OptionError(f"Plugin {self.name} requires a memory image (-f/--filename)")
        path = Path(filename).expanduser()
        if not path.is_file():
            raise FileNotFoundError(f"Memory image not found: {path}")
        return path

    def get_session(self):
        """Return the shared analysis session for the image."""
        from .session import get_session

        return get_session(self.image_path())
