"""
Option registration and resolution.

Plugins declare their command-line options through ``ConfObject.add_option``.
Global options are added by each command's ``register_options`` hook when the
plugin is loaded; private options are added when the command is instantiated
and are tagged with the owning command's name.

Values are resolved in this order:
  1. command line (``--output-file x`` / ``-f x``)
  2. environment (``MEMPLUG_OUTPUT_FILE=x``)
  3. config file (``[DEFAULT]`` section of ``~/.memplugrc`` or ``$MEMPLUG_CONFIG``)
  4. the option's registered default
"""
from __future__ import annotations

import argparse
import configparser
import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterator, Optional

from ..config import CONFIG_ENV_VAR, ENV_PREFIX, RC_FILE
from .exceptions import OptionConflictError, OptionError

logger = logging.getLogger(__name__)

ACTIONS = ("store", "store_true", "store_false", "append", "count")
BOOL_ACTIONS = ("store_true", "store_false")
TRUE_STRINGS = {"1", "true", "yes", "on"}
FALSE_STRINGS = {"0", "false", "no", "off", ""}

# Short flags the CLI keeps for itself
RESERVED_SHORT_OPTIONS = {"h"}


def _to_int(value: str) -> int:
    # Base 0 so addresses can be given as 0x...
    return int(value, 0)


TYPES: dict[str, Callable[[str], Any]] = {
    "str": str,
    "string": str,
    "int": _to_int,
    "float": float,
}


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in TRUE_STRINGS:
        return True
    if text in FALSE_STRINGS:
        return False
    raise ValueError(f"not a boolean: {value!r}")


def option_dest(name: str) -> str:
    """Normalize an option name ("output-file") to its attribute form ("OUTPUT_FILE")."""
    return name.strip().lstrip("-").upper().replace("-", "_")


@dataclass
class Option:
    """A single registered option."""
    name: str
    short_option: Optional[str] = None
    default: Any = None
    help: str = ""
    action: str = "store"
    type: Any = "str"
    choices: Optional[tuple] = None
    owner: Optional[str] = None
    converter: Callable[[str], Any] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self.name = self.name.strip().lstrip("-").upper()
        if not self.name:
            raise OptionError("Option name must not be empty")
        if self.action not in ACTIONS:
            raise OptionError(f"Option {self.name}: unsupported action '{self.action}'")
        if self.short_option is not None:
            self.short_option = self.short_option.lstrip("-")
            if len(self.short_option) != 1:
                raise OptionError(f"Option {self.name}: short option must be a single character")
        if self.choices is not None:
            self.choices = tuple(self.choices)
        if callable(self.type):
            self.converter = self.type
        elif self.type in TYPES:
            self.converter = TYPES[self.type]
        else:
            raise OptionError(f"Option {self.name}: unsupported type '{self.type}'")

    @property
    def dest(self) -> str:
        return option_dest(self.name)

    @property
    def flag(self) -> str:
        return "--" + self.name.lower().replace("_", "-")

    @property
    def env_var(self) -> str:
        return ENV_PREFIX + self.dest

    @property
    def is_private(self) -> bool:
        return self.owner is not None

    def signature(self) -> tuple:
        """Fields that must match for a repeated registration to be accepted."""
        return (self.name, self.short_option, self.default, self.help, self.action, self.type, self.choices)

    def initial_value(self) -> Any:
        if self.action == "store_true":
            return bool(self.default) if self.default is not None else False
        if self.action == "store_false":
            return bool(self.default) if self.default is not None else True
        if self.action == "count":
            return self.default or 0
        if self.action == "append":
            return list(self.default) if self.default else []
        return self.default

    def convert(self, raw: Any) -> Any:
        """Convert a value coming from the environment or a config file."""
        try:
            if self.action in BOOL_ACTIONS:
                return _to_bool(raw)
            if self.action == "count":
                return int(raw)
            if self.action == "append":
                items = raw if isinstance(raw, (list, tuple)) else str(raw).split(",")
                values = [self._convert_one(item) for item in items if str(item).strip()]
                return values
            return self._convert_one(raw)
        except (TypeError, ValueError) as e:
            raise OptionError(f"Invalid value for {self.flag}: {raw!r} ({e})") from e

    def _convert_one(self, raw: Any) -> Any:
        value = raw
        if isinstance(raw, str):
            value = self.converter(raw.strip())
        if self.choices is not None and value not in self.choices:
            raise ValueError(f"must be one of {', '.join(map(str, self.choices))}")
        return value


def _argparse_type(option: Option) -> Callable[[str], Any]:
    def convert(value: str) -> Any:
        try:
            return option._convert_one(value)
        except (TypeError, ValueError) as e:
            raise argparse.ArgumentTypeError(f"invalid value {value!r} ({e})") from e

    return convert


class _OptionParser(argparse.ArgumentParser):
    """ArgumentParser that raises instead of exiting."""

    def error(self, message: str) -> None:  # type: ignore[override]
        raise OptionError(message)


class ConfObject:
    """
    Registry of options plus their resolved values.

    Attribute access returns the resolved value of a registered option:

        config.add_option("PID", short_option="p", help="Process ID")
        config.parse(["-p", "4"])
        config.PID  # "4"
    """

    def __init__(
        self,
        config_file: str | Path | None = None,
        environ: Optional[dict[str, str]] = None,
    ):
        self._options: dict[str, Option] = {}
        self._short: dict[str, str] = {}
        self._values: dict[str, Any] = {}
        self._owner: Optional[str] = None
        self._environ = os.environ if environ is None else environ
        self._file_values = self._read_config_file(config_file)

    def _read_config_file(self, config_file: str | Path | None) -> dict[str, str]:
        path = config_file or self._environ.get(CONFIG_ENV_VAR) or RC_FILE
        path = Path(path).expanduser()
        if not path.is_file():
            return {}

        parser = configparser.ConfigParser(interpolation=None)
        try:
            parser.read(path, encoding="utf-8")
        except configparser.Error as e:
            raise OptionError(f"Failed to parse config file {path}: {e}") from e

        logger.debug(f"Loaded options from {path}")
        return {option_dest(key): value for key, value in parser.defaults().items()}

    @contextmanager
    def owner(self, name: Optional[str]) -> Iterator[None]:
        """Tag options registered inside the block with ``name`` (None for global)."""
        previous = self._owner
        self._owner = name
        try:
            yield
        finally:
            self._owner = previous

    def add_option(
        self,
        name: str,
        short_option: Optional[str] = None,
        default: Any = None,
        help: str = "",
        action: str = "store",
        type: Any = "str",
        choices: Optional[tuple] = None,
    ) -> Option:
        """
        Register an option.

        Registering an identical option again is a no-op, which lets the
        ``register_options`` hook run once per loaded class. Conflicting
        registrations raise ``OptionConflictError``.
        """
        option = Option(
            name=name,
            short_option=short_option,
            default=default,
            help=help,
            action=action,
            type=type,
            choices=choices,
            owner=self._owner,
        )

        existing = self._options.get(option.dest)
        if existing is not None:
            if existing.signature() != option.signature():
                raise OptionConflictError(
                    f"Option {option.name} conflicts with an existing registration "
                    f"(owner: {existing.owner or 'global'})"
                )
            return existing

        if option.short_option:
            if option.short_option in RESERVED_SHORT_OPTIONS:
                raise OptionConflictError(f"Short option -{option.short_option} is reserved")
            taken = self._short.get(option.short_option)
            if taken is not None:
                raise OptionConflictError(
                    f"Short option -{option.short_option} for {option.name} is already used by {taken}"
                )
            self._short[option.short_option] = option.dest

        self._options[option.dest] = option
        return option

    def has_option(self, name: str) -> bool:
        return option_dest(name) in self._options

    def get_option(self, name: str) -> Option:
        try:
            return self._options[option_dest(name)]
        except KeyError:
            raise OptionError(f"Unknown option: {name}") from None

    def options(self, owner: Optional[str] = None, include_global: bool = True) -> list[Option]:
        """
        List registered options.

        With ``owner`` set, returns that command's private options (preceded by
        the global ones unless ``include_global`` is False).
        """
        result = []
        for option in self._options.values():
            if option.owner is None:
                if include_global:
                    result.append(option)
            elif owner is not None and option.owner == owner:
                result.append(option)
        return result

    def _build_parser(self) -> _OptionParser:
        parser = _OptionParser(add_help=False, allow_abbrev=False)
        for option in self._options.values():
            flags = [option.flag]
            if option.short_option:
                flags.insert(0, "-" + option.short_option)
            kwargs: dict[str, Any] = {
                "dest": option.dest,
                "default": argparse.SUPPRESS,
                "help": option.help,
                "action": option.action,
            }
            if option.action in ("store", "append"):
                kwargs["type"] = _argparse_type(option)
                kwargs["metavar"] = option.dest
            parser.add_argument(*flags, **kwargs)
        return parser

    def parse(self, argv: list[str], strict: bool = False) -> list[str]:
        """
        Parse ``argv`` against the currently registered options.

        Returns the arguments that were not consumed. With ``strict`` any
        leftover argument is an error.
        """
        namespace, extras = self._build_parser().parse_known_args(list(argv))
        if strict and extras:
            raise OptionError(f"unrecognized arguments: {' '.join(extras)}")
        self._values.update(vars(namespace))
        return extras

    def set(self, name: str, value: Any) -> None:
        """Set an option value directly, as if it came from the command line."""
        option = self.get_option(name)
        if isinstance(value, str) or (option.action == "append" and isinstance(value, (list, tuple))):
            value = option.convert(value)
        self._values[option.dest] = value

    def get(self, name: str) -> Any:
        option = self.get_option(name)
        dest = option.dest

        if dest in self._values:
            return self._values[dest]
        if option.env_var in self._environ:
            return option.convert(self._environ[option.env_var])
        if dest in self._file_values:
            return option.convert(self._file_values[dest])
        return option.initial_value()

    def source(self, name: str) -> str:
        """Where the current value of ``name`` comes from."""
        option = self.get_option(name)
        if option.dest in self._values:
            return "command line"
        if option.env_var in self._environ:
            return "environment"
        if option.dest in self._file_values:
            return "config file"
        return "default"

    def __getattr__(self, key: str) -> Any:
        if key.startswith("_"):
            raise AttributeError(key)
        if option_dest(key) not in self._options:
            raise AttributeError(f"No option named {key}")
        return self.get(key)

    def format_help(self, owner: Optional[str] = None, include_global: bool = True) -> str:
        lines = []
        for option in self.options(owner, include_global=include_global):
            if option.action in ("store", "append"):
                flags = f"{option.flag} {option.dest}"
                if option.short_option:
                    flags = f"-{option.short_option} {option.dest}, {flags}"
            else:
                flags = option.flag
                if option.short_option:
                    flags = f"-{option.short_option}, {flags}"

            text = option.help
            if option.choices:
                text += f" [choices: {', '.join(map(str, option.choices))}]"
            if option.default not in (None, False, [], ()):
                text += f" (default: {option.default})"
            lines.append(f"  {flags:<34} {text}".rstrip())
        return "\n".join(lines)
