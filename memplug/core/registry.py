"""
Plugin discovery and registration.

Every concrete ``Command`` subclass found in a plugin module's namespace is
registered under its name. A class that reaches a second module's namespace
(``from x import PsList``) is therefore seen twice and rejected, as is any
other pair of plugins sharing a name.
"""
from __future__ import annotations

import difflib
import hashlib
import importlib
import importlib.util
import logging
import pkgutil
import sys
from pathlib import Path
from types import ModuleType
from typing import Iterable, Iterator, Optional

from .command import Command
from .exceptions import PluginConflictError, PluginNotFoundError
from .options import ConfObject

logger = logging.getLogger(__name__)


def is_plugin_class(obj) -> bool:
    return (
        isinstance(obj, type)
        and issubclass(obj, Command)
        and not obj.__dict__.get("_abstract", False)
    )


def iter_module_commands(module: ModuleType) -> Iterator[type[Command]]:
    """Yield every concrete command class bound in ``module``'s namespace."""
    for obj in list(vars(module).values()):
        if is_plugin_class(obj):
            yield obj


def find_name_conflicts(modules: Iterable[ModuleType]) -> list[tuple[str, list[str]]]:
    """
    Report plugin names defined by more than one module.

    Returns ``[(name, [module, ...]), ...]`` without raising, so it can be
    used to lint a plugin directory.
    """
    seen: dict[str, list[str]] = {}
    for module in modules:
        for cls in iter_module_commands(module):
            seen.setdefault(cls.name.lower(), []).append(module.__name__)
    return [(name, mods) for name, mods in seen.items() if len(mods) > 1]


class PluginRegistry:
    """
    Registered command classes, keyed by lower-case name.

    If a ``ConfObject`` is given, each class's ``register_options`` hook is
    called as soon as the class is registered.
    """

    def __init__(self, config: Optional[ConfObject] = None):
        self.config = config
        self._classes: dict[str, type[Command]] = {}
        self._origins: dict[str, str] = {}
        self._modules: set[str] = set()
        self.load_errors: dict[str, str] = {}

    def __contains__(self, name: str) -> bool:
        return name.lower() in self._classes

    def __len__(self) -> int:
        return len(self._classes)

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._classes))

    def items(self) -> list[tuple[str, type[Command]]]:
        return [(name, self._classes[name]) for name in sorted(self._classes)]

    def origin(self, name: str) -> str:
        """Module the plugin was registered from."""
        return self._origins[self.get(name).name.lower()]

    def _check_new(self, key: str, module_name: str, pending: dict[str, str]) -> None:
        if key in self._classes:
            raise PluginConflictError(key, [self._origins[key], module_name])
        if key in pending:
            raise PluginConflictError(key, [pending[key], module_name])

    def _commit(self, cls: type[Command], module_name: str) -> None:
        key = cls.name.lower()
        self._classes[key] = cls
        self._origins[key] = module_name
        logger.debug(f"Registered plugin {key} from {module_name}")

        if self.config is not None:
            with self.config.owner(None):
                cls.register_options(self.config)

    def register_class(self, cls: type[Command], module_name: Optional[str] = None) -> None:
        module_name = module_name or cls.__module__
        self._check_new(cls.name.lower(), module_name, {})
        self._commit(cls, module_name)

    def register_module(self, module: ModuleType) -> list[str]:
        """
        Register all plugins in ``module``. A module is only registered once.

        Either every plugin of the module is registered or, on a name
        conflict, none is and the module is not marked as registered.
        """
        if module.__name__ in self._modules:
            return []

        classes = list(iter_module_commands(module))
        pending: dict[str, str] = {}
        for cls in classes:
            key = cls.name.lower()
            self._check_new(key, module.__name__, pending)
            pending[key] = module.__name__

        for cls in classes:
            self._commit(cls, module.__name__)
        self._modules.add(module.__name__)
        return [cls.name.lower() for cls in classes]

    def load_package(self, package_name: str) -> list[str]:
        """Import every module of a package and register its plugins."""
        package = importlib.import_module(package_name)
        names = self.register_module(package)

        for _, modname, _ in pkgutil.iter_modules(package.__path__):
            full_name = f"{package_name}.{modname}"
            try:
                module = importlib.import_module(full_name)
            except Exception as e:
                logger.error(f"Failed to import plugin module {full_name}: {e}")
                self.load_errors[full_name] = str(e)
                continue
            names.extend(self.register_module(module))

        return names

    def load_directory(self, path: str | Path) -> list[str]:
        """Import every ``*.py`` file in ``path`` and register its plugins."""
        directory = Path(path).expanduser().resolve()
        if not directory.is_dir():
            raise FileNotFoundError(f"Plugin directory not found: {directory}")

        prefix = f"memplug_ext_{hashlib.md5(str(directory).encode()).hexdigest()[:8]}"
        names = []
        for source in sorted(directory.glob("*.py")):
            if source.name.startswith("_"):
                continue

            module_name = f"{prefix}_{source.stem}"
            module = sys.modules.get(module_name)
            if module is None:
                try:
                    module = _import_file(module_name, source)
                except Exception as e:
                    logger.error(f"Failed to import plugin file {source}: {e}")
                    self.load_errors[str(source)] = str(e)
                    continue
            names.extend(self.register_module(module))

        logger.info(f"Loaded {len(names)} plugin(s) from {directory}")
        return names

    def register_options(self, config: ConfObject) -> None:
        """Call every registered class's ``register_options`` hook on ``config``."""
        with config.owner(None):
            for _, cls in self.items():
                cls.register_options(config)

    def get(self, name: str) -> type[Command]:
        key = name.lower()
        try:
            return self._classes[key]
        except KeyError:
            suggestions = difflib.get_close_matches(key, list(self._classes), n=3)
            raise PluginNotFoundError(name, suggestions) from None

    def create(self, name: str, config: ConfObject, *args, **kwargs) -> Command:
        """Instantiate a plugin; options it adds are private to it."""
        cls = self.get(name)
        with config.owner(cls.name.lower()):
            return cls(config, *args, registry=self, **kwargs)


def _import_file(module_name: str, source: Path) -> ModuleType:
    spec = importlib.util.spec_from_file_location(module_name, source)
    if spec is None or spec.loader is None:
        raise ImportError(f"Cannot load {source}")
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except BaseException:
        del sys.modules[module_name]
        raise
    return module
