"""
Volatility3 library runner.

Memory access for memplug commands goes through Volatility3; this module
builds the Volatility3 context for an image, detects the OS, and runs
Volatility3 plugins, turning TreeGrid rows into plain dicts.

Configuration:
    Set VOLATILITY3_PATH to use an existing Volatility3 installation, either
    a source root (containing the volatility3/ package) or a site-packages
    directory:

        export VOLATILITY3_PATH="/opt/volatility3"
"""
from __future__ import annotations

import importlib
import logging
import os
import pkgutil
import sys
import tempfile
from pathlib import Path
from typing import Any, Generator, Optional

from .exceptions import OptionError

logger = logging.getLogger(__name__)

_vol3_external_path = os.environ.get("VOLATILITY3_PATH")
if _vol3_external_path:
    if Path(_vol3_external_path).exists():
        sys.path.insert(0, _vol3_external_path)
        logger.info(f"Using Volatility3 from: {_vol3_external_path}")
    else:
        logger.warning(f"VOLATILITY3_PATH set but path not found: {_vol3_external_path}")

try:
    from volatility3.framework import automagic, contexts, interfaces, plugins
    from volatility3.framework.configuration import requirements

    VOL3_AVAILABLE = True
    VOL3_PATH = _vol3_external_path or "bundled"
except ImportError:
    VOL3_AVAILABLE = False
    VOL3_PATH = None
    automagic = contexts = interfaces = plugins = requirements = None

# Short module names whose class name is not just capitalized
CLASS_NAMES = {
    "pslist": "PsList",
    "psscan": "PsScan",
    "pstree": "PsTree",
    "netscan": "NetScan",
    "netstat": "NetStat",
    "cmdline": "CmdLine",
    "dlllist": "DllList",
    "filescan": "FileScan",
    "dumpfiles": "DumpFiles",
    "hivelist": "HiveList",
    "printkey": "PrintKey",
    "svcscan": "SvcScan",
    "ssdt": "SSDT",
    "driverscan": "DriverScan",
    "modscan": "ModScan",
    "vadinfo": "VadInfo",
    "vadwalk": "VadWalk",
    "yarascan": "YaraScan",
    "verinfo": "VerInfo",
}


def check_volatility_available() -> None:
    """Raise ImportError if Volatility3 is not available."""
    if not VOL3_AVAILABLE:
        raise ImportError(
            "volatility3 library not installed. "
            "Install with: pip install volatility3"
        )


def normalize_plugin_name(plugin: str, os_type: Optional[str]) -> str:
    """
    Expand a plugin name to the full "os.module.Class" form.

    - "windows.pslist.PsList" -> as-is
    - "pslist.PsList"         -> "windows.pslist.PsList"
    - "pslist"                -> "windows.pslist.PsList"
    """
    parts = plugin.split(".")
    if len(parts) == 3:
        return plugin
    if len(parts) == 2:
        return f"{os_type}.{plugin}" if os_type else plugin
    if len(parts) == 1:
        module_name = parts[0].lower()
        class_name = CLASS_NAMES.get(module_name, parts[0].capitalize())
        if os_type:
            return f"{os_type}.{module_name}.{class_name}"
        return f"{module_name}.{class_name}"
    return plugin


def list_vol3_plugins(os_name: str) -> list[str]:
    """Full names of the Volatility3 plugins available for ``os_name``."""
    check_volatility_available()
    package = importlib.import_module(f"volatility3.plugins.{os_name}")

    names = []
    for _, modname, _ in pkgutil.iter_modules(package.__path__):
        try:
            module = importlib.import_module(f"volatility3.plugins.{os_name}.{modname}")
        except Exception as e:
            logger.debug(f"Skipping {os_name}.{modname}: {e}")
            continue
        for attr, obj in vars(module).items():
            if (
                isinstance(obj, type)
                and obj.__module__ == module.__name__
                and hasattr(obj, "_required_framework_version")
            ):
                names.append(f"{os_name}.{modname}.{attr}")
    return sorted(names)


def convert_value(value: Any) -> Any:
    """Convert Volatility3 renderer values to plain Python types."""
    if value is None:
        return None

    type_name = type(value).__name__
    if "NotAvailable" in type_name or "Unreadable" in type_name:
        return None

    if isinstance(value, bool):
        return value
    # Hex format hints and vol objects subclass the builtins
    if isinstance(value, int):
        return int(value)
    if isinstance(value, float):
        return float(value)
    if isinstance(value, str):
        return str(value)

    if hasattr(value, "vol"):
        if hasattr(value, "__int__"):
            return int(value)
        return str(value)

    if hasattr(value, "isoformat"):
        return value.isoformat()

    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")

    return str(value)


class Vol3Runner:
    """
    Wrapper around the Volatility3 framework for one memory image.

    Usage:
        runner = Vol3Runner("/path/to/memory.raw")
        runner.initialize()

        for process in runner.run_plugin("windows.pslist.PsList"):
            print(process)
    """

    def __init__(self, image_path: str | Path):
        check_volatility_available()

        self.image_path = Path(image_path)
        if not self.image_path.exists():
            raise FileNotFoundError(f"Memory image not found: {image_path}")

        self._context = None
        self._automagics: Optional[list] = None
        self._base_config_path = "plugins"
        # Parameter keys set by the previous run of each plugin config path
        self._params: dict[str, set[str]] = {}
        self._initialized = False
        self._os_type: Optional[str] = None
        self._profile_info: dict[str, Any] = {}

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def os_type(self) -> Optional[str]:
        """Detected OS type: "windows", "linux" or None."""
        return self._os_type

    def initialize(self) -> dict[str, Any]:
        """Create the Volatility3 context and detect the OS profile."""
        if self._initialized:
            return self._profile_info

        logger.info(f"Initializing Volatility3 for: {self.image_path}")

        self._context = contexts.Context()
        self._context.config["automagic.LayerStacker.single_location"] = self.image_path.absolute().as_uri()
        self._automagics = automagic.available(self._context)

        self._profile_info = self._detect_profile()
        self._initialized = True
        return self._profile_info

    def _detect_profile(self) -> dict[str, Any]:
        for os_type, detect in (("windows", self._windows_info), ("linux", self._linux_info)):
            try:
                info = detect()
            except Exception as e:
                logger.debug(f"{os_type} detection failed: {e}")
                continue
            if info:
                self._os_type = os_type
                return info

        return {"os": "unknown", "error": "Could not detect OS profile"}

    def _windows_info(self) -> Optional[dict[str, Any]]:
        from volatility3.plugins.windows import info

        rows = self._run_class(info.Info)
        values = {str(r.get("Variable")): str(r.get("Value")) for r in rows if r.get("Variable")}
        if not values:
            return None

        major_minor = values.get("Major/Minor", "")
        return {
            "os": "Windows",
            "version": values.get("NtMajorVersion", "unknown"),
            "build": major_minor.split(".")[-1] if "." in major_minor else "unknown",
            "arch": "x64" if values.get("Is64Bit", "").lower() == "true" else "x86",
            "kernel_base": values.get("Kernel Base", ""),
            "system_time": values.get("SystemTime", ""),
            "system_root": values.get("NtSystemRoot", ""),
            "product_type": values.get("NtProductType", ""),
            "processors": values.get("KeNumberProcessors", ""),
            "raw_info": values,
        }

    def _linux_info(self) -> Optional[dict[str, Any]]:
        from volatility3.plugins import banners

        rows = self._run_class(banners.Banners)
        linux_banners = [r["Banner"] for r in rows if "Linux version" in str(r.get("Banner", ""))]
        if not linux_banners:
            return None
        return {"os": "Linux", "kernel": linux_banners[0].strip(), "raw_info": {"banners": linux_banners}}

    def _plugin_params(self, plugin_class: type, kwargs: dict[str, Any]) -> dict[str, Any]:
        """
        Check parameters against the plugin's requirements.

        Scalars given for a ListRequirement (e.g. a single pid) are wrapped
        in a list; "true"/"false" strings become booleans.
        """
        known = {req.name: req for req in plugin_class.get_requirements()}
        params = {}
        for key, value in kwargs.items():
            if value is None:
                continue
            requirement = known.get(key)
            if requirement is None:
                raise OptionError(
                    f"{plugin_class.__name__} has no parameter {key!r}. "
                    f"Valid parameters: {', '.join(sorted(known))}"
                )
            if isinstance(requirement, requirements.ListRequirement) and not isinstance(value, (list, tuple)):
                value = [value]
            elif isinstance(requirement, requirements.BooleanRequirement) and isinstance(value, str):
                value = value.strip().lower() in ("1", "true", "yes", "on")
            params[key] = list(value) if isinstance(value, tuple) else value
        return params

    def _construct_plugin(self, plugin_class: type, file_handler=None, **kwargs):
        plugin_config_path = interfaces.configuration.path_join(
            self._base_config_path,
            plugin_class.__name__,
        )
        params = self._plugin_params(plugin_class, kwargs)

        # The context is shared by every run; drop the previous run's parameters
        for key in self._params.pop(plugin_config_path, set()):
            full_key = f"{plugin_config_path}.{key}"
            if full_key in self._context.config:
                del self._context.config[full_key]

        for key, value in params.items():
            self._context.config[f"{plugin_config_path}.{key}"] = value
        self._params[plugin_config_path] = set(params)

        return plugins.construct_plugin(
            self._context,
            self._automagics,
            plugin_class,
            plugin_config_path,
            None,
            file_handler,
        )

    def _run_class(self, plugin_class: type, file_handler=None, **kwargs) -> list[dict[str, Any]]:
        plugin = self._construct_plugin(plugin_class, file_handler=file_handler, **kwargs)
        treegrid = plugin.run()
        columns = [col.name for col in treegrid.columns]
        rows: list[dict[str, Any]] = []

        def visitor(node, accumulator):
            row = {name: convert_value(value) for name, value in zip(columns, node.values or [])}
            row["_tree_level"] = node.path_depth
            rows.append(row)
            return None

        treegrid.populate(visitor)
        return rows

    def run_plugin(
        self,
        plugin_name: str,
        output_dir: Optional[str] = None,
        **kwargs
    ) -> Generator[dict[str, Any], None, None]:
        """
        Run a Volatility3 plugin and yield its rows as dicts.

        Args:
            plugin_name: Plugin name, e.g. "windows.pslist.PsList" or "pslist"
            output_dir: Directory for files written by the plugin
            **kwargs: Plugin configuration values (e.g. pid=[4])
        """
        if not self._initialized:
            self.initialize()

        plugin_name = normalize_plugin_name(plugin_name, self._os_type)
        plugin_class = self._get_plugin_class(plugin_name)
        if plugin_class is None:
            raise OptionError(f"Volatility3 plugin not found: {plugin_name}")

        file_handler = _make_file_handler_class(output_dir) if output_dir else None
        yield from self._run_class(plugin_class, file_handler=file_handler, **kwargs)

    def _get_plugin_class(self, plugin_name: str) -> Optional[type]:
        parts = plugin_name.split(".")
        if len(parts) != 3:
            return None

        os_name, module_name, class_name = parts
        try:
            module = importlib.import_module(f"volatility3.plugins.{os_name}.{module_name}")
        except ImportError as e:
            logger.error(f"Failed to import plugin module {plugin_name}: {e}")
            return None
        return getattr(module, class_name, None)


def _make_file_handler_class(output_dir: str):
    """
    Build a FileHandlerInterface subclass writing into ``output_dir``.

    construct_plugin() expects a class; the plugin instantiates it with the
    preferred filename for each file it writes.
    """
    from volatility3.framework.interfaces.plugins import FileHandlerInterface

    out_dir = Path(output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    class DirectFileHandler(FileHandlerInterface):
        def __init__(self, filename: str):
            fd, self._tmp_name = tempfile.mkstemp(suffix=".vol3", prefix="tmp_", dir=str(out_dir))
            self._file = open(fd, mode="w+b")
            FileHandlerInterface.__init__(self, filename)

        def __getattr__(self, item):
            return getattr(self._file, item)

        def write(self, data):
            return self._file.write(data)

        @property
        def closed(self):
            return self._file.closed

        def close(self):
            if self._file.closed:
                return
            target = out_dir / self.preferred_filename
            counter = 1
            while target.exists():
                target = out_dir / f"{Path(self.preferred_filename).stem}_{counter}{Path(self.preferred_filename).suffix}"
                counter += 1
            self.preferred_filename = target.name
            self._file.close()
            os.rename(self._tmp_name, target)

    return DirectFileHandler
