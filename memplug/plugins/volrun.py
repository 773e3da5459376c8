"""
Run an arbitrary Volatility3 plugin against the image.
"""
from __future__ import annotations

import logging
from typing import Any

from memplug.core.command import MemoryCommand
from memplug.core.exceptions import OptionError
from memplug.core.render import TextTable, fit_columns, write_json
from memplug.core.vol3_runner import list_vol3_plugins

logger = logging.getLogger(__name__)

HIDDEN_COLUMNS = {"_tree_level"}


def parse_params(items: list[str]) -> dict[str, Any]:
    """
    Parse ``key=value`` plugin parameters.

    Integers (decimal or 0x hex) are converted. Repeating a key collects the
    values into a list; a single value for a list parameter is wrapped by
    the runner.
    """
    params: dict[str, Any] = {}
    for item in items or []:
        key, sep, raw = item.partition("=")
        key = key.strip()
        if not sep or not key:
            raise OptionError(f"Invalid plugin parameter {item!r}, expected key=value")
        raw = raw.strip()
        try:
            value: Any = int(raw, 0)
        except ValueError:
            value = raw
        if key in params:
            existing = params[key]
            params[key] = (existing if isinstance(existing, list) else [existing]) + [value]
        else:
            params[key] = value
    return params


class VolRun(MemoryCommand):
    """
    Run a Volatility3 plugin and render its rows.

    The plugin may be given in full ("windows.netscan.NetScan") or short
    ("netscan") form; short names are expanded for the detected OS.
    Plugin parameters are passed with --param key=value.
    """

    def __init__(self, config, *args, **kwargs):
        super().__init__(config, *args, **kwargs)
        config.add_option(
            "VOL3-PLUGIN", short_option="P", default=None,
            help="Volatility3 plugin to run",
            action="store", type="str",
        )
        config.add_option(
            "PARAM", default=None,
            help="Plugin parameter as key=value (may be repeated)",
            action="append", type="str",
        )
        config.add_option(
            "DUMP-DIR", short_option="D", default=None,
            help="Directory for files written by the plugin",
            action="store", type="str",
        )
        config.add_option(
            "LIST", default=False,
            help="List the Volatility3 plugins available for the image's OS",
            action="store_true",
        )

    def calculate(self) -> dict[str, Any]:
        if self._config.LIST:
            session = self.get_session()
            session.initialize()
            os_type = session.os_type or "windows"
            return {"plugin": None, "available": list_vol3_plugins(os_type), "rows": []}

        plugin = self._config.VOL3_PLUGIN
        if not plugin:
            raise OptionError("No Volatility3 plugin given (use --vol3-plugin)")
        params = parse_params(self._config.PARAM)

        session = self.get_session()
        rows = session.run_plugin(plugin, output_dir=self._config.DUMP_DIR, **params)
        return {"plugin": plugin, "params": params, "rows": rows}

    def visible_columns(self, rows: list[dict[str, Any]]) -> list[str]:
        titles: list[str] = []
        for row in rows:
            for key in row:
                if key not in HIDDEN_COLUMNS and key not in titles:
                    titles.append(key)
        return titles

    def render_text(self, outfd, data) -> None:
        if data.get("available") is not None:
            for name in data["available"]:
                outfd.write(f"{name}\n")
            return

        rows = data["rows"]
        if not rows:
            outfd.write(f"No results from {data['plugin']}\n")
            return

        titles = self.visible_columns(rows)
        values = []
        for row in rows:
            indent = "*" * row.get("_tree_level", 0)
            cells = [row.get(t) for t in titles]
            if indent and cells:
                cells[0] = f"{indent} {cells[0]}"
            values.append(cells)

        table = TextTable(fit_columns(titles, values))
        outfd.write(table.header())
        for cells in values:
            outfd.write(table.row(cells))

    def render_json(self, outfd, data) -> None:
        write_json(outfd, data)
