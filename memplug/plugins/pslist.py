"""
List processes in a Windows memory image.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from memplug.core.command import MemoryCommand, TabularCommand
from memplug.core.exceptions import OptionError

logger = logging.getLogger(__name__)


def parse_pid_list(value: Optional[str]) -> Optional[set[int]]:
    """Parse "4,1234, 5678" into a set of PIDs. None means no filter."""
    if value is None or str(value).strip() == "":
        return None
    pids = set()
    for part in str(value).split(","):
        part = part.strip()
        if not part:
            continue
        try:
            pids.add(int(part, 0))
        except ValueError:
            raise OptionError(f"Invalid PID: {part!r}") from None
    return pids


class PsList(MemoryCommand, TabularCommand):
    """
    Print all running processes by following the EPROCESS lists.

    Use -p/--pid with a comma separated list to restrict the output, and
    --scan to also report processes found only by pool scanning.
    """

    columns = [
        ("Offset(V)", "[addrpad]"),
        ("Name", "<20"),
        ("PID", ">6"),
        ("PPID", ">6"),
        ("Thds", ">6"),
        ("Hnds", ">8"),
        ("Sess", ">6"),
        ("Wow64", ">6"),
        ("Start", "<28"),
    ]

    def __init__(self, config, *args, **kwargs):
        super().__init__(config, *args, **kwargs)
        config.add_option(
            "PID", short_option="p", default=None,
            help="Operate on these Process IDs (comma-separated)",
            action="store", type="str",
        )
        config.add_option(
            "SCAN", default=False,
            help="Include terminated/unlinked processes found by psscan",
            action="store_true",
        )

    def filter_processes(self, processes: list[dict[str, Any]]) -> list[dict[str, Any]]:
        pids = parse_pid_list(self._config.PID)
        if pids is None:
            return processes
        return [p for p in processes if p.get("PID") in pids]

    def calculate(self) -> list[dict[str, Any]]:
        # Validate the filter before touching the image
        parse_pid_list(self._config.PID)
        session = self.get_session()
        processes = session.get_processes(include_terminated=self._config.SCAN)
        logger.debug(f"{len(processes)} processes before filtering")
        return self.filter_processes(processes)

    def generator(self, data):
        for proc in data:
            yield (
                proc.get("Offset(V)"),
                proc.get("ImageFileName"),
                proc.get("PID"),
                proc.get("PPID"),
                proc.get("Threads"),
                proc.get("Handles"),
                proc.get("SessionId"),
                proc.get("Wow64"),
                proc.get("CreateTime"),
            )
