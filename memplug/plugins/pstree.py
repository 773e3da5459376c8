"""
Print the process list as a tree.
"""
from __future__ import annotations

from typing import Any

from memplug.plugins import pslist


def build_tree(processes: list[dict[str, Any]]) -> list[tuple[int, dict[str, Any]]]:
    """
    Order processes depth first under their parents.

    Returns ``[(depth, process), ...]``. Processes whose parent is not in
    the list are roots. PID cycles (PID reuse) are broken by visiting each
    process once.
    """
    by_pid: dict[Any, dict[str, Any]] = {}
    for proc in processes:
        by_pid.setdefault(proc.get("PID"), proc)

    children: dict[Any, list[dict[str, Any]]] = {}
    roots = []
    for proc in by_pid.values():
        ppid = proc.get("PPID")
        if ppid in by_pid and ppid != proc.get("PID"):
            children.setdefault(ppid, []).append(proc)
        else:
            roots.append(proc)

    ordered: list[tuple[int, dict[str, Any]]] = []
    visited: set = set()

    def walk(proc: dict[str, Any], depth: int) -> None:
        pid = proc.get("PID")
        if pid in visited:
            return
        visited.add(pid)
        ordered.append((depth, proc))
        for child in sorted(children.get(pid, []), key=lambda p: p.get("PID") or 0):
            walk(child, depth + 1)

    for root in sorted(roots, key=lambda p: p.get("PID") or 0):
        walk(root, 0)

    # Anything left is part of a parent cycle with no root
    for proc in by_pid.values():
        if proc.get("PID") not in visited:
            walk(proc, 0)

    return ordered


class PsTree(pslist.PsList):
    """Print the process list as a parent/child tree"""

    columns = [
        ("Name", "<50"),
        ("Pid", ">6"),
        ("PPid", ">6"),
        ("Thds", ">6"),
        ("Hnds", ">8"),
        ("Time", "<28"),
    ]

    def calculate(self) -> list[tuple[int, dict[str, Any]]]:
        return build_tree(super().calculate())

    def generator(self, data):
        for depth, proc in data:
            offset = proc.get("Offset(V)")
            offset = f"{offset:#x}" if isinstance(offset, int) else (offset or "-")
            yield (
                f"{'.' * depth}{' ' if depth else ''}{offset}:{proc.get('ImageFileName')}",
                proc.get("PID"),
                proc.get("PPID"),
                proc.get("Threads"),
                proc.get("Handles"),
                proc.get("CreateTime"),
            )
