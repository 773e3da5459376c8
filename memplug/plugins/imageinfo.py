"""
Identify the operating system of a memory image.
"""
from __future__ import annotations

from typing import Any

from memplug.core.command import MemoryCommand
from memplug.core.render import write_json

SUMMARY_FIELDS = [
    ("os", "Operating system"),
    ("version", "Major version"),
    ("build", "Build"),
    ("arch", "Architecture"),
    ("kernel", "Kernel"),
    ("kernel_base", "Kernel base"),
    ("system_root", "System root"),
    ("product_type", "Product type"),
    ("processors", "Processors"),
    ("system_time", "Image date and time"),
]


class ImageInfo(MemoryCommand):
    """Identify the operating system and basic properties of a memory image"""

    def calculate(self) -> dict[str, Any]:
        session = self.get_session()
        return session.initialize()

    def summary_rows(self, data: dict[str, Any]) -> list[tuple[str, Any]]:
        profile = data.get("profile") or {}
        rows = [("Image", data.get("image_path")), ("Size (bytes)", data.get("file_size_bytes"))]
        for key, label in SUMMARY_FIELDS:
            if profile.get(key):
                rows.append((label, profile[key]))
        if profile.get("error"):
            rows.append(("Error", profile["error"]))
        return rows

    def render_text(self, outfd, data) -> None:
        for label, value in self.summary_rows(data):
            outfd.write(f"{label:>24} : {value}\n")

    def render_json(self, outfd, data) -> None:
        write_json(outfd, data)
