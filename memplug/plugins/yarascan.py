"""
Scan the raw memory image with YARA.
"""
from __future__ import annotations

import logging
import os
from typing import Any

from memplug.config import MAX_YARA_HITS, YARA_DATA_PREVIEW, YARA_SCAN_OVERLAP, YARA_SCAN_WINDOW
from memplug.core.command import MemoryCommand, TabularCommand
from memplug.core.exceptions import OptionError
from memplug.core.render import write_json

logger = logging.getLogger(__name__)

# Try to import YARA
try:
    import yara
    YARA_AVAILABLE = True
except ImportError:
    YARA_AVAILABLE = False
    yara = None


def check_yara_available() -> None:
    if not YARA_AVAILABLE:
        raise ImportError("yara-python not installed. Install with: pip install yara-python")


def string_rule(text: str) -> str:
    """Build a rule source matching ``text`` as ascii and wide."""
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    return (
        "rule memplug_string {\n"
        f'  strings: $s = "{escaped}" ascii wide nocase\n'
        "  condition: $s\n"
        "}\n"
    )


def compile_rules(rules_text: str | None = None, rules_file: str | None = None):
    """
    Compile rules from a file, from rule source, or from a plain string.

    Text that contains a rule declaration is compiled as-is; anything else
    is searched for literally.
    """
    check_yara_available()
    if rules_file:
        if not os.path.isfile(rules_file):
            raise FileNotFoundError(f"YARA rules file not found: {rules_file}")
        return yara.compile(filepath=rules_file)
    if rules_text:
        if "rule " in rules_text and "{" in rules_text:
            return yara.compile(source=rules_text)
        return yara.compile(source=string_rule(rules_text))
    raise OptionError("You must specify a string (-Y) or a rules file (-y)")


def scan_file(
    path,
    rules,
    max_hits: int = MAX_YARA_HITS,
    window: int = YARA_SCAN_WINDOW,
    overlap: int = YARA_SCAN_OVERLAP,
) -> list[dict[str, Any]]:
    """
    Scan ``path`` in overlapping windows.

    Hits inside the overlap are seen by two windows and reported once.
    """
    if overlap >= window:
        raise ValueError("overlap must be smaller than the scan window")

    hits: list[dict[str, Any]] = []
    seen: set[tuple[str, str, int, int]] = set()
    base = 0

    with open(path, "rb") as f:
        while True:
            f.seek(base)
            data = f.read(window)
            if not data:
                break

            for match in rules.match(data=data):
                for string_match in match.strings:
                    for instance in string_match.instances:
                        offset = base + instance.offset
                        key = (match.rule, string_match.identifier, offset, len(instance.matched_data))
                        if key in seen:
                            continue
                        seen.add(key)
                        hits.append({
                            "rule": match.rule,
                            "namespace": match.namespace,
                            "identifier": string_match.identifier,
                            "offset": offset,
                            "data": bytes(instance.matched_data),
                        })
                        if len(hits) >= max_hits:
                            logger.info(f"Stopping after {max_hits} hits")
                            return sorted(hits, key=lambda h: h["offset"])

            if len(data) < window:
                break
            base += window - overlap

    return sorted(hits, key=lambda h: h["offset"])


def preview(data: bytes, length: int = YARA_DATA_PREVIEW) -> str:
    """Printable preview of matched bytes."""
    chunk = data[:length]
    text = "".join(chr(b) if 32 <= b < 127 else "." for b in chunk)
    return text + ("..." if len(data) > length else "")


class YaraScan(MemoryCommand, TabularCommand):
    """
    Scan the memory image with YARA signatures.

    Give a literal string or rule source with -Y/--yara-rules, or a rules
    file with -y/--yara-file. The image is scanned as raw physical data;
    offsets are file offsets.
    """

    columns = [
        ("Offset", "[addrpad]"),
        ("Rule", "<24"),
        ("String", "<12"),
        ("Data", "<35"),
    ]

    def __init__(self, config, *args, **kwargs):
        super().__init__(config, *args, **kwargs)
        config.add_option(
            "YARA-RULES", short_option="Y", default=None,
            help="YARA rule source or a plain string to search for",
            action="store", type="str",
        )
        config.add_option(
            "YARA-FILE", short_option="y", default=None,
            help="YARA rules file",
            action="store", type="str",
        )
        config.add_option(
            "MAX-HITS", default=MAX_YARA_HITS,
            help="Stop after this many hits",
            action="store", type="int",
        )

    def calculate(self) -> list[dict[str, Any]]:
        path = self.image_path()
        max_hits = self._config.MAX_HITS
        if max_hits is None or max_hits < 1:
            raise OptionError("--max-hits must be a positive integer")
        rules = compile_rules(self._config.YARA_RULES, self._config.YARA_FILE)
        return scan_file(path, rules, max_hits=max_hits)

    def generator(self, data):
        for hit in data:
            yield (hit["offset"], hit["rule"], hit["identifier"], preview(hit["data"]))

    def render_json(self, outfd, data) -> None:
        # Full matched data rather than the text preview
        write_json(outfd, data)
