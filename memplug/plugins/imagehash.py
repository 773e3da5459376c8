"""
Hash a memory image.
"""
from __future__ import annotations

import hashlib
import logging
from typing import Any

from memplug.config import DEFAULT_HASHES, HASH_CHUNK_SIZE, SUPPORTED_HASHES
from memplug.core.command import MemoryCommand, TabularCommand

logger = logging.getLogger(__name__)


def hash_file(path, algorithms, chunk_size: int = HASH_CHUNK_SIZE) -> dict[str, Any]:
    hashers = {name: hashlib.new(name) for name in algorithms}
    size = 0
    with open(path, "rb") as f:
        while chunk := f.read(chunk_size):
            size += len(chunk)
            for hasher in hashers.values():
                hasher.update(chunk)
    return {
        "path": str(path),
        "size": size,
        "digests": {name: hasher.hexdigest() for name, hasher in hashers.items()},
    }


class ImageHash(MemoryCommand, TabularCommand):
    """
    Compute cryptographic digests of the memory image.

    Useful for recording the state of evidence before and after analysis.
    Select algorithms with --hash (repeatable); md5, sha1 and sha256 are
    computed by default.
    """

    meta_info = {"author": "memplug", "license": "GPL-2.0-or-later"}
    columns = [("Algorithm", "<10"), ("Digest", "<64"), ("Size", ">12")]

    def __init__(self, config, *args, **kwargs):
        super().__init__(config, *args, **kwargs)
        config.add_option(
            "HASH", default=None, choices=SUPPORTED_HASHES,
            help="Digest algorithm to compute (may be repeated)",
            action="append", type="str",
        )

    def calculate(self) -> dict[str, Any]:
        path = self.image_path()
        algorithms = list(dict.fromkeys(self._config.HASH or DEFAULT_HASHES))
        logger.info(f"Hashing {path} ({', '.join(algorithms)})")
        return hash_file(path, algorithms)

    def generator(self, data):
        for name, digest in data["digests"].items():
            yield (name, digest, data["size"])
