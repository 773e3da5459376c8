"""
Configuration settings for memplug.

Adjustable limits, paths and defaults for the plugin framework.
"""
from pathlib import Path

# Output
DEFAULT_OUTPUT = "text"
MAX_RESPONSE_SIZE = 40000  # ~10k tokens, MCP responses only

# Option resolution
ENV_PREFIX = "MEMPLUG_"
CONFIG_ENV_VAR = "MEMPLUG_CONFIG"
RC_FILE = Path.home() / ".memplugrc"
LOG_LEVEL_ENV_VAR = "MEMPLUG_LOG_LEVEL"

# Plugin loading
BUILTIN_PLUGIN_PACKAGE = "memplug.plugins"
PLUGIN_PATH_SEPARATOR = ":"

# Image hashing
HASH_CHUNK_SIZE = 4 * 1024 * 1024
DEFAULT_HASHES = ("md5", "sha1", "sha256")
SUPPORTED_HASHES = ("md5", "sha1", "sha256", "sha512")

# YARA scanning of raw images
YARA_SCAN_WINDOW = 16 * 1024 * 1024
YARA_SCAN_OVERLAP = 4096  # Longest match guaranteed to be seen across windows
MAX_YARA_HITS = 100
YARA_DATA_PREVIEW = 32  # Bytes of matched data shown in text output

# Process listing
PROCESS_PLUGIN = "windows.pslist.PsList"
PSSCAN_PLUGIN = "windows.psscan.PsScan"
