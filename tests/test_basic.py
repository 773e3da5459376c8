"""
Basic tests for memplug.

Tests module imports, configuration, and session bookkeeping
without requiring actual memory dumps or Vol3.
"""
import pytest
from pathlib import Path


def test_package_import():
    """Test that the main package imports successfully."""
    import memplug
    assert hasattr(memplug, "__version__")
    assert memplug.__version__ == "0.1.0"


def test_config_import():
    """Test configuration module."""
    from memplug.config import (
        DEFAULT_OUTPUT,
        MAX_RESPONSE_SIZE,
        HASH_CHUNK_SIZE,
        YARA_SCAN_WINDOW,
        YARA_SCAN_OVERLAP,
        RC_FILE,
        ENV_PREFIX,
    )
    assert DEFAULT_OUTPUT == "text"
    assert MAX_RESPONSE_SIZE == 40000
    assert HASH_CHUNK_SIZE > 0
    assert YARA_SCAN_OVERLAP < YARA_SCAN_WINDOW
    assert isinstance(RC_FILE, Path)
    assert ENV_PREFIX == "MEMPLUG_"


def test_core_imports():
    """Test core module imports."""
    from memplug.core import (
        Command,
        ConfObject,
        PluginRegistry,
        MemorySession,
        get_session,
        clear_sessions,
        list_sessions,
        VOL3_AVAILABLE,
    )
    assert callable(get_session)
    assert callable(clear_sessions)
    assert callable(list_sessions)
    assert isinstance(VOL3_AVAILABLE, bool)
    assert issubclass(Command, object)


def test_server_module_import():
    """Test server module can be imported."""
    from memplug import server
    assert hasattr(server, "server")
    assert hasattr(server, "run")
    assert hasattr(server, "main")


def test_session_lifecycle():
    """Test session creation and listing."""
    from memplug.core.session import (
        get_session,
        get_session_by_id,
        list_sessions,
        clear_sessions,
    )

    clear_sessions()
    assert list_sessions() == []

    # Creating session for non-existent file should still create session object
    session = get_session("/tmp/nonexistent_test_dump.raw")
    assert session is not None
    assert session.session_id.startswith("mem_")
    assert session.is_initialized is False
    assert session.os_type is None

    # Same path returns the same session
    assert get_session("/tmp/nonexistent_test_dump.raw") is session
    assert get_session_by_id(session.session_id) is session
    assert get_session("/tmp/other.raw", create=False) is None

    sessions = list_sessions()
    assert len(sessions) == 1
    assert sessions[0]["session_id"] == session.session_id

    assert clear_sessions(max_age_seconds=3600) == 0
    assert clear_sessions() == 1
    assert list_sessions() == []


def test_session_cache_stats():
    from memplug.core.session import MemorySession

    session = MemorySession("/tmp/test.raw")
    stats = session.get_cache_stats()
    assert stats["entries"] == 0
    assert stats["plugins_cached"] == []
    assert session.clear_cache() == 0


def test_session_requires_volatility(tmp_path):
    from memplug.core.session import MemorySession
    from memplug.core.vol3_runner import VOL3_AVAILABLE

    if VOL3_AVAILABLE:
        pytest.skip("volatility3 is installed")

    image = tmp_path / "memory.raw"
    image.write_bytes(b"\0" * 16)
    with pytest.raises(ImportError):
        MemorySession(image).initialize()


def test_normalize_plugin_name():
    from memplug.core.vol3_runner import normalize_plugin_name

    assert normalize_plugin_name("windows.pslist.PsList", "windows") == "windows.pslist.PsList"
    assert normalize_plugin_name("pslist.PsList", "windows") == "windows.pslist.PsList"
    assert normalize_plugin_name("pslist", "windows") == "windows.pslist.PsList"
    assert normalize_plugin_name("malfind", "windows") == "windows.malfind.Malfind"
    assert normalize_plugin_name("netscan", None) == "netscan.NetScan"


def test_convert_value():
    from datetime import datetime
    from memplug.core.vol3_runner import convert_value

    class NotAvailableValue:
        pass

    class Hex(int):
        pass

    assert convert_value(None) is None
    assert convert_value(NotAvailableValue()) is None
    assert convert_value(True) is True
    assert convert_value(Hex(16)) == 16 and type(convert_value(Hex(16))) is int
    assert convert_value(datetime(2024, 1, 2, 3, 4, 5)) == "2024-01-02T03:04:05"
    assert convert_value(b"abc") == "abc"


def test_server_run_command(image):
    import hashlib
    from memplug.server import describe_plugins, run_command

    result = run_command("imagehash", image_path=str(image), options={"hash": "md5"})
    assert result["plugin"] == "imagehash"
    assert result["results"] == [{
        "Algorithm": "md5",
        "Digest": hashlib.md5(image.read_bytes()).hexdigest(),
        "Size": 64 * 1024,
    }]

    plugins = {p["name"]: p for p in describe_plugins()}
    assert [o["name"] for o in plugins["pstree"]["options"]] == ["pid", "scan"]
    assert plugins["imageinfo"]["formats"] == ["json", "text"]


def test_server_filter_and_truncate():
    from memplug.server import _apply_filter, truncate_response

    data = _apply_filter({"results": [{"Name": "lsass.exe"}, {"Name": "System"}]}, "LSASS")
    assert data["results"] == [{"Name": "lsass.exe"}]
    assert "_filter_info" in data

    big = truncate_response({"results": list(range(5000))}, max_size=2000)
    assert len(big["results"]) < 5000
    assert "_truncation" in big
