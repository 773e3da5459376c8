"""
Shared fixtures. Nothing here needs a real memory image or Volatility3.
"""
import os

import pytest

from memplug.core import ConfObject, PluginRegistry, clear_sessions


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Keep the user's ~/.memplugrc and MEMPLUG_* variables out of the tests."""
    for key in list(os.environ):
        if key.startswith("MEMPLUG_"):
            monkeypatch.delenv(key)
    monkeypatch.setenv("MEMPLUG_CONFIG", str(tmp_path / "no-such-memplugrc"))
    clear_sessions()
    yield
    clear_sessions()


@pytest.fixture
def config(tmp_path):
    return ConfObject(config_file=tmp_path / "no-such-memplugrc", environ={})


@pytest.fixture
def registry(config):
    registry = PluginRegistry(config)
    registry.load_package("memplug.plugins")
    return registry


@pytest.fixture
def image(tmp_path):
    """A small fake memory image with a known marker string."""
    path = tmp_path / "memory.raw"
    data = bytearray(64 * 1024)
    data[1000:1000 + len(b"evil.example.com")] = b"evil.example.com"
    path.write_bytes(bytes(data))
    return path
