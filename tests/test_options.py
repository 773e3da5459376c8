"""
Tests for option registration and resolution.
"""
import pytest

from memplug.core import ConfObject, OptionConflictError, OptionError


def test_add_and_parse_long_and_short(config):
    config.add_option("PID", short_option="p", default=None, help="Process IDs", action="store", type="str")
    config.add_option("OUTPUT-FILE", default=None, help="Output file", action="store", type="str")

    extras = config.parse(["-p", "4,8", "--output-file", "out.txt"])

    assert extras == []
    assert config.PID == "4,8"
    assert config.OUTPUT_FILE == "out.txt"
    assert config.get("output-file") == "out.txt"


def test_default_used_when_not_given(config):
    config.add_option("MAX-HITS", default=100, help="Hit limit", action="store", type="int")
    assert config.MAX_HITS == 100
    assert config.source("MAX-HITS") == "default"


def test_int_type_accepts_hex(config):
    config.add_option("OFFSET", default=None, help="Offset", action="store", type="int")
    config.parse(["--offset", "0x1000"])
    assert config.OFFSET == 0x1000


def test_invalid_value_raises_option_error(config):
    config.add_option("OFFSET", default=None, help="Offset", action="store", type="int")
    with pytest.raises(OptionError):
        config.parse(["--offset", "nope"])


def test_choices(config):
    config.add_option("HASH", default=None, choices=("md5", "sha1"), help="Digest", action="append", type="str")
    config.parse(["--hash", "md5", "--hash", "sha1"])
    assert config.HASH == ["md5", "sha1"]

    with pytest.raises(OptionError):
        config.parse(["--hash", "crc32"])


def test_flag_actions(config):
    config.add_option("SCAN", default=False, help="Scan", action="store_true")
    config.add_option("VERBOSE", short_option="v", default=0, help="Verbosity", action="count")

    assert config.SCAN is False
    assert config.VERBOSE == 0

    config.parse(["--scan", "-vv"])
    assert config.SCAN is True
    assert config.VERBOSE == 2


def test_identical_registration_is_noop(config):
    first = config.add_option("PID", short_option="p", help="Process IDs")
    second = config.add_option("PID", short_option="p", help="Process IDs")
    assert first is second
    assert len(config.options()) == 1


def test_conflicting_registration_raises(config):
    config.add_option("PID", short_option="p", help="Process IDs")
    with pytest.raises(OptionConflictError):
        config.add_option("PID", short_option="p", help="Something else")


def test_short_option_conflict(config):
    config.add_option("PID", short_option="p", help="Process IDs")
    with pytest.raises(OptionConflictError):
        config.add_option("PHYSICAL", short_option="p", help="Physical offsets")


def test_help_short_option_is_reserved(config):
    with pytest.raises(OptionConflictError):
        config.add_option("HOST", short_option="h", help="Host")


def test_invalid_definitions(config):
    with pytest.raises(OptionError):
        config.add_option("X", action="store_const")
    with pytest.raises(OptionError):
        config.add_option("Y", type="complex")
    with pytest.raises(OptionError):
        config.add_option("Z", short_option="zz")


def test_non_strict_parse_returns_unknown_arguments(config):
    config.add_option("FILENAME", short_option="f", help="Image")
    extras = config.parse(["-f", "mem.raw", "pslist", "-p", "4"])
    assert config.FILENAME == "mem.raw"
    assert extras == ["pslist", "-p", "4"]


def test_strict_parse_rejects_unknown_arguments(config):
    config.add_option("FILENAME", short_option="f", help="Image")
    with pytest.raises(OptionError, match="unrecognized"):
        config.parse(["-f", "mem.raw", "--bogus"], strict=True)


def test_unknown_attribute(config):
    with pytest.raises(AttributeError):
        config.NOT_REGISTERED
    with pytest.raises(OptionError):
        config.get("NOT_REGISTERED")


def test_resolution_order(tmp_path):
    rc = tmp_path / "memplugrc"
    rc.write_text("[DEFAULT]\npid = 100\nscan = yes\nname = from-file\n", encoding="utf-8")
    environ = {"MEMPLUG_PID": "200"}

    config = ConfObject(config_file=rc, environ=environ)
    config.add_option("PID", default="1", help="Process IDs")
    config.add_option("SCAN", default=False, help="Scan", action="store_true")
    config.add_option("NAME", default="default", help="Name")

    assert config.NAME == "from-file"
    assert config.source("NAME") == "config file"
    assert config.SCAN is True
    assert config.PID == "200"
    assert config.source("PID") == "environment"

    config.parse(["--pid", "300"])
    assert config.PID == "300"
    assert config.source("PID") == "command line"


def test_environment_values_are_converted(tmp_path):
    environ = {"MEMPLUG_MAX_HITS": "0x10", "MEMPLUG_HASH": "md5,sha1", "MEMPLUG_SCAN": "off"}
    config = ConfObject(config_file=tmp_path / "none", environ=environ)
    config.add_option("MAX-HITS", default=1, help="Hits", type="int")
    config.add_option("HASH", default=None, help="Digests", action="append")
    config.add_option("SCAN", default=True, help="Scan", action="store_true")

    assert config.MAX_HITS == 16
    assert config.HASH == ["md5", "sha1"]
    assert config.SCAN is False


def test_bad_environment_value(tmp_path):
    config = ConfObject(config_file=tmp_path / "none", environ={"MEMPLUG_MAX_HITS": "many"})
    config.add_option("MAX-HITS", default=1, help="Hits", type="int")
    with pytest.raises(OptionError):
        config.MAX_HITS


def test_set_converts_strings(config):
    config.add_option("MAX-HITS", default=1, help="Hits", type="int")
    config.set("max-hits", "5")
    assert config.MAX_HITS == 5

    with pytest.raises(OptionError):
        config.set("missing", "x")


def test_owner_scopes_private_options(config):
    config.add_option("OUTPUT", default="text", help="Format")
    with config.owner("pslist"):
        config.add_option("PID", short_option="p", help="Process IDs")

    assert [o.name for o in config.options()] == ["OUTPUT"]
    assert [o.name for o in config.options(owner="pslist")] == ["OUTPUT", "PID"]
    assert [o.name for o in config.options(owner="pslist", include_global=False)] == ["PID"]
    assert config.get_option("PID").is_private
    assert not config.get_option("OUTPUT").is_private


def test_format_help(config):
    config.add_option("PID", short_option="p", default=None, help="Process IDs")
    config.add_option("SCAN", default=False, help="Scan too", action="store_true")
    config.add_option("MAX-HITS", default=100, help="Hit limit", type="int")

    text = config.format_help()
    assert "-p PID, --pid PID" in text
    assert "--scan" in text
    assert "(default: 100)" in text
