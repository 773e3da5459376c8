"""
Tests for the memplug command line.
"""
import hashlib
import json
import textwrap

from memplug.cli import main


def test_imagehash(image, capsys):
    assert main(["-f", str(image), "imagehash", "--hash", "md5"]) == 0
    out = capsys.readouterr().out
    assert hashlib.md5(image.read_bytes()).hexdigest() in out
    assert out.splitlines()[0].split() == ["Algorithm", "Digest", "Size"]


def test_global_options_after_plugin_name(image, capsys):
    assert main(["imagehash", "--output", "json", "-f", str(image), "--hash", "sha1"]) == 0
    rows = json.loads(capsys.readouterr().out)
    assert rows[0]["Digest"] == hashlib.sha1(image.read_bytes()).hexdigest()


def test_unknown_plugin(capsys):
    assert main(["pslst"]) == 2
    err = capsys.readouterr().err
    assert "Unknown plugin: pslst" in err
    assert "pslist" in err


def test_no_plugin_prints_usage(capsys):
    assert main([]) == 2
    err = capsys.readouterr().err
    assert err.startswith("Usage: memplug")
    assert "yarascan" in err


def test_general_help(capsys):
    assert main(["-h"]) == 0
    out = capsys.readouterr().out
    assert "--output OUTPUT" in out
    assert "-f FILENAME, --filename FILENAME" in out
    # Plugin private options are not global
    assert "--pid" not in out


def test_plugin_help(capsys):
    assert main(["imagehash", "--help"]) == 0
    out = capsys.readouterr().out
    assert "Compute cryptographic digests" in out
    assert "Plugin options:" in out
    assert "--hash HASH" in out
    assert "Output formats: csv, json, text" in out


def test_unknown_option_is_rejected(image, capsys):
    assert main(["-f", str(image), "imagehash", "--bogus"]) == 2
    assert "unrecognized" in capsys.readouterr().err


def test_private_option_of_other_plugin_is_rejected(image, capsys):
    assert main(["-f", str(image), "imagehash", "--pid", "4"]) == 2


def test_unsupported_output_format(image, capsys):
    assert main(["-f", str(image), "imageinfo", "--output", "csv"]) == 2
    assert "unable to produce output in format 'csv'" in capsys.readouterr().err


def test_missing_image(tmp_path, capsys):
    assert main(["-f", str(tmp_path / "missing.raw"), "imagehash"]) == 1
    assert "missing.raw" in capsys.readouterr().err


def test_info_lists_plugins(capsys):
    assert main(["--info"]) == 0
    out = capsys.readouterr().out
    assert "imagehash" in out
    assert "memplug.plugins.yarascan" in out


def test_output_file(image, tmp_path, capsys):
    target = tmp_path / "hashes.json"
    argv = ["-f", str(image), "--output", "json", "--output-file", str(target), "imagehash"]
    assert main(argv) == 0
    assert capsys.readouterr().out == ""
    assert json.loads(target.read_text(encoding="utf-8"))[0]["Algorithm"] == "md5"

    assert main(argv) == 2
    assert "refusing to overwrite" in capsys.readouterr().err


def test_external_plugin_directory(tmp_path, capsys):
    plugin_dir = tmp_path / "extra"
    plugin_dir.mkdir()
    (plugin_dir / "greeting.py").write_text(textwrap.dedent("""
        from memplug.core import command


        class Greeting(command.Command):
            \"\"\"Greet someone\"\"\"

            def __init__(self, config, *args, **kwargs):
                super().__init__(config, *args, **kwargs)
                config.add_option("WHO", short_option="w", default="world",
                                  help="Who to greet", action="store", type="str")

            def calculate(self):
                return self._config.WHO

            def render_text(self, outfd, data):
                outfd.write(f"Hello {data}\\n")
    """), encoding="utf-8")

    assert main(["--plugins", str(plugin_dir), "greeting", "-w", "analyst"]) == 0
    assert capsys.readouterr().out == "Hello analyst\n"


def test_conflicting_plugin_directory(tmp_path, capsys):
    plugin_dir = tmp_path / "bad"
    plugin_dir.mkdir()
    (plugin_dir / "badlist.py").write_text(
        "from memplug.plugins.pslist import PsList\n\n\n"
        "class BadList(PsList):\n"
        "    pass\n",
        encoding="utf-8",
    )

    assert main(["--plugins", str(plugin_dir), "pslist"]) == 1
    err = capsys.readouterr().err
    assert err.startswith("Plugin registration failed:")
    assert "pslist" in err


def test_options_from_environment(image, monkeypatch, capsys):
    monkeypatch.setenv("MEMPLUG_FILENAME", str(image))
    monkeypatch.setenv("MEMPLUG_OUTPUT", "json")
    assert main(["imagehash"]) == 0
    assert len(json.loads(capsys.readouterr().out)) == 3


def test_options_from_config_file(image, tmp_path, monkeypatch, capsys):
    rc = tmp_path / "memplugrc"
    rc.write_text(f"[DEFAULT]\nfilename = {image}\nhash = sha256\n", encoding="utf-8")
    monkeypatch.setenv("MEMPLUG_CONFIG", str(rc))
    assert main(["imagehash"]) == 0
    assert hashlib.sha256(image.read_bytes()).hexdigest() in capsys.readouterr().out


def test_unsupported_os_is_reported_without_traceback(image, monkeypatch, capsys, caplog):
    from memplug.plugins import pslist

    class LinuxSession:
        def get_processes(self, include_terminated=False):
            raise NotImplementedError("Process listing only implemented for Windows")

    monkeypatch.setattr(pslist.PsList, "get_session", lambda self: LinuxSession())

    assert main(["-f", str(image), "pstree"]) == 1
    assert capsys.readouterr().err == "Error: Process listing only implemented for Windows\n"
    assert not [r for r in caplog.records if r.exc_info]
