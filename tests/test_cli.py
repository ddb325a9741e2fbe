import json
from pathlib import Path

import pytest

from fluidbridge import native_runtime
from fluidbridge.cli import build_parser
from fluidbridge.cli import main as cli_main
from fluidbridge.config import DEFAULT_CONFIG_PATH


@pytest.fixture
def loaded(monkeypatch, surface):
    monkeypatch.setattr(native_runtime, "_RESOLVED", True)
    monkeypatch.setattr(native_runtime, "AVAILABLE", True)
    monkeypatch.setattr(native_runtime, "_IMPL", surface)
    monkeypatch.setattr(native_runtime, "UNAVAILABLE_REASON", None)
    return surface


@pytest.fixture
def unavailable(monkeypatch):
    monkeypatch.setattr(native_runtime, "_RESOLVED", True)
    monkeypatch.setattr(native_runtime, "AVAILABLE", False)
    monkeypatch.setattr(native_runtime, "_IMPL", None)
    monkeypatch.setattr(native_runtime, "UNAVAILABLE_REASON", "nothing found")


def test_parser_requires_a_command() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_info_reports_unavailable_library(unavailable, capsys) -> None:
    assert cli_main(["info"]) == 1
    assert "FluidSynth unavailable: nothing found" in capsys.readouterr().out


def test_info_reports_version(loaded, capsys) -> None:
    assert cli_main(["info"]) == 0
    assert "FluidSynth 2.3.0 loaded from /fake/libfluidsynth.so.3" in capsys.readouterr().out


def test_render_command(loaded, fake_lib, tmp_path: Path, capsys) -> None:
    midi = tmp_path / "song.mid"
    midi.write_bytes(b"MThd")
    sf2 = tmp_path / "piano.sf2"
    exit_code = cli_main(
        [
            "render",
            str(midi),
            str(tmp_path / "song.wav"),
            "--config",
            str(DEFAULT_CONFIG_PATH),
            "--soundfont",
            str(sf2),
        ]
    )
    assert exit_code == 0
    assert "Rendered" in capsys.readouterr().out
    assert fake_lib.count("new_fluid_audio_driver") == 0
    assert fake_lib.count("fluid_synth_sfload") == 2
    assert fake_lib.synths == {}
    assert fake_lib.settings == {}


def test_render_command_missing_input(loaded, tmp_path: Path, capsys) -> None:
    exit_code = cli_main(["render", str(tmp_path / "absent.mid"), str(tmp_path / "out.wav")])
    assert exit_code == 1
    assert capsys.readouterr().out.startswith("error: Can't access input file")


def test_render_command_without_library(unavailable, tmp_path: Path, capsys) -> None:
    exit_code = cli_main(["render", str(tmp_path / "a.mid"), str(tmp_path / "out.wav")])
    assert exit_code == 1
    assert "not loaded" in capsys.readouterr().out


def test_test_notes_command(loaded, fake_lib) -> None:
    assert cli_main(["test-notes", "--delay", "0"]) == 0
    assert fake_lib.count("fluid_synth_noteon") == 12
    assert fake_lib.count("new_fluid_audio_driver") == 1
    assert fake_lib.count("delete_fluid_audio_driver") == 1


def test_test_notes_honours_audio_driver_flag(loaded, fake_lib, tmp_path: Path) -> None:
    config = tmp_path / "quiet.json"
    config.write_text(json.dumps({"audio_driver": False}))
    assert cli_main(["test-notes", "--delay", "0", "--config", str(config)]) == 0
    assert fake_lib.count("new_fluid_audio_driver") == 0
    assert fake_lib.count("fluid_synth_noteon") == 12
