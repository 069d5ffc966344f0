"""CLI tests — click's CliRunner against JSON project documents."""

import json

import numpy as np
import pytest
from click.testing import CliRunner

import cedartrip.osc
from cedartrip.cli import cli
from cedartrip.config import ROUNDTRIP_SUBDIR, SIDECAR_NAME
from cedartrip.host import Track
from cedartrip.memhost import MemoryHost
from helpers import add_audio_clip, dc_wav, host_with_tracks, read_wav, riff_bytes, wav_bytes


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.delenv("CEDARTRIP_OUTPUT_DIR", raising=False)
    monkeypatch.delenv("CEDARTRIP_BLOCK_SIZE", raising=False)


@pytest.fixture
def project(tmp_path):
    host, (a, b) = host_with_tracks("Dialog", "FX", project_dir=str(tmp_path))
    add_audio_clip(host, a, dc_wav(tmp_path / "a.wav", (0.25, 0.5), 2.0), 1.0, 2.0, name="dx")
    add_audio_clip(host, b, dc_wav(tmp_path / "b.wav", (0.75,), 1.0), 1.5, 1.0, volume=0.5)
    path = tmp_path / "project.json"
    host.save(path)
    return path


def _run(*args):
    return CliRunner().invoke(cli, [str(a) for a in args])


def test_send_writes_exchange_files(project, tmp_path):
    result = _run("send", "--project", project)
    assert result.exit_code == 0, result.output
    assert "sent to CEDAR Retouch" in result.output

    sidecar = tmp_path / ROUNDTRIP_SUBDIR / SIDECAR_NAME
    meta = json.loads(sidecar.read_text())
    assert meta["num_channels"] == 3
    data, _ = read_wav(meta["wav_path"])
    assert data.shape[1] == 3


def test_send_then_return(project, tmp_path):
    assert _run("send", "--project", project).exit_code == 0
    meta = json.loads((tmp_path / ROUNDTRIP_SUBDIR / SIDECAR_NAME).read_text())
    data, sr = read_wav(meta["wav_path"])
    with open(meta["wav_path"], "ab") as f:
        f.write(wav_bytes(np.full(data.shape, 0.125), sr))

    result = _run("return", "--project", project)
    assert result.exit_code == 0, result.output
    assert "Created:  2 item(s)" in result.output

    host = MemoryHost.load(project)
    dialog, fx = host.tracks()
    new = host.track_clips(dialog.guid)
    assert len(new) == 1
    assert new[0].take.chanmode == 67
    assert new[0].take.source.endswith("_processed.wav")
    assert new[0].take.name.startswith("dx_cedar_")
    assert host.track_clips(fx.guid)[0].volume == 0.5


def test_return_after_sidecar_deleted(project, tmp_path):
    """Send stores the metadata in the project itself; the file is only a fallback."""
    assert _run("send", "--project", project).exit_code == 0
    sidecar = tmp_path / ROUNDTRIP_SUBDIR / SIDECAR_NAME
    meta = json.loads(sidecar.read_text())
    data, sr = read_wav(meta["wav_path"])
    with open(meta["wav_path"], "ab") as f:
        f.write(wav_bytes(np.full(data.shape, 0.125), sr))
    sidecar.unlink()

    result = _run("return", "--project", project)
    assert result.exit_code == 0, result.output
    assert "Created:  2 item(s)" in result.output


def test_return_forget_clears_project_state(project, tmp_path):
    assert _run("send", "--project", project).exit_code == 0
    sidecar = tmp_path / ROUNDTRIP_SUBDIR / SIDECAR_NAME
    meta = json.loads(sidecar.read_text())
    data, sr = read_wav(meta["wav_path"])
    with open(meta["wav_path"], "ab") as f:
        f.write(wav_bytes(np.full(data.shape, 0.125), sr))
    sidecar.unlink()

    assert _run("return", "--project", project, "--forget").exit_code == 0
    result = _run("return", "--project", project)
    assert result.exit_code == 1
    assert "No metadata found" in result.output


def test_return_without_metadata(project):
    result = _run("return", "--project", project)
    assert result.exit_code == 1
    assert "No metadata found" in result.output


def test_send_with_nothing_selected(tmp_path):
    host, _ = host_with_tracks("Empty", project_dir=str(tmp_path))
    path = tmp_path / "empty.json"
    host.save(path)
    result = _run("send", "--project", path)
    assert result.exit_code == 1
    assert "No items selected" in result.output


def test_extract(tmp_path):
    path = tmp_path / "x.wav"
    path.write_bytes(riff_bytes(21) + wav_bytes(np.zeros((4, 2))))
    result = _run("extract", path)
    assert result.exit_code == 0, result.output
    assert "RIFF 2" in result.output
    assert "<- latest" in result.output
    assert (tmp_path / "x_processed.wav").exists()


def test_extract_single_container(tmp_path):
    path = tmp_path / "x.wav"
    path.write_bytes(wav_bytes(np.zeros((4, 2))))
    result = _run("extract", path, "-o", tmp_path / "out.wav")
    assert result.exit_code == 0
    assert "nothing to extract" in result.output
    assert not (tmp_path / "out.wav").exists()


def test_info(project):
    result = _run("info", "--project", project)
    assert result.exit_code == 0, result.output
    assert "[DEBUG] Item 1 (track 1): D_VOL=1.000000 (0.00 dB)" in result.output
    assert "[DEBUG] Item 2 (track 2): D_VOL=0.500000 (-6.02 dB)" in result.output
    assert "name=dx" in result.output


class FakeOSCHost:
    def __init__(self, hostname, port, client_port, fail=False):
        self.fail = fail
        self.closed = False

    def check(self):
        if self.fail:
            raise TimeoutError("No response from editor bridge for: /cedartrip/ping")
        return ("0.1",)

    def tracks(self):
        return [Track(guid="{A}", index=1, name="Dialog")]

    def close(self):
        self.closed = True


def test_check_connected(monkeypatch):
    monkeypatch.setattr(cedartrip.osc, "OSCHost", FakeOSCHost)
    result = _run("check")
    assert result.exit_code == 0, result.output
    assert "Connected!" in result.output
    assert "[1] Dialog" in result.output


def test_check_no_bridge(monkeypatch):
    monkeypatch.setattr(
        cedartrip.osc, "OSCHost", lambda **kw: FakeOSCHost(fail=True, **kw)
    )
    result = _run("check")
    assert result.exit_code == 1
    assert "Is the editor running" in result.output
