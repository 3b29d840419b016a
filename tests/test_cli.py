import os
import subprocess
import sys
from pathlib import Path

import pytest
from click.testing import CliRunner

from agcal_archive.multislot import parse_index
from agcal_stash.cli import main

from conftest import META, write_session

REPO = Path(__file__).resolve().parents[1]


def run(cmd, cwd):
    env = dict(os.environ, PYTHONPATH=str(REPO / "src"))
    return subprocess.run(cmd, cwd=cwd, shell=True, check=False, capture_output=True, text=True, env=env)


def test_generate_pack_corrupt_end_to_end(tmp_path):
    py = sys.executable
    session = tmp_path / "session"
    blob = tmp_path / "calib.agst"
    out = tmp_path / "out"

    r = run(f'"{py}" tools/gen_session.py {session} --size 64x48 --border 2', cwd=REPO)
    assert r.returncode == 0, r.stderr + r.stdout
    assert (session / "calib_result" / "remap_left.bin").stat().st_size == 16 + 4 * 64 * 48

    r = run(f'"{py}" -m agcal_stash.cli pack {session} {blob}', cwd=REPO)
    assert r.returncode == 0, r.stderr + r.stdout
    assert "PASS:" in r.stdout

    r = run(f'"{py}" -m agcal_stash.cli list {blob}', cwd=REPO)
    assert r.returncode == 0, r.stderr + r.stdout
    assert "Calibration summary:" in r.stdout

    r = run(f'"{py}" -m agcal_stash.cli extract {blob} {out}', cwd=REPO)
    assert r.returncode == 0, r.stderr + r.stdout
    for name in ("remap_left.bin", "remap_right.bin"):
        assert (out / "calib_result" / name).read_bytes() == (session / "calib_result" / name).read_bytes()

    # Corrupt and ensure failure
    r = run(f'"{py}" scripts/corrupt_one_byte.py {blob}', cwd=REPO)
    assert r.returncode == 0, r.stderr + r.stdout

    r = run(f'"{py}" -m agcal_stash.cli list {blob}', cwd=REPO)
    assert r.returncode != 0
    assert r.stdout.startswith("FATAL:")


@pytest.fixture
def runner():
    return CliRunner()


def test_pack_list_extract(runner, session, tmp_path):
    blob = tmp_path / "calib.agst"
    r = runner.invoke(main, ["pack", str(session), str(blob)])
    assert r.exit_code == 0, r.output
    assert "compact 3-byte offsets" in r.output

    r = runner.invoke(main, ["list", str(blob)])
    assert r.exit_code == 0, r.output
    assert "Calibration archive: 3 file(s)" in r.output

    r = runner.invoke(main, ["extract", str(blob), str(tmp_path / "x")])
    assert r.exit_code == 0, r.output
    assert (tmp_path / "x" / "calib_result" / "calibration_meta.json").exists()


def test_pack_without_compression(runner, session, tmp_path):
    blob = tmp_path / "raw.agst"
    r = runner.invoke(main, ["pack", "--no-compress", str(session), str(blob)])
    assert r.exit_code == 0, r.output
    assert blob.read_bytes()[4096:4101] == b"AGCAL"


def test_malformed_input_is_one_fatal_line(runner, tmp_path):
    bad = tmp_path / "bad.bin"
    bad.write_bytes(b"AGST" + b"\xff" * 20)
    r = runner.invoke(main, ["list", str(bad)])
    assert r.exit_code == 1
    assert r.output.startswith("FATAL: ")
    assert "Traceback" not in r.output


def test_check_local_session(runner, session):
    r = runner.invoke(main, ["check", str(session)])
    assert r.exit_code == 0, r.output
    assert "PASS: remap 8x6 / 8x6" in r.output
    assert "Disparity range:  4 .. 36" in r.output


def test_stash_workflow_on_simulated_camera(runner, session, tmp_path):
    sim = tmp_path / "camera"
    other = write_session(tmp_path / "other", width=4, height=4, meta=dict(META, image_size=[4, 4]))

    r = runner.invoke(main, ["stash", "--sim", str(sim), "list"])
    assert r.exit_code == 0, r.output
    assert "No calibration data stored on camera." in r.output

    r = runner.invoke(main, ["stash", "--sim", str(sim), "upload", "--slot", "1", str(session)])
    assert r.exit_code == 0, r.output
    r = runner.invoke(main, ["stash", "--sim", str(sim), "upload", "--slot", "2", str(other)])
    assert r.exit_code == 0, r.output
    assert parse_index((sim / "UserFile1").read_bytes()).occupied() == [1, 2]

    r = runner.invoke(main, ["stash", "--sim", str(sim), "list"])
    assert r.exit_code == 0, r.output
    assert "Slot 0: (empty)" in r.output
    assert "Slot 1: 8x6" in r.output
    assert "Slot 2: 4x4" in r.output

    r = runner.invoke(main, ["check", "--sim", str(sim), "--slot", "2"])
    assert r.exit_code == 0, r.output
    assert "PASS: remap 4x4 / 4x4" in r.output

    out = tmp_path / "dl"
    r = runner.invoke(main, ["stash", "--sim", str(sim), "download", "--slot", "1", "-o", str(out)])
    assert r.exit_code == 0, r.output
    assert (out / "calib_result" / "remap_left.bin").read_bytes() == \
        (session / "calib_result" / "remap_left.bin").read_bytes()

    r = runner.invoke(main, ["stash", "--sim", str(sim), "delete", "--slot", "1"])
    assert r.exit_code == 0, r.output
    assert parse_index((sim / "UserFile1").read_bytes()).occupied() == [2]

    r = runner.invoke(main, ["stash", "--sim", str(sim), "download", "--slot", "1", "-o", str(out)])
    assert r.exit_code == 1
    assert "FATAL:" in r.output

    r = runner.invoke(main, ["stash", "--sim", str(sim), "purge"])
    assert r.exit_code == 0, r.output
    assert not (sim / "UserFile1").exists()


def test_config_selects_file_and_slot(runner, session, tmp_path):
    cfg = tmp_path / "agcal.yaml"
    cfg.write_text("file_selector: UserFile2\ndefault_slot: 2\nprogress: false\n")
    sim = tmp_path / "camera"

    r = runner.invoke(main, ["--config", str(cfg), "stash", "--sim", str(sim), "upload", str(session)])
    assert r.exit_code == 0, r.output
    assert parse_index((sim / "UserFile2").read_bytes()).occupied() == [2]


def test_slot_option_is_range_checked(runner, tmp_path):
    r = runner.invoke(main, ["stash", "--sim", str(tmp_path), "delete", "--slot", "3"])
    assert r.exit_code == 2


def test_stash_without_camera_is_fatal(runner):
    r = runner.invoke(main, ["stash", "list"])
    assert r.exit_code == 1
    assert "FATAL:" in r.output
