"""AGCAL - stereo calibration packing and on-camera stash tool."""
from __future__ import annotations

import functools
import sys
from contextlib import ExitStack
from pathlib import Path

import click

from agcal_archive.codec import extract_to_dir, format_listing, list_archive, pack_session
from agcal_archive.multislot import detect_container, extract_slot, format_index, parse_index
from agcal_core.config import StashConfig
from agcal_core.protocol import MAX_SLOTS
from agcal_device.sim import SimulatedCamera

from .loader import CalibSource, load_calibration
from .stash import stash_delete, stash_download, stash_list, stash_purge, stash_upload

SLOT = click.IntRange(0, MAX_SLOTS - 1)


class ProgressReporter:
    """``progress(verb, done, total)`` callback drawing a click progress bar on stderr."""

    def __init__(self) -> None:
        self._stack = ExitStack()
        self._bar = None
        self._verb = None
        self._done = 0

    def __call__(self, verb: str, done: int, total: int) -> None:
        if self._bar is None or verb != self._verb:
            self.close()
            self._bar = self._stack.enter_context(
                click.progressbar(length=total, label=f"  {verb}", file=sys.stderr)
            )
            self._verb = verb
            self._done = 0
        self._bar.update(done - self._done)
        self._done = done
        if done >= total:
            self.close()

    def close(self) -> None:
        self._stack.close()
        self._bar = None


def fail_closed(fn):
    """Turn any failure into a single ``FATAL:`` line and exit status 1."""

    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except Exception as e:
            # No stack traces: one line per failure for operators and scripts.
            print(f"FATAL: {e}")
            raise SystemExit(1)

    return wrapper


def _config(ctx: click.Context) -> StashConfig:
    return ctx.find_root().obj["config"]


def _device(sim: Path | None):
    if sim is None:
        raise RuntimeError("no camera connection layer configured; use --sim DIR")
    return SimulatedCamera(root=sim)


@click.group()
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="YAML settings file")
@click.pass_context
@fail_closed
def main(ctx: click.Context, config_path: Path | None) -> None:
    """Pack, inspect and stash stereo calibration bundles."""
    config = StashConfig.from_yaml(config_path) if config_path else StashConfig()
    ctx.obj = {"config": config}


# --- local files -------------------------------------------------------------

@main.command("pack")
@click.argument("session", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.argument("out", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--no-compress", is_flag=True, help="Store the archive uncompressed")
@click.option("--level", type=click.IntRange(0, 9), default=None, help="zlib level (default from config)")
@click.pass_context
@fail_closed
def pack_cmd(ctx: click.Context, session: Path, out: Path, no_compress: bool, level: int | None) -> None:
    """Pack SESSION/calib_result into an on-camera blob at OUT."""
    config = _config(ctx)
    print(f"Packing calibration session: {session}")
    blob = pack_session(
        session,
        compress=config.compress and not no_compress,
        level=config.compression_level if level is None else level,
        verbose=True,
    )
    out.write_bytes(blob)
    print(f"PASS: {len(blob)} bytes written to {out}")


@main.command("list")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@fail_closed
def list_cmd(path: Path) -> None:
    """List a packed blob, or every slot of a multi-slot container."""
    data = path.read_bytes()
    if detect_container(data) == "multislot":
        index = parse_index(data)
        for line in format_index(index):
            click.echo(line)
        for i in index.occupied():
            click.echo("")
            click.echo(f"Slot {i}:")
            for line in format_listing(list_archive(extract_slot(data, i))):
                click.echo(line)
        return
    for line in format_listing(list_archive(data)):
        click.echo(line)


@main.command("extract")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("out_dir", type=click.Path(file_okay=False, path_type=Path))
@click.option("--slot", type=SLOT, default=None, help="Slot to extract from a container")
@click.pass_context
@fail_closed
def extract_cmd(ctx: click.Context, path: Path, out_dir: Path, slot: int | None) -> None:
    """Extract a packed blob (or one container slot) to OUT_DIR/calib_result/."""
    data = path.read_bytes()
    if slot is not None or detect_container(data) == "multislot":
        slot = _config(ctx).default_slot if slot is None else slot
        data = extract_slot(data, slot)
    for p in extract_to_dir(data, out_dir):
        click.echo(f"  {p}")
    print(f"PASS: extracted to {out_dir / 'calib_result'}")


@main.command("check")
@click.argument("session", required=False, type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--slot", type=SLOT, default=None, help="Load from this camera slot instead of a session")
@click.option("--sim", type=click.Path(file_okay=False, path_type=Path), default=None,
              help="Simulated camera storage directory")
@click.pass_context
@fail_closed
def check_cmd(ctx: click.Context, session: Path | None, slot: int | None, sim: Path | None) -> None:
    """Load a calibration through the unified loader and report it."""
    config = _config(ctx)
    if session is not None:
        source = CalibSource.local(session)
        device = None
    else:
        source = CalibSource.camera(config.default_slot if slot is None else slot)
        device = _device(sim)
        print(f"Reading calibration from camera (slot {source.slot})...")

    reporter = ProgressReporter() if config.progress else None
    try:
        calib = load_calibration(source, device, config.file_selector, reporter)
    finally:
        if reporter is not None:
            reporter.close()

    m = calib.meta
    print(f"PASS: remap {calib.left.width}x{calib.left.height} / {calib.right.width}x{calib.right.height}")
    print(f"  Focal length:     {m.focal_length_px:.2f} px")
    print(f"  Baseline:         {m.baseline_cm:.2f} cm")
    print(f"  Disparity range:  {m.min_disparity} .. {m.min_disparity + m.num_disparities}")


# --- on-camera stash ---------------------------------------------------------

@main.group("stash")
@click.option("--sim", type=click.Path(file_okay=False, path_type=Path), default=None,
              help="Simulated camera storage directory")
@click.option("--selector", default=None, help="Device file selector (default from config)")
@click.pass_context
@fail_closed
def stash_group(ctx: click.Context, sim: Path | None, selector: str | None) -> None:
    """Calibration slots stored on the camera."""
    config = _config(ctx)
    ctx.obj = {
        "sim": sim,
        "selector": selector or config.file_selector,
        "progress": ProgressReporter() if config.progress else None,
    }
    if ctx.obj["progress"] is not None:
        ctx.call_on_close(ctx.obj["progress"].close)


@stash_group.command("list")
@click.pass_context
@fail_closed
def stash_list_cmd(ctx: click.Context) -> None:
    """Show storage info and slot contents."""
    o = ctx.obj
    stash_list(_device(o["sim"]), o["selector"], click.echo, o["progress"])


@stash_group.command("upload")
@click.argument("session", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--slot", type=SLOT, default=None, help="Calibration slot")
@click.pass_context
@fail_closed
def stash_upload_cmd(ctx: click.Context, session: Path, slot: int | None) -> None:
    """Pack SESSION and write it to a slot."""
    o, config = ctx.obj, _config(ctx)
    stash_upload(
        _device(o["sim"]),
        session,
        slot=config.default_slot if slot is None else slot,
        selector=o["selector"],
        compress=config.compress,
        level=config.compression_level,
        echo=click.echo,
        progress=o["progress"],
    )


@stash_group.command("download")
@click.option("-o", "--output", "output", required=True, type=click.Path(file_okay=False, path_type=Path),
              help="Output directory")
@click.option("--slot", type=SLOT, default=None, help="Calibration slot")
@click.pass_context
@fail_closed
def stash_download_cmd(ctx: click.Context, output: Path, slot: int | None) -> None:
    """Download a slot to OUTPUT/calib_result/."""
    o, config = ctx.obj, _config(ctx)
    stash_download(
        _device(o["sim"]),
        output,
        slot=config.default_slot if slot is None else slot,
        selector=o["selector"],
        echo=click.echo,
        progress=o["progress"],
    )


@stash_group.command("delete")
@click.option("--slot", type=SLOT, required=True, help="Calibration slot")
@click.pass_context
@fail_closed
def stash_delete_cmd(ctx: click.Context, slot: int) -> None:
    """Remove one slot from the camera."""
    o = ctx.obj
    stash_delete(_device(o["sim"]), slot, o["selector"], click.echo, o["progress"])


@stash_group.command("purge")
@click.pass_context
@fail_closed
def stash_purge_cmd(ctx: click.Context) -> None:
    """Delete the entire calibration file from the camera."""
    o = ctx.obj
    stash_purge(_device(o["sim"]), o["selector"], click.echo)


if __name__ == "__main__":
    main()
