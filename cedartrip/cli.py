"""
CLI entry point: cedartrip send | return | extract | info | check

Works against a JSON project document (--project) or, without one, the
running editor through its OSC bridge.
"""

import math
import os

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel

from . import chanmode, config
from .errors import RoundtripError

load_dotenv()


def _open_host(project):
    if project:
        from .memhost import MemoryHost

        return MemoryHost.load(project)
    from .osc import OSCHost

    hostname, port, client_port = config.osc_address()
    return OSCHost(hostname=hostname, port=port, client_port=client_port)


def _close_host(host, project):
    if project:
        host.save(project)
    elif hasattr(host, "close"):
        host.close()


def _default_sidecar(host):
    path = os.path.join(config.output_dir(host.project_dir()), config.SIDECAR_NAME)
    return path if os.path.exists(path) else None


def _panel(lines, title, style="green"):
    Console().print(Panel("\n".join(lines), title=title, border_style=style))


@click.group()
@click.pass_context
def cli(ctx):
    """cedartrip — round-trip multitrack audio through CEDAR Retouch."""
    from .store import EnvelopeStore

    ctx.obj = EnvelopeStore()


@cli.command()
@click.option("--project", type=click.Path(exists=True, dir_okay=False), default=None,
              help="JSON project document (default: the running editor via OSC).")
@click.option("--output-dir", default=None, help="Where to write the exchange WAV.")
@click.option("--block-size", type=int, default=None, help="Frames per export block.")
@click.pass_obj
def send(store, project, output_dir, block_size):
    """Export the selected items to one multichannel WAV."""
    from .send import send_to_tool

    host = _open_host(project)
    try:
        result = send_to_tool(host, store, output_dir=output_dir, block=block_size)
    except RoundtripError as e:
        raise click.ClickException(str(e)) from e
    finally:
        _close_host(host, project)

    env = result.envelope
    lines = [
        f"WAV:      {result.wav_path}",
        f"Metadata: {result.sidecar}",
        f"Channels: {env.num_channels} @ {env.sample_rate} Hz",
        f"Range:    {env.range_start:.3f}s - {env.range_end:.3f}s ({result.duration:.1f}s)",
        f"Items:    {len(env.items)}",
    ]
    if env.is_partial:
        lines.append(f"Replace:  {env.time_sel_start:.3f}s - {env.time_sel_end:.3f}s only")
    _panel(lines, "sent to CEDAR Retouch")


@cli.command(name="return")
@click.option("--project", type=click.Path(exists=True, dir_okay=False), default=None,
              help="JSON project document (default: the running editor via OSC).")
@click.option("--metadata", type=click.Path(exists=True, dir_okay=False), default=None,
              help="Sidecar metadata JSON (default: the one beside the last export).")
@click.option("--forget", is_flag=True, help="Discard the stored metadata afterwards.")
@click.pass_obj
def return_(store, project, metadata, forget):
    """Replace the original items with CEDAR Retouch's processed audio."""
    from .receive import return_from_tool

    host = _open_host(project)
    try:
        sidecar = metadata or _default_sidecar(host)
        result = return_from_tool(host, store, sidecar=sidecar, forget=forget)
    except RoundtripError as e:
        raise click.ClickException(str(e)) from e
    finally:
        _close_host(host, project)

    _panel(
        [f"Cleared:  {result.deleted} item(s)", f"Created:  {result.created} item(s)"],
        "returned from CEDAR Retouch",
    )


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--output", "-o", default=None, help="Output path (default: <file>_processed.wav).")
def extract(file, output):
    """Pull the most recent audio out of a multi-RIFF CEDAR file."""
    from .riff import extract_last_container, walk_containers

    try:
        containers = walk_containers(file)
        out = extract_last_container(file, output)
    except RoundtripError as e:
        raise click.ClickException(str(e)) from e
    for i, c in enumerate(containers, start=1):
        mark = "  <- latest" if c.terminal else ""
        print(f"  RIFF {i}: offset={c.offset} size={c.size}{mark}")
    if out is None:
        print("  Single container, nothing to extract (file is already clean).")
    else:
        print(f"  Extracted -> {out}")


def _db(gain):
    if gain <= 0:
        return -math.inf
    return 20 * math.log10(gain)


@cli.command()
@click.option("--project", type=click.Path(exists=True, dir_okay=False), default=None,
              help="JSON project document (default: the running editor via OSC).")
def info(project):
    """Show gain, channel mode and name of the selected items."""
    host = _open_host(project)
    try:
        clips = host.selected_clips()
        track_idx = {t.guid: t.index for t in host.tracks()}
    finally:
        if not project and hasattr(host, "close"):
            host.close()

    if not clips:
        print("[DEBUG] No items selected.")
        return
    for i, c in enumerate(clips, start=1):
        take = c.take
        take_vol = take.volume if take else 0.0
        print(
            f"[DEBUG] Item {i} (track {track_idx.get(c.track_guid, 0)}): "
            f"D_VOL={c.volume:.6f} ({_db(c.volume):.2f} dB)  "
            f"take D_VOL={take_vol:.6f} ({_db(take_vol):.2f} dB)  "
            f"chanmode={chanmode.describe(take.chanmode) if take else '-'}  "
            f"name={take.name if take else ''}"
        )


@cli.command()
def check():
    """Verify the editor's OSC bridge answers."""
    from .osc import OSCHost

    hostname, port, client_port = config.osc_address()
    print(f"Checking OSC bridge at {hostname}:{port}...")
    host = OSCHost(hostname=hostname, port=port, client_port=client_port)
    try:
        version = host.check()
        tracks = host.tracks()
    except TimeoutError as e:
        raise click.ClickException(f"{e}\nIs the editor running with the cedartrip bridge?")
    finally:
        host.close()
    print("\n  Connected!")
    print(f"  Bridge:  {version[0] if version else '?'}")
    print(f"  Tracks:  {len(tracks)}")
    for t in tracks:
        print(f"    [{t.index}] {t.name}")


if __name__ == "__main__":
    cli()
