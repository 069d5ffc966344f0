"""Send path — export the selection to one multichannel WAV for CEDAR Retouch.

selection -> channel allocation -> multiplexed WAV -> envelope (slot + sidecar)
"""

import os
from dataclasses import dataclass

from . import config
from .allocation import build_allocation, compute_time_range
from .envelope import build_envelope
from .errors import ExportError, SelectionError
from .multiplex import export_multichannel_wav
from .selection import collect_selection, log_records


@dataclass
class SendResult:
    wav_path: str
    sidecar: str
    envelope: object
    frames: int

    @property
    def duration(self):
        return self.envelope.range_end - self.envelope.range_start


def export_range(records, time_selection):
    """Span of the records, narrowed to the time selection when there is one.

    Returns (range_start, range_end, time_sel) where time_sel is the
    narrowed span (the sub-range return will replace) or None.
    """
    range_start, range_end = compute_time_range(records)
    if time_selection is None:
        return range_start, range_end, None
    ts_start, ts_end = time_selection
    range_start = max(range_start, ts_start)
    range_end = min(range_end, ts_end)
    if range_start >= range_end:
        raise SelectionError("Time selection does not overlap any selected items.")
    return range_start, range_end, (range_start, range_end)


def send_to_tool(host, store, output_dir=None, now=None, block=None) -> SendResult:
    selection = collect_selection(host)
    records = selection.records
    allocation = build_allocation(records)
    log_records(records, allocation)

    range_start, range_end, time_sel = export_range(records, host.time_selection())

    out_dir = output_dir or config.output_dir(host.project_dir())
    try:
        os.makedirs(out_dir, exist_ok=True)
    except OSError as e:
        raise ExportError(f"Cannot create output directory: {out_dir} ({e.strerror})") from e
    wav_path = os.path.join(out_dir, config.export_filename(now))

    frames = export_multichannel_wav(
        host,
        records,
        allocation,
        selection.sample_rate,
        range_start,
        range_end,
        wav_path,
        block=block,
    )

    envelope = build_envelope(
        records,
        allocation,
        selection.sample_rate,
        range_start,
        range_end,
        wav_path,
        time_sel=time_sel,
    )
    sidecar = store.save(host, envelope, out_dir)

    print(f"  [CEDAR] Exported {allocation.total} ch, {range_end - range_start:.1f}s -> {wav_path}")
    print("  [CEDAR] When done, save (overwrite) and run 'Return from CEDAR Retouch'.")
    return SendResult(wav_path=wav_path, sidecar=sidecar, envelope=envelope, frames=frames)
