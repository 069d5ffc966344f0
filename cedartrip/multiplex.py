"""Multichannel WAV multiplexer.

Streams every exported clip into one interleaved 24-bit file covering
[range_start, range_end), block by block. Clips land on the output
channels their track was allocated; overlapping clips on a track are
summed, not overwritten.
"""

import math
import os
from contextlib import ExitStack
from dataclasses import dataclass, field

import numpy as np
from pydub.exceptions import CouldntDecodeError

from .config import block_size
from .errors import ExportError
from .wavfile import pack_24bit, quantize_24bit, wav_header


@dataclass
class _Entry:
    record: object
    accessor: object
    first_out_ch: int
    read_cols: list = field(default_factory=list)  # 0-based source columns
    logged_first_block: bool = False


def _open_entries(host, records, allocation, stack):
    entries = []
    for r in records:
        try:
            accessor = stack.enter_context(
                host.open_accessor(r.source, r.start_offset, r.playrate)
            )
        except (OSError, ValueError, CouldntDecodeError) as e:
            raise ExportError(f"Cannot open audio source for track {r.track_idx}: {e}") from e
        read_cols = [c - 1 for c in r.src_read_channels]
        if read_cols and max(read_cols) >= accessor.channels:
            raise ExportError(
                f"Source {os.path.basename(r.source)} has {accessor.channels} channel(s), "
                f"channel mode {r.chanmode} needs channel {max(read_cols) + 1}."
            )
        entries.append(_Entry(r, accessor, allocation[r.track_guid], read_cols))
    return entries


def _mix_block(buf, entries, block_start, sample_rate):
    """Accumulate every overlapping clip into buf (frames, channels)."""
    n = buf.shape[0]
    block_end = block_start + n / sample_rate
    times = None

    for e in entries:
        r = e.record
        item_start, item_end = r.position, r.position + r.length
        if block_start >= item_end or block_end <= item_start:
            continue
        if times is None:
            times = block_start + np.arange(n) / sample_rate
        inside = np.nonzero((times >= item_start) & (times < item_end))[0]
        if inside.size == 0:
            continue
        lo, hi = int(inside[0]), int(inside[-1]) + 1

        read_start = (times[lo] - item_start) * (r.playrate or 1.0)
        got, raw = e.accessor.read(read_start, hi - lo)

        if not e.logged_first_block:
            e.logged_first_block = True
            peak = float(np.max(np.abs(raw))) if raw.size else 0.0
            print(
                f"  [CEDAR]   ch={e.first_out_ch} got={got} read_start={read_start:.4f} "
                f"peak={peak:.6f} n_src={e.accessor.channels}"
            )
            if got == 0:
                raise ExportError(
                    f"Reading returned 0 samples for output channel {e.first_out_ch}. "
                    "Source may not be loaded."
                )

        if r.is_downmix:
            buf[lo:hi, e.first_out_ch] += raw[:, e.read_cols].mean(axis=1)
        else:
            for k, col in enumerate(e.read_cols):
                buf[lo:hi, e.first_out_ch + k] += raw[:, col]


def export_multichannel_wav(
    host, records, allocation, sample_rate, range_start, range_end, wav_path, block=None
):
    """Write the exchange file. Returns the number of frames written.

    Every accessor is released and the partial file removed if anything
    fails.
    """
    block = block or block_size()
    num_channels = allocation.total
    total_frames = math.ceil((range_end - range_start) * sample_rate)

    try:
        f = open(wav_path, "wb")
    except OSError as e:
        raise ExportError(f"Cannot create WAV file: {wav_path} ({e.strerror})") from e

    try:
        with f, ExitStack() as stack:
            f.write(wav_header(num_channels, sample_rate, total_frames))
            entries = _open_entries(host, records, allocation, stack)

            written = 0
            while written < total_frames:
                n = min(block, total_frames - written)
                block_start = range_start + written / sample_rate
                buf = np.zeros((n, num_channels), dtype=np.float64)
                _mix_block(buf, entries, block_start, sample_rate)
                f.write(pack_24bit(quantize_24bit(buf)))
                written += n
    except BaseException:
        if os.path.exists(wav_path):
            os.remove(wav_path)
        raise

    return total_frames
