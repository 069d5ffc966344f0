"""Selection gathering and validation for the export path.

collect_selection() turns the host's selected clips into immutable
ClipExportRecords, rejecting anything the exchange file cannot carry.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from . import chanmode
from .accessor import probe_source
from .errors import SelectionError


@dataclass(frozen=True)
class ClipExportRecord:
    """One exported clip. Identity is by GUID only; never holds host objects."""

    track_guid: str
    item_guid: str
    track_idx: int
    position: float
    length: float
    start_offset: float
    playrate: float
    chanmode: int
    num_src_channels: int
    playback_channels: int
    src_read_channels: tuple
    is_downmix: bool
    source: str
    take_name: str = ""
    item_vol: float = 1.0
    take_vol: float = 1.0

    @property
    def end(self):
        return self.position + self.length


@dataclass(frozen=True)
class Selection:
    records: tuple
    sample_rate: int


def select_in_time_selection(host):
    """Select every clip overlapping the time selection. Returns how many."""
    ts = host.time_selection()
    if ts is None:
        raise SelectionError("No items selected and no time selection.")
    ts_start, ts_end = ts
    count = 0
    for track in host.tracks():
        for clip in host.clips_overlapping(track.guid, ts_start, ts_end):
            host.select_clip(clip.guid)
            count += 1
    if count == 0:
        raise SelectionError("No items overlap the time selection.")
    return count


def _source_format(take):
    """(sample_rate, channels), falling back to the source file's header."""
    sr, channels = take.sample_rate, take.channels
    if sr and channels:
        return sr, channels
    probed_sr, probed_ch = probe_source(take.source)
    return sr or probed_sr, channels or probed_ch


def collect_selection(host) -> Selection:
    clips = host.selected_clips()
    if not clips:
        select_in_time_selection(host)
        clips = host.selected_clips()

    track_idx = {t.guid: t.index for t in host.tracks()}
    sample_rate = None
    records = []

    for i, clip in enumerate(clips, start=1):
        take = clip.take
        if take is None:
            raise SelectionError(f"Item {i} has no active take.")
        if take.midi:
            raise SelectionError(f"Item {i} is MIDI. Only audio items are supported.")

        sr, num_src_channels = _source_format(take)
        if not sr:
            raise SelectionError(f"Item {i} has unknown sample rate.")
        if not num_src_channels:
            raise SelectionError(f"Item {i} has unknown channel count.")
        if sample_rate is None:
            sample_rate = sr
        elif sr != sample_rate:
            raise SelectionError(
                f"Mixed sample rates detected ({sample_rate} vs {sr}). "
                "All items must share the same sample rate."
            )

        if not chanmode.is_supported(take.chanmode):
            raise SelectionError(f"Item {i} has unsupported channel mode {take.chanmode}.")
        mode = chanmode.resolve(take.chanmode, num_src_channels)

        records.append(
            ClipExportRecord(
                track_guid=clip.track_guid,
                item_guid=clip.guid,
                track_idx=track_idx.get(clip.track_guid, 0),
                position=clip.position,
                length=clip.length,
                start_offset=take.start_offset,
                playrate=take.playrate,
                chanmode=int(take.chanmode),
                num_src_channels=num_src_channels,
                playback_channels=mode.playback_channels,
                src_read_channels=mode.read,
                is_downmix=mode.downmix,
                source=take.source,
                take_name=take.name,
                item_vol=clip.volume,
                take_vol=take.volume,
            )
        )

    return Selection(records=tuple(records), sample_rate=sample_rate)


def log_records(records, allocation):
    """Per-item diagnostics, one line each."""
    for idx, r in enumerate(records, start=1):
        read = ",".join(str(c) for c in r.src_read_channels)
        print(
            f"  [CEDAR] Item {idx}: track={r.track_idx} chanmode={r.chanmode} "
            f"({chanmode.describe(r.chanmode)}) src_ch={r.num_src_channels} "
            f"play_ch={r.playback_channels} read={{{read}}} "
            f"out_ch={allocation[r.track_guid]} src={os.path.basename(r.source)}"
        )
