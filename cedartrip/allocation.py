"""Output channel allocation — which exchange-file channels each track owns.

Tracks get contiguous channel blocks in display order, so the same
selection always produces the same layout on export and on return.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field

from .errors import SelectionError


@dataclass
class ChannelAllocation:
    first_channel: dict = field(default_factory=dict)  # track guid -> 0-based channel
    widths: dict = field(default_factory=dict)  # track guid -> channels owned
    order: list = field(default_factory=list)  # track guids, ascending display index
    total: int = 0

    def __getitem__(self, track_guid):
        return self.first_channel[track_guid]

    def __contains__(self, track_guid):
        return track_guid in self.first_channel

    def ranges(self):
        """[(track_guid, start, stop), ...] in channel order."""
        return [
            (g, self.first_channel[g], self.first_channel[g] + self.widths[g])
            for g in self.order
        ]


def build_allocation(records) -> ChannelAllocation:
    """Assign each track a block of output channels.

    A track's width is the widest playback channel count among its clips.
    Tracks wider than a stereo pair can only be read back when they sit at
    channel 0, so anything else is rejected here rather than exported
    with channels the return path would drop.
    """
    tracks = {}
    for r in records:
        entry = tracks.get(r.track_guid)
        if entry is None:
            tracks[r.track_guid] = [r.track_idx, r.playback_channels]
        else:
            entry[1] = max(entry[1], r.playback_channels)

    alloc = ChannelAllocation()
    for guid, (track_idx, width) in sorted(tracks.items(), key=lambda kv: kv[1][0]):
        if width > 2 and alloc.total != 0:
            raise SelectionError(
                f"Track {track_idx} plays {width} channels but would start at "
                f"output channel {alloc.total + 1}. Tracks with more than 2 channels "
                "must be the first (topmost) track in the export."
            )
        alloc.first_channel[guid] = alloc.total
        alloc.widths[guid] = width
        alloc.order.append(guid)
        alloc.total += width

    return alloc


def compute_time_range(records):
    """(start, end) spanning every record."""
    range_start = math.inf
    range_end = -math.inf
    for r in records:
        range_start = min(range_start, r.position)
        range_end = max(range_end, r.position + r.length)
    return range_start, range_end
