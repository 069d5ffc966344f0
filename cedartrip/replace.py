"""Region replacement — put processed audio back where it came from.

Full mode clears every clip overlapping the exported range on each
affected track and recreates one clip per exported item. Partial mode
(time selection recorded at export) only touches the selection: clips
straddling its edges are split and just the inner fragment is removed,
then items are recreated clamped to the selection.

Clearing is not limited to the clips that were exported. Anything in the
region goes, including clips left by an earlier return, so running return
twice gives the same result as running it once.
"""

from dataclasses import dataclass

from . import chanmode
from .config import DEFAULT_TAKE_NAME, name_suffix
from .errors import EnvelopeError, ResolutionError
from .host import Take


@dataclass(frozen=True)
class ReplacementOperation:
    track_guid: str
    track_idx: int
    item_guid: str
    first_out_ch: int
    playback_channels: int
    chanmode: int
    position: float
    length: float
    start_offset: float  # into the exchange file
    name: str
    item_vol: float
    take_vol: float


@dataclass
class ReplaceResult:
    operations: list
    deleted: int = 0
    created: int = 0


def resolve_tracks(host, envelope):
    """GUID -> Track for every track the envelope names; all misses reported at once."""
    tracks = {}
    errors = []
    for item in envelope.items:
        if item.track_guid in tracks:
            continue
        track = host.find_track(item.track_guid)
        if track is None:
            msg = (
                f"Track not found (GUID: {item.track_guid}, was track #{item.track_idx}). "
                "Was it deleted?"
            )
            if msg not in errors:
                errors.append(msg)
            continue
        tracks[item.track_guid] = track
    if errors:
        raise ResolutionError(errors)
    return tracks


def plan_replacement(host, envelope, suffix=None):
    """Work out every clip to create, without touching the project."""
    tracks = resolve_tracks(host, envelope)
    suffix = suffix if suffix is not None else name_suffix()
    sel_start, sel_end = envelope.replace_region

    ops = []
    bad_modes = []
    for i, item in enumerate(envelope.items):
        if envelope.is_partial:
            position = max(item.position, sel_start)
            length = min(item.end, sel_end) - position
            if length <= 0:
                continue
        else:
            position, length = item.position, item.length

        try:
            mode = chanmode.write_mode(item.playback_channels, item.first_out_ch)
        except ValueError as e:
            bad_modes.append(f"items[{i}]: {e}")
            continue

        if host.find_clip(item.item_guid) is None:
            print(f"  [CEDAR] Item {item.item_guid} no longer exists (already replaced?)")

        ops.append(
            ReplacementOperation(
                track_guid=item.track_guid,
                track_idx=tracks[item.track_guid].index,
                item_guid=item.item_guid,
                first_out_ch=item.first_out_ch,
                playback_channels=item.playback_channels,
                chanmode=mode,
                position=position,
                length=length,
                start_offset=position - envelope.range_start,
                name=(item.take_name or DEFAULT_TAKE_NAME) + suffix,
                item_vol=1.0 if item.item_vol is None else item.item_vol,
                take_vol=1.0 if item.take_vol is None else item.take_vol,
            )
        )

    if bad_modes:
        raise EnvelopeError(bad_modes)
    return ops


def affected_tracks(envelope):
    """Track GUIDs in output channel order, each once."""
    order = []
    for item in sorted(envelope.items, key=lambda it: it.first_out_ch):
        if item.track_guid not in order:
            order.append(item.track_guid)
    return order


def clear_region(host, track_guid, start, end, partial):
    """Remove material in [start, end) from one track. Returns clips deleted."""
    overlapping = host.clips_overlapping(track_guid, start, end)
    if not partial:
        for clip in overlapping:
            host.delete_clip(clip.guid)
        return len(overlapping)

    # Right to left, so splitting never moves a clip we have yet to visit
    deleted = 0
    for clip in sorted(overlapping, key=lambda c: c.position, reverse=True):
        replace_start = max(clip.position, start)
        replace_end = min(clip.end, end)
        if replace_start >= replace_end:
            continue
        if replace_end < clip.end:
            host.split_clip(clip.guid, replace_end)
        middle = clip.guid
        if replace_start > clip.position:
            middle = host.split_clip(clip.guid, replace_start).guid
        host.delete_clip(middle)
        deleted += 1
    return deleted


def create_replacement(host, op, wav_path, sample_rate=0, num_channels=0):
    take = Take(
        source=wav_path,
        name=op.name,
        chanmode=op.chanmode,
        start_offset=op.start_offset,
        volume=op.take_vol,
        sample_rate=sample_rate,
        channels=num_channels,
    )
    return host.add_clip(op.track_guid, op.position, op.length, take, volume=op.item_vol)


def replace_items(host, envelope, wav_path, suffix=None) -> ReplaceResult:
    """Plan, clear, then create. Raises before mutating if planning fails."""
    ops = plan_replacement(host, envelope, suffix)
    return apply_replacement(host, envelope, ops, wav_path)


def apply_replacement(host, envelope, ops, wav_path) -> ReplaceResult:
    result = ReplaceResult(operations=ops)
    start, end = envelope.replace_region

    for guid in affected_tracks(envelope):
        track = host.find_track(guid)
        n = clear_region(host, guid, start, end, envelope.is_partial)
        print(f"  [CEDAR] Track {track.index}: cleared {n} overlapping item(s)")
        result.deleted += n

    for op in ops:
        create_replacement(host, op, wav_path, envelope.sample_rate, envelope.num_channels)
        result.created += 1

    return result
