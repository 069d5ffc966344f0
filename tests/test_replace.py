"""Tests for region replacement on an in-memory project.

Two tracks: A carries a stereo item exported to channels 1-2, B a mono
item on channel 3. The exchange file itself is never read here.
"""

import pytest

from cedartrip.envelope import ExchangeEnvelope, ItemRecord
from cedartrip.errors import EnvelopeError, ResolutionError
from cedartrip.replace import (
    affected_tracks,
    clear_region,
    plan_replacement,
    replace_items,
)
from helpers import add_audio_clip, host_with_tracks

WAV = "/exchange/cedar_roundtrip_1.wav"


def _item(track, item, first_out_ch, channels, position, length, **kwargs):
    return ItemRecord(
        track_guid=track,
        item_guid=item,
        track_idx=kwargs.pop("track_idx", 1),
        first_out_ch=first_out_ch,
        playback_channels=channels,
        chanmode=0,
        position=position,
        length=length,
        **kwargs,
    )


@pytest.fixture
def project():
    host, (a, b) = host_with_tracks("A", "B")
    a_item = add_audio_clip(host, a, "/src/a.wav", 12.0, 6.0, name="vox", start_offset=1.0)
    b_item = add_audio_clip(host, b, "/src/b.wav", 10.0, 10.0, volume=0.5)
    host.calls.clear()
    return host, a, b, a_item, b_item


def _envelope(a, b, a_item, b_item, time_sel=None, **overrides):
    items = [
        _item(a.guid, a_item.guid, 0, 2, 12.0, 6.0, take_name="vox", item_vol=1.0, take_vol=0.8),
        _item(b.guid, b_item.guid, 2, 1, 10.0, 10.0, track_idx=2, item_vol=0.5),
    ]
    fields = dict(
        wav_path=WAV,
        sample_rate=48000,
        num_channels=3,
        range_start=10.0,
        range_end=20.0,
        items=items,
    )
    if time_sel:
        fields["time_sel_start"], fields["time_sel_end"] = time_sel
    fields.update(overrides)
    return ExchangeEnvelope(**fields)


def _layout(host, track):
    return [
        (c.position, c.length, c.take.chanmode, c.take.start_offset, c.take.source)
        for c in host.track_clips(track.guid)
    ]


# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------


def test_plan_full_mode(project):
    host, a, b, a_item, b_item = project
    ops = plan_replacement(host, _envelope(a, b, a_item, b_item), suffix="_x")
    assert [(op.position, op.length, op.start_offset) for op in ops] == [
        (12.0, 6.0, 2.0),
        (10.0, 10.0, 0.0),
    ]
    assert [op.chanmode for op in ops] == [67, 5]
    assert [op.name for op in ops] == ["vox_x", "CEDAR_x"]
    assert ops[0].take_vol == 0.8
    assert ops[1].item_vol == 0.5
    assert ops[1].take_vol == 1.0
    assert host.calls == []


def test_plan_partial_mode_clamps(project):
    host, a, b, a_item, b_item = project
    env = _envelope(a, b, a_item, b_item, time_sel=(14.0, 16.0))
    ops = plan_replacement(host, env, suffix="")
    assert [(op.position, op.length, op.start_offset) for op in ops] == [
        (14.0, 2.0, 4.0),
        (14.0, 2.0, 4.0),
    ]


def test_plan_partial_skips_items_outside_selection(project):
    host, a, b, a_item, b_item = project
    env = _envelope(a, b, a_item, b_item, time_sel=(10.0, 11.0))
    ops = plan_replacement(host, env, suffix="")
    assert [op.track_guid for op in ops] == [b.guid]


def test_missing_tracks_reported_together(project):
    host, a, b, a_item, b_item = project
    env = _envelope(a, b, a_item, b_item)
    env.items[0].track_guid = "{GONE-1}"
    env.items[1].track_guid = "{GONE-2}"
    with pytest.raises(ResolutionError) as exc:
        replace_items(host, env, WAV)
    assert len(exc.value.missing) == 2
    assert "was track #2" in exc.value.missing[1]
    assert host.calls == []


def test_missing_item_is_only_logged(project, capsys):
    host, a, b, a_item, b_item = project
    host.delete_clip(a_item.guid)
    ops = plan_replacement(host, _envelope(a, b, a_item, b_item), suffix="")
    assert len(ops) == 2
    assert "already replaced?" in capsys.readouterr().out


def test_unwritable_layout_rejected_before_mutation(project):
    host, a, b, a_item, b_item = project
    env = _envelope(a, b, a_item, b_item, num_channels=6)
    env.items[1].playback_channels = 4
    with pytest.raises(EnvelopeError, match="must start at channel 0"):
        replace_items(host, env, WAV)
    assert host.calls == []


def test_affected_tracks_in_channel_order(project):
    host, a, b, a_item, b_item = project
    env = _envelope(a, b, a_item, b_item)
    env.items.reverse()
    assert affected_tracks(env) == [a.guid, b.guid]


# ---------------------------------------------------------------------------
# Full mode
# ---------------------------------------------------------------------------


def test_full_mode_replaces_whole_range(project):
    host, a, b, a_item, b_item = project
    add_audio_clip(host, a, "/src/early.wav", 0.0, 5.0)
    add_audio_clip(host, a, "/src/late.wav", 19.0, 3.0)

    result = replace_items(host, _envelope(a, b, a_item, b_item), WAV, suffix="_x")

    assert result.deleted == 3
    assert result.created == 2
    assert _layout(host, a) == [
        (0.0, 5.0, 0, 0.0, "/src/early.wav"),
        (12.0, 6.0, 67, 2.0, WAV),
    ]
    assert _layout(host, b) == [(10.0, 10.0, 5, 0.0, WAV)]

    new_a = host.track_clips(a.guid)[1]
    assert new_a.take.name == "vox_x"
    assert new_a.take.volume == 0.8
    assert host.track_clips(b.guid)[0].volume == 0.5


def test_full_mode_is_idempotent(project):
    host, a, b, a_item, b_item = project
    env = _envelope(a, b, a_item, b_item)
    replace_items(host, env, WAV, suffix="")
    first = (_layout(host, a), _layout(host, b))
    replace_items(host, env, WAV, suffix="")
    assert (_layout(host, a), _layout(host, b)) == first


# ---------------------------------------------------------------------------
# Partial mode
# ---------------------------------------------------------------------------


def test_partial_mode_call_sequence(project):
    host, a, b, a_item, b_item = project
    env = _envelope(a, b, a_item, b_item, time_sel=(14.0, 16.0))
    replace_items(host, env, WAV, suffix="")

    kinds = [c[0] for c in host.calls]
    assert kinds == ["split", "split", "delete", "split", "split", "delete", "add", "add"]
    assert host.calls[0] == ("split", a_item.guid, 16.0)
    assert host.calls[1] == ("split", a_item.guid, 14.0)
    assert host.calls[6] == ("add", a.guid, 14.0, 2.0)


def test_partial_mode_keeps_prefix_and_suffix(project):
    host, a, b, a_item, b_item = project
    env = _envelope(a, b, a_item, b_item, time_sel=(14.0, 16.0))
    replace_items(host, env, WAV, suffix="")

    assert _layout(host, a) == [
        (12.0, 2.0, 0, 1.0, "/src/a.wav"),
        (14.0, 2.0, 67, 4.0, WAV),
        (16.0, 2.0, 0, 5.0, "/src/a.wav"),
    ]
    assert _layout(host, b) == [
        (10.0, 4.0, 0, 0.0, "/src/b.wav"),
        (14.0, 2.0, 5, 4.0, WAV),
        (16.0, 4.0, 0, 6.0, "/src/b.wav"),
    ]


def test_partial_mode_is_idempotent(project):
    host, a, b, a_item, b_item = project
    env = _envelope(a, b, a_item, b_item, time_sel=(14.0, 16.0))
    replace_items(host, env, WAV, suffix="")
    first = (_layout(host, a), _layout(host, b))
    replace_items(host, env, WAV, suffix="")
    assert (_layout(host, a), _layout(host, b)) == first


def test_clear_region_item_inside_selection_is_deleted_whole(project):
    host, a, _, a_item, _ = project
    assert clear_region(host, a.guid, 11.0, 19.0, partial=True) == 1
    assert host.calls == [("delete", a_item.guid)]


def test_clear_region_split_only_at_one_edge(project):
    host, a, _, a_item, _ = project
    clear_region(host, a.guid, 15.0, 25.0, partial=True)
    assert host.calls[0] == ("split", a_item.guid, 15.0)
    assert _layout(host, a) == [(12.0, 3.0, 0, 1.0, "/src/a.wav")]
