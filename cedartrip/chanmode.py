"""Take channel modes — which source channels a clip plays, and the inverse.

Codes follow the host's per-take channel-mode setting:

    0          normal (all source channels)
    1          reversed stereo (R/L)
    2          mono downmix (sum of all source channels)
    3 .. 66    mono extraction of source channel code-2 (1-based)
    67 .. 129  stereo pair starting at 0-based source channel code-67

resolve() maps a code to the channels to read; write_mode() goes the other
way for clips created on return, pointing them at their slice of the
multichannel exchange file.
"""

from dataclasses import dataclass

from .errors import SelectionError

NORMAL = 0
REVERSE_STEREO = 1
DOWNMIX = 2
MONO_BASE = 3
STEREO_BASE = 67
MAX_CHANNELS = 64

MONO_LAST = MONO_BASE + MAX_CHANNELS - 1  # 66
STEREO_LAST = STEREO_BASE + MAX_CHANNELS - 2  # 129


@dataclass(frozen=True)
class ChannelRead:
    """Result of resolving a channel mode against a source.

    read: 1-based source channels, in output order.
    """

    playback_channels: int
    read: tuple
    downmix: bool = False


def is_supported(code):
    return NORMAL <= code <= STEREO_LAST


def resolve(code, num_src_channels):
    """Resolve a channel-mode code for a source with num_src_channels channels."""
    code = int(code)
    n = int(num_src_channels)
    if n < 1:
        raise SelectionError(f"Source has no channels (channel mode {code})")
    if not is_supported(code):
        raise SelectionError(f"Unsupported channel mode {code}")

    if code == NORMAL:
        return ChannelRead(n, tuple(range(1, n + 1)))
    if code == REVERSE_STEREO:
        if n >= 2:
            return ChannelRead(2, (2, 1))
        return ChannelRead(1, (1,))
    if code == DOWNMIX:
        return ChannelRead(1, tuple(range(1, n + 1)), downmix=True)
    if code >= STEREO_BASE:
        offset = code - STEREO_BASE
        ch1 = min(offset + 1, n)
        ch2 = min(offset + 2, n)
        return ChannelRead(2, (ch1, ch2))

    src_ch = code - MONO_BASE + 1
    if src_ch > n:
        src_ch = 1
    return ChannelRead(1, (src_ch,))


def write_mode(playback_channels, first_channel):
    """Channel mode that makes a clip read playback_channels channels at first_channel.

    first_channel is 0-based. Clips wider than a stereo pair get the normal
    mode, which always reads from channel 0.
    """
    if playback_channels < 1:
        raise ValueError(f"playback_channels must be >= 1, got {playback_channels}")
    if first_channel < 0:
        raise ValueError(f"first_channel must be >= 0, got {first_channel}")

    if playback_channels == 1:
        code = MONO_BASE + first_channel
        if code > MONO_LAST:
            raise ValueError(f"Mono channel {first_channel + 1} is beyond channel {MAX_CHANNELS}")
        return code
    if playback_channels == 2:
        code = STEREO_BASE + first_channel
        if code > STEREO_LAST:
            raise ValueError(
                f"Stereo pair at channel {first_channel + 1} is beyond channel {MAX_CHANNELS}"
            )
        return code
    if first_channel != 0:
        raise ValueError(
            f"{playback_channels}-channel clip must start at channel 0, not {first_channel}"
        )
    return NORMAL


def describe(code):
    """Human-readable label for a channel-mode code."""
    if code == NORMAL:
        return "normal"
    if code == REVERSE_STEREO:
        return "reverse stereo"
    if code == DOWNMIX:
        return "mono downmix"
    if MONO_BASE <= code <= MONO_LAST:
        return f"mono ch{code - MONO_BASE + 1}"
    if STEREO_BASE <= code <= STEREO_LAST:
        first = code - STEREO_BASE + 1
        return f"stereo ch{first}+{first + 1}"
    return f"unsupported ({code})"
