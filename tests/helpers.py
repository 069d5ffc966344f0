"""Shared builders for tests — synthetic WAV sources and in-memory projects."""

import struct
import wave

import numpy as np

from cedartrip.host import Take
from cedartrip.memhost import MemoryHost
from cedartrip.wavfile import decode_pcm, pack_24bit, quantize_24bit, wav_header

SR = 8000


def write_wav(path, data, sample_rate=SR, sampwidth=2):
    """Write float (frames, channels) data as 16- or 24-bit PCM with the wave module."""
    data = np.atleast_2d(np.asarray(data, dtype=np.float64))
    frames, channels = data.shape
    if sampwidth == 2:
        raw = np.clip(np.round(data * 32768.0), -32768, 32767).astype("<i2").tobytes()
    else:
        raw = pack_24bit(quantize_24bit(data))
    with wave.open(str(path), "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(sampwidth)
        wf.setframerate(sample_rate)
        wf.writeframes(raw)
    return str(path)


def dc_wav(path, levels, seconds, sample_rate=SR):
    """Constant level per channel, e.g. levels=(0.25, -0.5) for a stereo file."""
    frames = int(round(seconds * sample_rate))
    data = np.tile(np.asarray(levels, dtype=np.float64), (frames, 1))
    return write_wav(path, data, sample_rate)


def read_wav(path):
    """(data, sample_rate) of a single-container PCM WAV."""
    with wave.open(str(path), "rb") as wf:
        raw = wf.readframes(wf.getnframes())
        return decode_pcm(raw, wf.getsampwidth(), wf.getnchannels()), wf.getframerate()


def riff_bytes(payload_size, form=b"WAVE", fill=b"\x00"):
    """A bare RIFF container with a payload of exactly payload_size bytes."""
    body = form + fill * max(0, payload_size - 4)
    return b"RIFF" + struct.pack("<I", payload_size) + body[:payload_size]


def wav_bytes(data, sample_rate=SR):
    """Complete 24-bit WAV container bytes for float (frames, channels) data."""
    data = np.atleast_2d(np.asarray(data, dtype=np.float64))
    frames, channels = data.shape
    return wav_header(channels, sample_rate, frames) + pack_24bit(quantize_24bit(data))


def add_audio_clip(host, track, source, position, length, chanmode=0, selected=True,
                   name="", start_offset=0.0, volume=1.0, take_volume=1.0):
    take = Take(
        source=source,
        name=name,
        chanmode=chanmode,
        start_offset=start_offset,
        volume=take_volume,
    )
    return host.add_clip(track.guid, position, length, take, volume=volume, selected=selected)


def host_with_tracks(*names, **kwargs):
    host = MemoryHost(**kwargs)
    tracks = [host.add_track(n) for n in names]
    host.calls.clear()
    return host, tracks
