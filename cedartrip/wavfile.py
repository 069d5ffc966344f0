"""24-bit PCM WAV codec — header writing, fmt parsing, sample (de)quantization.

Only what the round trip needs: canonical RIFF/WAVE with a 16-byte PCM fmt
chunk followed by data. Samples are numpy float arrays in [-1, 1].
"""

import struct
from dataclasses import dataclass

import numpy as np

from .config import BIT_DEPTH, BYTES_PER_SAMPLE
from .errors import FormatError

MAX_24 = 2**23 - 1  # 8388607
MIN_24 = -(2**23)  # -8388608

HEADER_SIZE = 44
WAVE_FORMAT_PCM = 1
WAVE_FORMAT_EXTENSIBLE = 0xFFFE


@dataclass(frozen=True)
class WavFormat:
    channels: int
    sample_rate: int
    bits: int
    data_offset: int  # absolute byte offset of the first sample
    data_size: int

    @property
    def block_align(self):
        return self.channels * self.bits // 8

    @property
    def frames(self):
        return self.data_size // self.block_align if self.block_align else 0


def wav_header(num_channels, sample_rate, num_frames):
    """44-byte canonical header for num_frames frames of 24-bit PCM."""
    byte_rate = sample_rate * num_channels * BYTES_PER_SAMPLE
    block_align = num_channels * BYTES_PER_SAMPLE
    data_size = num_frames * num_channels * BYTES_PER_SAMPLE
    return b"".join(
        [
            b"RIFF",
            struct.pack("<I", 36 + data_size),
            b"WAVE",
            b"fmt ",
            struct.pack(
                "<IHHIIHH",
                16,
                WAVE_FORMAT_PCM,
                num_channels,
                sample_rate,
                byte_rate,
                block_align,
                BIT_DEPTH,
            ),
            b"data",
            struct.pack("<I", data_size),
        ]
    )


def parse_format(f, base=0, path=""):
    """Parse the RIFF/WAVE container starting at byte `base` of open file f.

    Walks the sub-chunks (even-padded, as inside any RIFF) until both
    'fmt ' and 'data' have been seen.
    """
    f.seek(base)
    head = f.read(12)
    if len(head) < 12:
        raise FormatError(path, "WAV file is too small or corrupt")
    tag, riff_size, form = struct.unpack("<4sI4s", head)
    if tag != b"RIFF" or form != b"WAVE":
        raise FormatError(path, "File is not a valid WAV")

    end = base + 8 + riff_size
    offset = base + 12
    fmt = None
    while offset + 8 <= end:
        f.seek(offset)
        hdr = f.read(8)
        if len(hdr) < 8:
            break
        chunk_id, size = struct.unpack("<4sI", hdr)
        if chunk_id == b"fmt ":
            body = f.read(min(size, 40))
            if len(body) < 16:
                raise FormatError(path, "WAV fmt chunk is too small")
            audio_format, channels, rate, _, _, bits = struct.unpack("<HHIIHH", body[:16])
            if audio_format == WAVE_FORMAT_EXTENSIBLE and len(body) >= 26:
                audio_format = struct.unpack("<H", body[24:26])[0]
            if audio_format != WAVE_FORMAT_PCM:
                raise FormatError(path, f"Unsupported WAV encoding {audio_format} (PCM only)")
            fmt = (channels, rate, bits)
        elif chunk_id == b"data":
            if fmt is None:
                raise FormatError(path, "WAV data chunk precedes fmt chunk")
            channels, rate, bits = fmt
            size = min(size, max(0, end - offset - 8))
            return WavFormat(channels, rate, bits, offset + 8, size)
        offset += 8 + size + (size & 1)

    raise FormatError(path, "WAV file has no fmt/data chunks")


def read_format(path):
    """Channel count, sample rate, bit depth and data location of a WAV file."""
    try:
        with open(path, "rb") as f:
            return parse_format(f, 0, path)
    except OSError as e:
        raise FormatError(path, f"Cannot read WAV file ({e.strerror})") from e


def quantize_24bit(samples):
    """Clamp to [-1, 1] and scale to signed 24-bit, rounding half away from zero.

    Positive values scale by 2**23-1 and negative ones by 2**23, so full
    scale maps onto the whole integer range.
    """
    x = np.clip(np.asarray(samples, dtype=np.float64), -1.0, 1.0)
    scaled = np.where(x >= 0, x * MAX_24, x * -MIN_24)
    ints = np.sign(scaled) * np.floor(np.abs(scaled) + 0.5)
    return np.clip(ints, MIN_24, MAX_24).astype("<i4")


def pack_24bit(ints):
    """Little-endian 3-byte packing of int32 samples (no padding byte)."""
    raw = np.ascontiguousarray(ints, dtype="<i4").view(np.uint8)
    return raw.reshape(-1, 4)[:, :3].tobytes()


def decode_pcm(raw, sampwidth, channels):
    """Interleaved little-endian PCM bytes -> float64 array of shape (frames, channels)."""
    if sampwidth == 1:
        data = (np.frombuffer(raw, dtype=np.uint8).astype(np.float64) - 128.0) / 128.0
    elif sampwidth == 2:
        data = np.frombuffer(raw, dtype="<i2").astype(np.float64) / 32768.0
    elif sampwidth == 3:
        b = np.frombuffer(raw, dtype=np.uint8).reshape(-1, 3).astype(np.int32)
        ints = b[:, 0] | (b[:, 1] << 8) | (b[:, 2] << 16)
        ints = np.where(ints & 0x800000, ints - (1 << 24), ints)
        data = ints.astype(np.float64) / 8388608.0
    elif sampwidth == 4:
        data = np.frombuffer(raw, dtype="<i4").astype(np.float64) / 2147483648.0
    else:
        raise ValueError(f"Unsupported sample width {sampwidth}")
    frames = len(data) // channels
    return data[: frames * channels].reshape(frames, channels)
