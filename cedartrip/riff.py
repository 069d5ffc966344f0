"""Multi-RIFF extraction for files saved by CEDAR Retouch.

Retouch saves by appending a complete RIFF/WAVE container to the file for
every save: container 1 is the audio we sent, the last one is the most
recent processed audio. Standard readers only see container 1.

Containers are back to back with no pad byte between them, even when a
container's size is odd, so the next header is at offset + 8 + size.
"""

import os
import struct
from dataclasses import dataclass

from .config import PROCESSED_SUFFIX
from .errors import FormatError
from .wavfile import read_format

COPY_CHUNK = 1 << 20


@dataclass(frozen=True)
class RiffContainer:
    offset: int
    size: int  # declared payload size, excluding the 8-byte header
    terminal: bool = False

    @property
    def total(self):
        return 8 + self.size


def walk_containers(path):
    """List every back-to-back RIFF container in the file, last one marked terminal."""
    found = []
    offset = 0
    with open(path, "rb") as f:
        while True:
            f.seek(offset)
            hdr = f.read(8)
            if len(hdr) < 8:
                break
            magic, size = struct.unpack("<4sI", hdr)
            if magic != b"RIFF":
                break
            found.append((offset, size))
            offset += 8 + size
    return [
        RiffContainer(off, size, terminal=(i == len(found) - 1))
        for i, (off, size) in enumerate(found)
    ]


def processed_path(wav_path):
    base = wav_path[:-4] if wav_path.lower().endswith(".wav") else wav_path
    return base + PROCESSED_SUFFIX


def extract_last_container(wav_path, out_path=None):
    """Copy the last container of a multi-RIFF file to a standalone WAV.

    Returns the new path, or None when the file holds fewer than two
    containers (nothing processed to extract).
    """
    containers = walk_containers(wav_path)
    if len(containers) < 2:
        return None
    last = containers[-1]

    out_path = out_path or processed_path(wav_path)
    with open(wav_path, "rb") as src:
        src.seek(last.offset + 8)
        if src.read(4) != b"WAVE":
            raise FormatError(wav_path, f"Container {len(containers)} is not WAVE audio")
        src.seek(last.offset)
        with open(out_path, "wb") as dst:
            remaining = last.total
            while remaining > 0:
                buf = src.read(min(COPY_CHUNK, remaining))
                if not buf:
                    break
                dst.write(buf)
                remaining -= len(buf)
    if remaining > 0:
        os.remove(out_path)
        raise FormatError(
            wav_path, f"Container {len(containers)} is truncated ({remaining} bytes missing)"
        )

    print(
        f"  [CEDAR] Found {len(containers)} RIFF chunks, extracting chunk "
        f"{len(containers)} (most recent)."
    )
    return out_path


def validate_processed_wav(envelope):
    """Locate the processed audio for an envelope and check it fits.

    Returns the path of a clean single-container WAV: the exchange file
    itself if Retouch left it single, otherwise the extracted last
    container.
    """
    wav_path = envelope.wav_path
    if not os.path.exists(wav_path):
        raise FormatError(
            wav_path,
            "Processed WAV not found (make sure you saved the file in CEDAR Retouch, "
            "overwriting the original)",
        )

    with open(wav_path, "rb") as f:
        header = f.read(12)
        if len(header) < 12:
            raise FormatError(wav_path, "WAV file is too small or corrupt")
        magic, riff_size, form = struct.unpack("<4sI4s", header)
        if magic != b"RIFF" or form != b"WAVE":
            raise FormatError(wav_path, "File is not a valid WAV")
        f.seek(8 + riff_size)
        peek = f.read(4)

    if peek == b"RIFF":
        print("  [CEDAR] Multi-RIFF file detected, extracting processed audio...")
        clean = extract_last_container(wav_path)
        if clean is None:
            raise FormatError(wav_path, "Failed to extract processed audio from CEDAR file")
        print(f"  [CEDAR] Extracted to: {clean}")
        wav_path = clean

    fmt = read_format(wav_path)
    if fmt.channels != envelope.num_channels:
        raise FormatError(
            wav_path,
            f"Channel count mismatch. Expected {envelope.num_channels} but WAV has "
            f"{fmt.channels} channels (make sure CEDAR saved all channels)",
        )
    if fmt.sample_rate != envelope.sample_rate:
        print(
            f"  [CEDAR] WARNING: processed audio is {fmt.sample_rate} Hz, "
            f"exported at {envelope.sample_rate} Hz"
        )
    return wav_path
