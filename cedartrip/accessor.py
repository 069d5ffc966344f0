"""Audio accessors — read a take's source samples by take-relative time.

WAV sources are read incrementally with the stdlib wave module; anything
else (or a WAV that wave rejects) is decoded once via pydub.
"""

import os
import wave

import numpy as np
from pydub import AudioSegment
from pydub.exceptions import CouldntDecodeError

from .errors import FormatError
from .wavfile import decode_pcm, read_format


def audiosegment_to_numpy(segment: AudioSegment) -> np.ndarray:
    """Convert a pydub AudioSegment to a float64 (frames, channels) array in [-1, 1]."""
    raw = np.array(segment.get_array_of_samples(), dtype=np.float64)
    max_val = float(1 << (segment.sample_width * 8 - 1))
    raw /= max_val
    return raw.reshape(-1, segment.channels)


def probe_source(path):
    """Return (sample_rate, channels) of an audio file, (0, 0) if unreadable."""
    if not path or not os.path.exists(path):
        return 0, 0
    try:
        fmt = read_format(path)
        return fmt.sample_rate, fmt.channels
    except FormatError:
        pass
    try:
        seg = AudioSegment.from_file(path)
    except (CouldntDecodeError, OSError) as e:
        print(f"  [CEDAR] Could not probe {os.path.basename(path)}: {e}")
        return 0, 0
    return seg.frame_rate, seg.channels


class SourceAccessor:
    """Random-access reader over one audio source.

    start_offset is the take's offset into its source (seconds); read()
    takes times relative to the take start, so the offset is applied here.

    Non-WAV sources are decoded whole into memory through pydub, so memory
    use grows with source length. WAV sources are streamed from disk.
    """

    def __init__(self, path, start_offset=0.0, playrate=1.0):
        self.path = path
        self.start_offset = float(start_offset)
        self.playrate = float(playrate or 1.0)
        self._wave = None
        self._array = None
        self.sample_rate = 0
        self.channels = 0
        self.total_frames = 0
        self._open()

    def _open(self):
        if not os.path.exists(self.path):
            raise FileNotFoundError(f"Audio source not found: {self.path}")
        try:
            self._wave = wave.open(self.path, "rb")
            self.sample_rate = self._wave.getframerate()
            self.channels = self._wave.getnchannels()
            self.total_frames = self._wave.getnframes()
            return
        except (wave.Error, EOFError):
            self._wave = None
        seg = AudioSegment.from_file(self.path)
        self._array = audiosegment_to_numpy(seg)
        self.sample_rate = seg.frame_rate
        self.channels = seg.channels
        self.total_frames = len(self._array)

    def read(self, take_time, frames):
        """Read `frames` frames starting at take_time seconds into the take.

        Returns (frames_read, data) where data is always (frames, channels),
        zero-filled wherever the request falls outside the source.
        """
        out = np.zeros((frames, self.channels), dtype=np.float64)
        start = int(round((self.start_offset + take_time) * self.sample_rate))
        lo = max(start, 0)
        hi = min(start + frames, self.total_frames)
        if hi <= lo:
            return 0, out

        if self._wave is not None:
            self._wave.setpos(lo)
            raw = self._wave.readframes(hi - lo)
            data = decode_pcm(raw, self._wave.getsampwidth(), self.channels)
        else:
            data = self._array[lo:hi]

        got = len(data)
        out[lo - start : lo - start + got] = data
        return got, out

    def close(self):
        if self._wave is not None:
            self._wave.close()
            self._wave = None
        self._array = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False
