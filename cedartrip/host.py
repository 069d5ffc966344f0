"""Host capability surface — what the engine needs from the editor.

Tracks and clips are value snapshots. Anything that crosses the export /
return boundary is re-resolved by GUID; a missing GUID is None, not an
exception.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, replace

from .accessor import SourceAccessor


@dataclass
class Take:
    """Active take of a clip: the audio source and how it is played."""

    source: str = ""
    name: str = ""
    chanmode: int = 0
    start_offset: float = 0.0
    playrate: float = 1.0
    volume: float = 1.0
    midi: bool = False
    # 0 = unknown; callers fall back to probing the source file
    sample_rate: int = 0
    channels: int = 0


@dataclass
class Clip:
    guid: str
    track_guid: str
    position: float
    length: float
    volume: float = 1.0
    take: Take | None = None
    selected: bool = False

    @property
    def end(self) -> float:
        return self.position + self.length

    def overlaps(self, start: float, end: float) -> bool:
        return self.end > start and self.position < end

    def copy(self) -> Clip:
        return replace(self, take=replace(self.take) if self.take else None)


@dataclass
class Track:
    guid: str
    index: int  # 1-based display number
    name: str = ""


class Host:
    """Interface to the editor's project. Subclasses implement every method."""

    # -- Tracks / clips ----------------------------------------------------------

    def tracks(self) -> list[Track]:
        raise NotImplementedError

    def find_track(self, guid) -> Track | None:
        for track in self.tracks():
            if track.guid == guid:
                return track
        return None

    def track_clips(self, track_guid) -> list[Clip]:
        raise NotImplementedError

    def find_clip(self, guid) -> Clip | None:
        raise NotImplementedError

    def selected_clips(self) -> list[Clip]:
        raise NotImplementedError

    def select_clip(self, guid):
        raise NotImplementedError

    def clips_overlapping(self, track_guid, start, end) -> list[Clip]:
        return [c for c in self.track_clips(track_guid) if c.overlaps(start, end)]

    def time_selection(self) -> tuple[float, float] | None:
        raise NotImplementedError

    # -- Mutation ----------------------------------------------------------------

    def add_clip(self, track_guid, position, length, take, volume=1.0) -> Clip:
        raise NotImplementedError

    def delete_clip(self, guid):
        raise NotImplementedError

    def split_clip(self, guid, at) -> Clip:
        """Split at project time `at`; returns the right-hand fragment."""
        raise NotImplementedError

    # -- Audio -------------------------------------------------------------------

    def open_accessor(self, source, start_offset=0.0, playrate=1.0):
        """Open a reader over a take's source; the caller must close it."""
        return SourceAccessor(source, start_offset, playrate)

    # -- Transactions / UI -------------------------------------------------------

    def begin_undo(self):
        raise NotImplementedError

    def end_undo(self, label):
        raise NotImplementedError

    def undo(self):
        raise NotImplementedError

    @contextmanager
    def undo_block(self, label):
        """Group every mutation inside into one undo step named `label`.

        On error the step is closed as "<label> (failed)" and the exception
        propagates; callers decide whether to undo().
        """
        self.begin_undo()
        try:
            yield
        except BaseException:
            self.end_undo(f"{label} (failed)")
            raise
        self.end_undo(label)

    def suspend_refresh(self):
        raise NotImplementedError

    def resume_refresh(self):
        raise NotImplementedError

    @contextmanager
    def refresh_suspended(self):
        self.suspend_refresh()
        try:
            yield
        finally:
            self.resume_refresh()

    # -- Keyed state -------------------------------------------------------------

    def get_state(self, section, key) -> str:
        """Value stored under (section, key) by the editor, "" if none.

        Lives in the editor, so it outlasts the process that wrote it.
        """
        raise NotImplementedError

    def set_state(self, section, key, value):
        raise NotImplementedError

    def delete_state(self, section, key):
        raise NotImplementedError

    # -- Files -------------------------------------------------------------------

    def project_dir(self) -> str | None:
        return None

    def ask_file(self, title, ext) -> str | None:
        """Ask the user for a file to read. None if cancelled or unavailable."""
        return None
