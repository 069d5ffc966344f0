"""In-memory host — a whole project held in Python objects.

Records mutating calls in `calls` without needing a running editor. The
CLI uses it to round-trip a JSON project document offline; tests use it
everywhere a host is needed.

Project document:
    {"project_dir": str?, "time_selection": [start, end]?,
     "state": {section: {key: value}}?,
     "tracks": [{"guid", "name",
                 "items": [{"guid", "position", "length", "volume", "selected",
                            "take": {"source", "name", "chanmode", "start_offset",
                                     "playrate", "volume", "midi",
                                     "sample_rate", "channels"}}]}]}
Relative take sources resolve against the document's folder.
"""

from __future__ import annotations

import copy
import json
import os
import uuid
from dataclasses import asdict
from pathlib import Path

from .host import Clip, Host, Take, Track


def new_guid():
    return "{" + str(uuid.uuid4()).upper() + "}"


class MemoryHost(Host):
    def __init__(self, project_dir=None, time_selection=None, ask_file=None):
        self._tracks = []  # [(guid, name)] in display order
        self._clips = {}  # track guid -> [Clip]
        self._time_sel = tuple(time_selection) if time_selection else None
        self._project_dir = project_dir
        self._answer = ask_file
        self._state = {}  # section -> {key: value}
        self._snapshots = []
        self._undo_depth = 0
        self.undo_labels = []
        self.refresh_depth = 0
        self.calls = []

    # -- Building ----------------------------------------------------------------

    def add_track(self, name="", guid=None) -> Track:
        guid = guid or new_guid()
        self._tracks.append((guid, name))
        self._clips[guid] = []
        return self.find_track(guid)

    def set_time_selection(self, start, end):
        self._time_sel = (start, end)

    def clear_selection(self):
        for clips in self._clips.values():
            for c in clips:
                c.selected = False

    # -- Host: tracks / clips ----------------------------------------------------

    def tracks(self):
        return [Track(guid=g, index=i, name=n) for i, (g, n) in enumerate(self._tracks, 1)]

    def _clip(self, guid):
        for clips in self._clips.values():
            for c in clips:
                if c.guid == guid:
                    return c
        return None

    def track_clips(self, track_guid):
        clips = self._clips.get(track_guid, [])
        return [c.copy() for c in sorted(clips, key=lambda c: c.position)]

    def find_clip(self, guid):
        c = self._clip(guid)
        return c.copy() if c else None

    def selected_clips(self):
        out = []
        for guid, _ in self._tracks:
            out.extend(c for c in self.track_clips(guid) if c.selected)
        return out

    def select_clip(self, guid):
        c = self._clip(guid)
        if c is None:
            raise KeyError(f"Unknown item: {guid}")
        c.selected = True

    def time_selection(self):
        if self._time_sel is None:
            return None
        start, end = self._time_sel
        if start == end:
            return None
        return start, end

    # -- Host: mutation ----------------------------------------------------------

    def add_clip(self, track_guid, position, length, take, volume=1.0, selected=False):
        if track_guid not in self._clips:
            raise KeyError(f"Unknown track: {track_guid}")
        clip = Clip(
            guid=new_guid(),
            track_guid=track_guid,
            position=float(position),
            length=float(length),
            volume=float(volume),
            take=take,
            selected=selected,
        )
        self._clips[track_guid].append(clip)
        self.calls.append(("add", track_guid, clip.position, clip.length))
        return clip.copy()

    def delete_clip(self, guid):
        c = self._clip(guid)
        if c is None:
            raise KeyError(f"Unknown item: {guid}")
        self._clips[c.track_guid].remove(c)
        self.calls.append(("delete", guid))

    def split_clip(self, guid, at):
        c = self._clip(guid)
        if c is None:
            raise KeyError(f"Unknown item: {guid}")
        if not c.position < at < c.end:
            raise ValueError(f"Split point {at} is outside item {c.position}-{c.end}")
        right = c.copy()
        right.guid = new_guid()
        right.position = at
        right.length = c.end - at
        if right.take is not None:
            right.take.start_offset += (at - c.position) * (right.take.playrate or 1.0)
        c.length = at - c.position
        self._clips[c.track_guid].append(right)
        self.calls.append(("split", guid, at))
        return right.copy()

    # -- Host: transactions / UI -------------------------------------------------

    def begin_undo(self):
        if self._undo_depth == 0:
            self._snapshots.append(copy.deepcopy(self._clips))
        self._undo_depth += 1

    def end_undo(self, label):
        self._undo_depth -= 1
        if self._undo_depth == 0:
            self.undo_labels.append(label)

    def undo(self):
        if not self._snapshots:
            print("  [CEDAR] Nothing to undo")
            return
        self._clips = self._snapshots.pop()
        label = self.undo_labels.pop() if self.undo_labels else ""
        self.calls.append(("undo", label))

    def suspend_refresh(self):
        self.refresh_depth += 1

    def resume_refresh(self):
        self.refresh_depth -= 1

    # -- Host: keyed state -------------------------------------------------------

    def get_state(self, section, key):
        return self._state.get(section, {}).get(key, "")

    def set_state(self, section, key, value):
        self._state.setdefault(section, {})[key] = value

    def delete_state(self, section, key):
        self._state.get(section, {}).pop(key, None)

    # -- Host: files -------------------------------------------------------------

    def project_dir(self):
        return self._project_dir

    def ask_file(self, title, ext):
        if callable(self._answer):
            return self._answer(title, ext)
        return self._answer

    # -- Persistence -------------------------------------------------------------

    def to_dict(self):
        tracks = []
        for guid, name in self._tracks:
            items = []
            for c in self.track_clips(guid):
                items.append(
                    {
                        "guid": c.guid,
                        "position": c.position,
                        "length": c.length,
                        "volume": c.volume,
                        "selected": c.selected,
                        "take": asdict(c.take) if c.take else None,
                    }
                )
            tracks.append({"guid": guid, "name": name, "items": items})
        return {
            "project_dir": self._project_dir,
            "time_selection": list(self._time_sel) if self._time_sel else None,
            "state": copy.deepcopy(self._state),
            "tracks": tracks,
        }

    @classmethod
    def from_dict(cls, data, base_dir=None):
        host = cls(
            project_dir=data.get("project_dir") or base_dir,
            time_selection=data.get("time_selection"),
        )
        host._state = copy.deepcopy(data.get("state") or {})
        for t in data.get("tracks", []):
            track = host.add_track(t.get("name", ""), guid=t.get("guid"))
            for it in t.get("items", []):
                take = None
                if it.get("take") is not None:
                    take = Take(**it["take"])
                    if take.source and base_dir and not os.path.isabs(take.source):
                        take.source = os.path.join(base_dir, take.source)
                host._clips[track.guid].append(
                    Clip(
                        guid=it.get("guid") or new_guid(),
                        track_guid=track.guid,
                        position=float(it["position"]),
                        length=float(it["length"]),
                        volume=float(it.get("volume", 1.0)),
                        take=take,
                        selected=bool(it.get("selected", False)),
                    )
                )
        return host

    @classmethod
    def load(cls, path: str | Path) -> MemoryHost:
        path = Path(path)
        with open(path) as f:
            data = json.load(f)
        return cls.from_dict(data, base_dir=str(path.resolve().parent))

    def save(self, path: str | Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)
