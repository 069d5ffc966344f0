"""
cedartrip - drive the editor through an OSC bridge.

The bridge is a small script running inside the editor that answers the
/cedartrip/* addresses below on one UDP port. Requests and replies share
a single socket, and every reply carries the request's address, so a
query is simply: send, then read until that address comes back.

Everything is synchronous: no listener thread, a query blocks on the
socket until its reply or the timeout.
"""

import socket
import time

from pythonosc.osc_message import OscMessage, ParseError
from pythonosc.osc_message_builder import OscMessageBuilder

from .config import LOCAL_PORT, REMOTE_PORT
from .host import Clip, Host, Take, Track

TICK_DURATION = 0.5

ENDPOINTS = {
    "/cedartrip/ping": "liveness check, replies (version,)",
    "/cedartrip/tracks": "all tracks, flat (guid, index, name)*",
    "/cedartrip/track/items": "items on a track (track_guid) -> flat item tuples",
    "/cedartrip/item": "one item (guid) -> item tuple, empty if gone",
    "/cedartrip/selection/items": "selected items -> flat item tuples",
    "/cedartrip/item/select": "select an item (guid)",
    "/cedartrip/time_selection": "(start, end) of the time selection",
    "/cedartrip/item/add": "create item + take -> (guid,)",
    "/cedartrip/item/delete": "delete an item (guid) -> (1,)",
    "/cedartrip/item/split": "split (guid, time) -> (right_guid,)",
    "/cedartrip/undo/begin": "open an undo block",
    "/cedartrip/undo/end": "close the undo block (label)",
    "/cedartrip/undo": "undo the last step -> (1,)",
    "/cedartrip/refresh/suspend": "stop redrawing",
    "/cedartrip/refresh/resume": "redraw again",
    "/cedartrip/extstate/get": "keyed state (section, key) -> (value,), '' if unset",
    "/cedartrip/extstate/set": "store keyed state (section, key, value)",
    "/cedartrip/extstate/delete": "remove keyed state (section, key)",
    "/cedartrip/project_dir": "folder of the current project, '' if unsaved",
    "/cedartrip/ask_file": "file chooser (title, ext) -> (path,), '' if cancelled",
}

# Wire order of an item tuple
ITEM_FIELDS = (
    "guid",
    "track_guid",
    "position",
    "length",
    "volume",
    "selected",
    "has_take",
    "source",
    "take_name",
    "chanmode",
    "start_offset",
    "playrate",
    "take_volume",
    "midi",
    "sample_rate",
    "channels",
)


class BridgeOSC:
    """Single-socket OSC client for the editor bridge.

    Sends and receives on the SAME UDP socket so the reply always comes back
    to our listening port.
    """

    def __init__(
        self,
        hostname="127.0.0.1",
        port=REMOTE_PORT,
        client_port=LOCAL_PORT,
        retries=0,
        sock=None,
    ):
        self._remote = (hostname, port)
        if sock is None:
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind(("0.0.0.0", client_port))
        self._sock = sock
        self._retries = retries

    def _validate(self, address):
        if address not in ENDPOINTS:
            raise ValueError(f"Unknown address: {address}")

    def _build_msg(self, address: str, params) -> bytes:
        builder = OscMessageBuilder(address)
        for p in params:
            # Timeline positions need doubles; OSC 'f' is only 32-bit
            if isinstance(p, float):
                builder.add_arg(p, OscMessageBuilder.ARG_TYPE_DOUBLE)
            else:
                builder.add_arg(p)
        return builder.build().dgram

    def send(self, address: str, params=()):
        """Send an OSC message (fire-and-forget)."""
        self._validate(address)
        self._sock.sendto(self._build_msg(address, params), self._remote)

    def query(self, address: str, params=(), timeout: float = TICK_DURATION):
        """Send an OSC message and wait for the reply."""
        self._validate(address)
        for attempt in range(1 + self._retries):
            if attempt > 0:
                time.sleep(0.2 * attempt)
            self._sock.sendto(self._build_msg(address, params), self._remote)
            deadline = time.monotonic() + timeout
            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                self._sock.settimeout(remaining)
                try:
                    data, _ = self._sock.recvfrom(65536)
                except socket.timeout:
                    break
                try:
                    msg = OscMessage(data)
                except ParseError as e:
                    print(f"  [OSC ERROR] {type(e).__name__}: {e}")
                    continue
                if msg.address == address:
                    return tuple(msg.params)
        raise TimeoutError(f"No response from editor bridge for: {address}")

    def stop(self):
        self._sock.close()


def _clip_from_wire(values):
    v = dict(zip(ITEM_FIELDS, values))
    take = None
    if v["has_take"]:
        take = Take(
            source=v["source"],
            name=v["take_name"],
            chanmode=int(v["chanmode"]),
            start_offset=float(v["start_offset"]),
            playrate=float(v["playrate"]),
            volume=float(v["take_volume"]),
            midi=bool(v["midi"]),
            sample_rate=int(v["sample_rate"]),
            channels=int(v["channels"]),
        )
    return Clip(
        guid=v["guid"],
        track_guid=v["track_guid"],
        position=float(v["position"]),
        length=float(v["length"]),
        volume=float(v["volume"]),
        take=take,
        selected=bool(v["selected"]),
    )


def _clips_from_wire(flat):
    n = len(ITEM_FIELDS)
    if len(flat) % n:
        raise ValueError(f"Item reply has {len(flat)} values, not a multiple of {n}")
    return [_clip_from_wire(flat[i : i + n]) for i in range(0, len(flat), n)]


class OSCHost(Host):
    """Host implementation over the OSC bridge."""

    def __init__(self, osc=None, hostname="127.0.0.1", port=REMOTE_PORT, client_port=LOCAL_PORT):
        self.osc = osc or BridgeOSC(hostname, port, client_port, retries=2)

    def check(self):
        return self.osc.query("/cedartrip/ping")

    def tracks(self):
        flat = self.osc.query("/cedartrip/tracks", timeout=2.0)
        return [
            Track(guid=flat[i], index=int(flat[i + 1]), name=flat[i + 2])
            for i in range(0, len(flat) - 2, 3)
        ]

    def track_clips(self, track_guid):
        clips = _clips_from_wire(self.osc.query("/cedartrip/track/items", [track_guid], timeout=2.0))
        return sorted(clips, key=lambda c: c.position)

    def find_clip(self, guid):
        values = self.osc.query("/cedartrip/item", [guid])
        if not values:
            return None
        return _clip_from_wire(values)

    def selected_clips(self):
        return _clips_from_wire(self.osc.query("/cedartrip/selection/items", timeout=2.0))

    def select_clip(self, guid):
        self.osc.send("/cedartrip/item/select", [guid])

    def time_selection(self):
        start, end = self.osc.query("/cedartrip/time_selection")
        if start == end:
            return None
        return float(start), float(end)

    def add_clip(self, track_guid, position, length, take, volume=1.0):
        (guid,) = self.osc.query(
            "/cedartrip/item/add",
            [
                track_guid,
                float(position),
                float(length),
                float(volume),
                take.source,
                take.name,
                int(take.chanmode),
                float(take.start_offset),
                float(take.playrate),
                float(take.volume),
            ],
            timeout=2.0,
        )
        return self.find_clip(guid)

    def delete_clip(self, guid):
        self.osc.query("/cedartrip/item/delete", [guid])

    def split_clip(self, guid, at):
        (right,) = self.osc.query("/cedartrip/item/split", [guid, float(at)])
        if not right:
            raise ValueError(f"Split point {at} is outside item {guid}")
        return self.find_clip(right)

    def begin_undo(self):
        self.osc.send("/cedartrip/undo/begin")

    def end_undo(self, label):
        self.osc.send("/cedartrip/undo/end", [label])

    def undo(self):
        self.osc.query("/cedartrip/undo")

    def suspend_refresh(self):
        self.osc.send("/cedartrip/refresh/suspend")

    def resume_refresh(self):
        self.osc.send("/cedartrip/refresh/resume")

    def get_state(self, section, key):
        (value,) = self.osc.query("/cedartrip/extstate/get", [section, key])
        return value or ""

    def set_state(self, section, key, value):
        self.osc.send("/cedartrip/extstate/set", [section, key, value])

    def delete_state(self, section, key):
        self.osc.send("/cedartrip/extstate/delete", [section, key])

    def project_dir(self):
        (path,) = self.osc.query("/cedartrip/project_dir")
        return path or None

    def ask_file(self, title, ext):
        (path,) = self.osc.query("/cedartrip/ask_file", [title, ext], timeout=300.0)
        return path or None

    def close(self):
        self.osc.stop()
