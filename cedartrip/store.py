"""Envelope persistence — one keyed slot plus a sidecar JSON file.

The slot is the host's keyed state, read first on return; the sidecar
beside the exchange file is the fallback when the slot is gone or
unreadable. Both are overwritten by every export (single slot, last
writer wins).
"""

import os
from pathlib import Path

from .config import EXTSTATE_KEY, EXTSTATE_SECTION, SIDECAR_NAME
from .envelope import decode_envelope, encode_envelope
from .errors import EnvelopeError, ExportError, RoundtripError


def save_sidecar(text: str, path: str | Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        f.write(text)


def load_sidecar(path: str | Path) -> str:
    with open(path) as f:
        return f.read()


class EnvelopeStore:
    """Holds the live envelope for export and return.

    The slot is the host's keyed state under (section, metadata), so a
    return in a later process still finds what send stored.
    """

    def __init__(self, section=EXTSTATE_SECTION):
        self.section = section

    def save(self, host, envelope, output_dir) -> str:
        """Store the envelope in the slot and beside the export. Returns the sidecar path."""
        text = encode_envelope(envelope)
        host.set_state(self.section, EXTSTATE_KEY, text)
        sidecar = os.path.join(output_dir, SIDECAR_NAME)
        try:
            save_sidecar(text, sidecar)
        except OSError as e:
            raise ExportError(f"Cannot write metadata file: {sidecar} ({e.strerror})") from e
        return sidecar

    def load(self, host, sidecar=None):
        """Decode the live envelope.

        Prefers the slot; if it is empty or does not decode, reads the
        sidecar given (or asks the host for one). A bad sidecar is an error.
        """
        text = host.get_state(self.section, EXTSTATE_KEY)
        if text:
            try:
                return decode_envelope(text)
            except EnvelopeError as e:
                print(f"  [CEDAR] Stored metadata is unusable, falling back to file: {e}")

        path = sidecar or host.ask_file("Select CEDAR roundtrip metadata JSON", "json")
        if not path:
            raise RoundtripError("No metadata found. Run 'Send to CEDAR Retouch' first.")

        try:
            text = load_sidecar(path)
        except OSError as e:
            raise EnvelopeError(f"Cannot read metadata file: {path} ({e.strerror})") from e
        return decode_envelope(text)

    def invalidate(self, host):
        host.delete_state(self.section, EXTSTATE_KEY)
