"""cedartrip configuration — constants and environment overrides.

Environment variables (a .env file is honoured by the CLI):
  CEDARTRIP_OUTPUT_DIR      — where exchange files go (default: <project>/cedar_roundtrip)
  CEDARTRIP_BLOCK_SIZE      — frames per multiplexer block (default 65536)
  CEDARTRIP_OSC_HOST        — host bridge address (default 127.0.0.1)
  CEDARTRIP_OSC_PORT        — host bridge port (default 11010)
  CEDARTRIP_OSC_CLIENT_PORT — local reply port (default 11011)
"""

import os
import time

BLOCK_SIZE = 65536
BIT_DEPTH = 24
BYTES_PER_SAMPLE = BIT_DEPTH // 8

ROUNDTRIP_SUBDIR = "cedar_roundtrip"
EXTSTATE_SECTION = "CEDAR_Roundtrip"
EXTSTATE_KEY = "metadata"
SIDECAR_NAME = "cedar_roundtrip_metadata.json"
PROCESSED_SUFFIX = "_processed.wav"
DEFAULT_TAKE_NAME = "CEDAR"

REMOTE_PORT = 11010
LOCAL_PORT = 11011


def block_size():
    return int(os.environ.get("CEDARTRIP_BLOCK_SIZE", BLOCK_SIZE))


def osc_address():
    """Return (hostname, port, client_port) for the host bridge."""
    return (
        os.environ.get("CEDARTRIP_OSC_HOST", "127.0.0.1"),
        int(os.environ.get("CEDARTRIP_OSC_PORT", REMOTE_PORT)),
        int(os.environ.get("CEDARTRIP_OSC_CLIENT_PORT", LOCAL_PORT)),
    )


def output_dir(project_dir=None):
    """Directory for exchange files: env override, project folder, then TMPDIR."""
    override = os.environ.get("CEDARTRIP_OUTPUT_DIR", "")
    if override:
        return override
    if project_dir:
        return os.path.join(project_dir, ROUNDTRIP_SUBDIR)
    tmpdir = os.environ.get("TMPDIR") or "/tmp"
    return os.path.join(tmpdir, ROUNDTRIP_SUBDIR)


def export_filename(now=None):
    """cedar_roundtrip_YYYYmmdd_HHMMSS.wav"""
    stamp = time.strftime("%Y%m%d_%H%M%S", time.localtime(now))
    return f"cedar_roundtrip_{stamp}.wav"


def name_suffix(now=None):
    """Suffix appended to take names of returned clips, e.g. _cedar_261018_2304."""
    return "_cedar_" + time.strftime("%y%m%d_%H%M", time.localtime(now))
