"""Return path — bring CEDAR Retouch's processed audio back onto the tracks.

envelope -> processed WAV (multi-RIFF aware) -> plan -> clear + create,
all inside one undo step. If anything fails after the first change, the
host's own undo restores the project before the error is reported.
"""

from .errors import ReplaceError
from .replace import apply_replacement, plan_replacement
from .riff import validate_processed_wav

UNDO_LABEL = "Return from CEDAR Retouch"


def return_from_tool(host, store, sidecar=None, suffix=None, forget=False):
    envelope = store.load(host, sidecar)
    wav_path = validate_processed_wav(envelope)

    # Resolution problems surface here, before anything is modified
    ops = plan_replacement(host, envelope, suffix)

    with host.refresh_suspended():
        try:
            with host.undo_block(UNDO_LABEL):
                result = apply_replacement(host, envelope, ops, wav_path)
        except Exception as e:
            host.undo()
            print("  [CEDAR] All changes have been undone.")
            raise ReplaceError(f"{e}\nAll changes have been undone.") from e

    if forget:
        store.invalidate(host)

    print(f"  [CEDAR] Replaced {result.created} item(s). Undo to revert.")
    print("  [CEDAR] To re-edit: make changes in CEDAR, save, run Return again.")
    return result
