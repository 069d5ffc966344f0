"""Exception hierarchy for the round-trip engine.

Library code raises these; the CLI is the only place they are caught and
turned into user-visible text.
"""


class RoundtripError(Exception):
    """Base class for every failure the user should see."""


class SelectionError(RoundtripError):
    """Input validation: nothing selected, MIDI clip, mixed sample rates, ..."""


class ExportError(RoundtripError):
    """Exchange file could not be written or a source could not be read."""


class FormatError(RoundtripError):
    """A file is not the container layout we expect."""

    def __init__(self, path, message):
        self.path = str(path)
        super().__init__(f"{message}: {self.path}")


class EnvelopeError(RoundtripError):
    """Metadata could not be decoded or failed schema validation."""

    def __init__(self, errors):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__("Invalid metadata:\n  " + "\n  ".join(self.errors))


class ResolutionError(RoundtripError):
    """One or more tracks referenced by the metadata no longer exist."""

    def __init__(self, missing):
        self.missing = list(missing)
        super().__init__("\n".join(self.missing))


class ReplaceError(RoundtripError):
    """Replacement failed mid-way; the host undo has already been issued."""
