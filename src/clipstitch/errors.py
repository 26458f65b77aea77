"""Error taxonomy for import, validation, and export failures.

Every error the export pipeline can produce derives from ClipstitchError,
so callers can catch one type at the boundary and show its message.
"""


class ClipstitchError(Exception):
    """Base class for all clipstitch errors."""


class ClipImportError(ClipstitchError):
    """A clip batch could not be imported (probe failure or clip cap)."""


class ClipValidationError(ClipstitchError, ValueError):
    """Export was requested with no included clips or an invalid range."""


class ExportInProgressError(ClipstitchError):
    """A second export was started while one is still running."""


class EngineInitError(ClipstitchError):
    """The ffmpeg engine could not be initialized."""


class EngineCommandError(ClipstitchError):
    """An ffmpeg invocation exited with a non-zero status."""

    def __init__(self, returncode: int, stderr: str = ""):
        self.returncode = returncode
        self.stderr = stderr
        detail = stderr.strip().splitlines()[-1] if stderr.strip() else ""
        msg = f"ffmpeg exited with status {returncode}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class TranscodeError(ClipstitchError):
    """Transcoding a single clip failed."""


class ConcatError(ClipstitchError):
    """Concatenating the transcoded segments failed."""


class OutputFormatError(ClipstitchError):
    """The engine returned something other than binary output."""


class ResourceReleasedError(ClipstitchError):
    """A resource handle was used after it was released."""
