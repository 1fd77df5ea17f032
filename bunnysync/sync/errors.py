from __future__ import annotations


class SyncError(RuntimeError):
    """Base for every error raised by the sync engine.

    `phase` is filled in by the engine when a fatal error aborts a run, so the
    caller can tell which step failed without the error being rewrapped.
    """

    phase: str | None = None


class PathError(SyncError):
    pass


class FetchError(SyncError):
    pass


class FetchTimeout(SyncError):
    pass


class LocalReadError(SyncError):
    pass


class UploadError(SyncError):
    pass


class DeleteError(SyncError):
    pass


FATAL_ERRORS = (PathError, FetchError, FetchTimeout)
