"""Exceptions raised by the listing feed sync pipeline."""

from typing import Optional


class SyncError(Exception):
    """Base exception for listing feed synchronization."""

    pass


class FetchError(SyncError):
    """The feed could not be retrieved (network, IO, timeout, bad status)."""

    pass


class ParseError(SyncError):
    """The feed document is malformed or missing its listings container."""

    pass


class ConflictError(SyncError):
    """A sync is already running."""

    pass


class RecordError(SyncError):
    """A single feed record could not be reconciled.

    Attributes:
        mls_id: MLS identifier of the offending record, if it had one.
    """

    def __init__(self, message: str, mls_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.mls_id = mls_id
