"""Exception hierarchy and write-error classification."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Structured failure category reported by vector-store adapters."""

    TRANSIENT_NETWORK = "transient_network"
    OTHER = "other"


# Last-resort markers for opaque third-party errors that carry no type info.
_TRANSIENT_MARKERS = (
    "connection reset",
    "i/o error",
    "goaway",
    "stream reset",
    "unexpected eof",
    "broken pipe",
    "connection aborted",
    "remote end closed",
)


class CatalogSyncError(Exception):
    """Base class for every error raised by this package."""


class IngestionError(CatalogSyncError):
    """A load task failed and was marked FAILED in the progress registry."""


class PageFetchError(CatalogSyncError):
    """Reading a page or a single record from the catalog source failed."""


class TaskNotFoundError(CatalogSyncError):
    """No progress record exists for the requested task id."""


class TaskInUseError(CatalogSyncError):
    """Another loader already owns the task id."""


class SyncError(CatalogSyncError):
    """Applying a sync event to the vector store failed."""


class VectorStoreError(CatalogSyncError):
    """A vector-store call failed.

    Parameters
    ----------
    message:
        Human-readable description.
    kind:
        Structured category used by the retry ladders.
    """

    def __init__(self, message: str, *, kind: ErrorKind = ErrorKind.OTHER) -> None:
        super().__init__(message)
        self.kind = kind


def classify_error(exc: BaseException) -> ErrorKind:
    """Return the :class:`ErrorKind` for *exc*.

    Adapter errors carry their kind explicitly.  Socket-level errors are
    transient by type.  Everything else is matched against known
    network-failure markers in the message (and in the chained cause).
    """
    if isinstance(exc, VectorStoreError):
        return exc.kind
    if isinstance(exc, (ConnectionError, TimeoutError)):
        return ErrorKind.TRANSIENT_NETWORK

    current: BaseException | None = exc
    while current is not None:
        text = str(current).lower()
        if any(marker in text for marker in _TRANSIENT_MARKERS):
            return ErrorKind.TRANSIENT_NETWORK
        current = current.__cause__
    return ErrorKind.OTHER


def is_transient(exc: BaseException) -> bool:
    return classify_error(exc) is ErrorKind.TRANSIENT_NETWORK
