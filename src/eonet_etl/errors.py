"""Exception hierarchy shared by the feed, storage, and pipeline layers."""

from __future__ import annotations


class EtlError(Exception):
    """Base class for all errors raised by this package."""


class FeedError(EtlError):
    """The external feed could not be reached or returned unusable data."""


class NormalizationError(EtlError):
    """A single feed record could not be converted to a storage record."""

    def __init__(self, record_id: str, message: str) -> None:
        super().__init__(f"failed to normalize record {record_id!r}: {message}")
        self.record_id = record_id


class StorageError(EtlError):
    """A store operation failed; the message names the operation."""


class RunStateError(StorageError):
    """A run row was missing or already in a terminal state."""


class SchemaInitError(EtlError):
    """Schema initialization failed; the schema state is unknown."""


class InvalidInitModeError(EtlError, ValueError):
    """The requested schema initialization mode is not recognised."""


class PipelineError(EtlError):
    """A pipeline stage failed and the run was recorded as failed."""


class PipelineBusyError(PipelineError):
    """A run was requested while another run is still in flight."""


class HealthCheckError(EtlError):
    """A dependency of the pipeline reported unhealthy."""
