"""Error types raised by the master list synchroniser."""
from __future__ import annotations


class MasterSyncError(Exception):
    """Base class for all master list synchronisation errors."""


class StoreNotFound(MasterSyncError):
    """No master list file exists in the configured store directory."""


class SchemaError(MasterSyncError):
    """The master list has no recognisable header row or key column."""


class ExtractionFailure(MasterSyncError):
    """Text could not be read from an uploaded file."""


class NoValidRecords(MasterSyncError):
    """No uploaded file yielded a usable document code."""
