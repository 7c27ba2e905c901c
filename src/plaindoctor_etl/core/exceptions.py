"""Fatal error types raised by the build pipeline.

Anything raised from here aborts the run. Per-record problems in the
extract are never raised; they are counted and skipped by the ingestion
engine.
"""


class PlainDoctorError(Exception):
    """Base class for fatal pipeline errors."""


class MissingInputError(PlainDoctorError, FileNotFoundError):
    """A required input file (taxonomy, extract, store) does not exist."""


class MissingColumnError(PlainDoctorError, ValueError):
    """The extract header lacks one or more required columns."""

    def __init__(self, missing):
        self.missing = list(missing)
        super().__init__(f"Extract header is missing required columns: {self.missing}")


class StoreError(PlainDoctorError):
    """The store path cannot be created, opened or replaced."""
