"""
Error types raised by the ingestion engine.

IngestError subclasses are fatal to a whole file: the orchestrator turns
them into a failed ImportResult and writes nothing. Row-level problems are
never raised; they are counted as skipped rows instead.
"""


class IngestError(ValueError):
    """Base class for errors that abort an entire import."""


class MissingUploadError(IngestError):
    """No file was supplied, or the upload carried no bytes."""


class EmptyFileError(IngestError):
    """The upload decoded to an empty document."""


class HeaderNotFoundError(IngestError):
    """No row in the file looked like the expected header row."""


class MissingColumnsError(IngestError):
    """The header row was found but required canonical fields are unmapped."""

    def __init__(self, message: str, missing):
        super().__init__(message)
        self.missing = tuple(missing)


class MemberResolutionError(IngestError):
    """A contribution row could not be tied to an existing or new member."""


class ManualEntryError(IngestError):
    """A single-record form submission is missing a required field."""


class UpstreamError(RuntimeError):
    """Base class for failures talking to an external collaborator."""


class QuoteAPIError(UpstreamError):
    """The price API could not be reached or returned an error payload."""


class SheetError(UpstreamError):
    """The published sheet could not be fetched or was not CSV."""
