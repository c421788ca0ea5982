"""
Bulk Import Exceptions

Batch-fatal errors abort the whole batch, operator errors are raised
synchronously by the group editor. Group-scoped failures are never raised
out of the pipeline; they are recorded on the group instead.
"""


class BulkImportError(Exception):
    """Base class for all bulk import errors."""

    pass


class EmptyWorkSetError(BulkImportError):
    """
    Raised when a batch is started without any valid URL or document.
    """

    pass


class GroupingError(BulkImportError):
    """
    Raised when the classification call fails or returns an unusable result.
    This is batch-fatal - no groups are created and the operator must retry.
    """

    pass


class GroupNotFoundError(BulkImportError):
    """Raised when an operation references a group id not in the working set."""

    pass


class SourceNotFoundError(BulkImportError):
    """Raised when a source is not present in the group it is moved from."""

    pass


class InvalidTransitionError(BulkImportError):
    """
    Raised when an operation is not allowed in the group's current status.
    """

    pass


class UnitNotFoundError(BulkImportError):
    """Raised by a knowledge store when an existing unit id is unknown."""

    pass


class BatchNotFoundError(BulkImportError):
    """Raised when a batch id is unknown to the batch registry."""

    pass


class DraftGenerationError(BulkImportError):
    """
    Raised when the generation capability returns an unusable draft.
    Recorded on the group being generated, never raised out of the batch.
    """

    pass
