# revisions/utils/exceptions.py


class RevisionError(Exception):
    """
    Base class for every error raised by the revisions engine.
    Carries a human-readable detail message.
    """

    default_detail = "Revision error"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ConfigurationError(RevisionError):
    """
    Raised when revision options hold an invalid value,
    e.g. a non-positive retention limit or an undefined relation.
    """

    default_detail = "Invalid revision configuration"


class UnsupportedRelationError(RevisionError):
    """
    Raised when a relation's kind is not one the engine can capture or restore.
    """

    default_detail = "Unsupported relation kind"


class NotFoundError(RevisionError):
    """
    Raised when a revision, a record or an expected related record is missing.
    """

    default_detail = "Not found"


class OwnershipMismatchError(RevisionError):
    """
    Raised when a revision is applied to a record that does not own it.
    """

    default_detail = "Revision does not belong to this record"


class StoreUnavailableError(RevisionError):
    """
    Raised when the underlying database fails. The original error is chained.
    """

    default_detail = "Database temporarily unavailable"
