"""Error taxonomy for the replication engine.

Adapters translate provider errors into these types so the core stages never
depend on SDK exception classes. Only `ParentMissingError` and
`AlreadyExistsError` carry control-flow meaning; everything else is either
logged and skipped (`ParseError`) or routed to a dead-letter/redelivery path.
"""

from __future__ import annotations


class ReplicationError(RuntimeError):
    """Base class for all replication errors."""


class ParseError(ReplicationError):
    """Raised when a message payload cannot be decoded into a domain value."""


class NotFoundError(ReplicationError):
    """Raised when an entity does not exist in the catalog or object store."""


class AlreadyExistsError(ReplicationError):
    """Raised when a create call races with another writer."""


class ParentMissingError(ReplicationError):
    """Raised when a table create/update fails because its database is missing."""

    def __init__(self, database_name: str, message: str | None = None):
        self.database_name = database_name
        super().__init__(message or f"Database '{database_name}' does not exist.")


class UnrecoverableError(ReplicationError):
    """Raised when a catalog, messaging or storage call fails for any other reason."""


class PartialBatchError(ReplicationError):
    """Raised when some items of a chunked partition create/delete failed."""

    def __init__(self, message: str, failed_values: list[list[str]] | None = None):
        self.failed_values = failed_values or []
        super().__init__(message)
