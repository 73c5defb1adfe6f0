"""Error taxonomy shared by the catalog, lending and auth layers.

Precondition failures on normal paths are returned as ``OperationResult``
values (see ``lending.results``); the exceptions here cover malformed input,
data-consistency anomalies and infrastructure failures.
"""


class LendingError(Exception):
    pass


class ValidationError(LendingError, ValueError):
    """Malformed or missing input. Never retried."""


class InconsistentStateError(LendingError):
    """Stored counters disagree with the lending ledger."""

    def __init__(self, message: str, book_id: str | None = None) -> None:
        super().__init__(message)
        self.book_id = book_id


class ExternalServiceError(LendingError):
    """The database or a downstream service is unavailable."""
