class ComicSyncError(Exception):
    """Base class for errors raised by the reading-progress core."""


class InvalidRatingError(ComicSyncError, ValueError):
    def __init__(self, rating: int):
        self.rating = rating
        super().__init__(f"rating must be between 1 and 5, got {rating}")


class StaleWriteError(ComicSyncError):
    """A compare-and-set on a row version found another writer got there first."""

    def __init__(self, table: str, row_id: int, expected_version: int):
        self.table = table
        self.row_id = row_id
        self.expected_version = expected_version
        super().__init__(f"{table}#{row_id} changed since version {expected_version}")


class ConcurrencyConflictError(ComicSyncError):
    """Retries were exhausted; the caller may retry the whole request."""

    def __init__(self, operation: str, attempts: int):
        self.operation = operation
        self.attempts = attempts
        super().__init__(f"{operation} gave up after {attempts} conflicting attempts")
