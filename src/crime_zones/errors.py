"""Exception hierarchy for crime zone categorization."""


class CrimeZonesError(Exception):
    """Base class for all errors raised by this package."""


class MissingBoundaryError(CrimeZonesError):
    """A required named boundary has no active row."""

    def __init__(self, name: str, category: str) -> None:
        self.name = name
        self.category = category
        super().__init__(
            f"Active {category} boundary '{name}' not found. "
            f"Import or generate the {category} boundary first."
        )


class NotInitializedError(CrimeZonesError):
    """Classification was requested before the categorizer was initialized."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or "Categorizer not initialized. Call initialize() first.")


class GeometryError(CrimeZonesError, ValueError):
    """Malformed or degenerate geometry."""


class PersistenceError(CrimeZonesError):
    """The durable store failed while a batch run was in progress.

    ``processed`` is the number of records whose results were committed
    before the failing chunk.
    """

    def __init__(self, message: str, processed: int = 0) -> None:
        self.processed = processed
        super().__init__(message)
