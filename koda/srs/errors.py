"""Error taxonomy shared by the scheduler and its store adapters."""


class KodaError(Exception):
    """Base class for all scheduling and store errors."""


class InvalidOutcome(KodaError, ValueError):
    """A review outcome failed validation before reaching the scheduler."""


class InvalidQuality(InvalidOutcome):
    """Quality rating outside the canonical 0-5 range."""

    def __init__(self, quality: object) -> None:
        super().__init__(f"Quality must be an integer in 0..5, got {quality!r}")
        self.quality = quality


class SessionComplete(KodaError):
    """A review was submitted to a session queue that is already empty."""


class NotFound(KodaError, LookupError):
    """A card, deck or session is absent from a store."""

    def __init__(self, kind: str, identifier: str) -> None:
        super().__init__(f"{kind} not found: {identifier}")
        self.kind = kind
        self.identifier = identifier


class TransientStoreFailure(KodaError):
    """A store could not be reached or failed server-side. Safe to retry."""
