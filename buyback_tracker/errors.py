"""Exception types raised by the buyback pipeline."""


class BuybackTrackerError(Exception):
    """Base class for all buyback tracker errors."""


class UpstreamUnavailable(BuybackTrackerError):
    """An upstream feed could not be reached or answered with an error status."""

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(f"{source} unavailable: {reason}")
        self.source = source
        self.reason = reason


class MalformedResponse(BuybackTrackerError):
    """A feed answered successfully but the body has an unexpected shape."""


class UnknownEntity(BuybackTrackerError, LookupError):
    """The requested entity key is not in the registry."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Unknown entity: {key}")
        self.key = key
