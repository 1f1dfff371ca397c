"""Exception types shared across discovery and collection."""


class CivicFeedsError(Exception):
    """Base class for all civic feeds errors."""


class InvalidLocalityError(CivicFeedsError, ValueError):
    """City or state cannot be turned into domain candidates."""


class FeedParseError(CivicFeedsError):
    """Feed body is malformed or does not carry the markers of its format."""

    def __init__(self, feed_type: str, message: str):
        super().__init__(f"{feed_type}: {message}")
        self.feed_type = feed_type


class RunCancelled(CivicFeedsError):
    """The run context was cancelled or its deadline passed."""
