"""Error taxonomy for the counting engine."""


class TallyError(Exception):
    """Base class for engine errors."""


class StoreUnavailable(TallyError):
    """The backing Redis store could not be reached or rejected a command.

    Recording paths swallow and log it; the rate limiter fails open.
    """


class MalformedStoredValue(TallyError):
    """A value read back from Redis could not be parsed."""

    def __init__(self, key: str, value: object) -> None:
        super().__init__(f"Malformed value at {key!r}: {value!r}")
        self.key = key
        self.value = value


class ConfigurationError(TallyError, ValueError):
    """Invalid limiter or engine settings, raised at setup time."""


__all__ = [
    "ConfigurationError",
    "MalformedStoredValue",
    "StoreUnavailable",
    "TallyError",
]
