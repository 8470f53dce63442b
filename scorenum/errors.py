"""Error types raised by the enumeration engine."""


class EnumerationError(Exception):
    """Base class for every error raised by a codec."""


class SchemaError(EnumerationError):
    """A codec was composed with missing or inconsistent cardinality."""


class EncodeError(EnumerationError, ValueError):
    """A value lies outside the domain of the codec asked to encode it."""


class DecodeError(EnumerationError, ValueError):
    """An integer cannot be mapped back into the codec's domain."""


class RoundTripError(EnumerationError, AssertionError):
    """Re-encoding a decoded value did not reproduce the original integer."""

    def __init__(self, code: int, reencoded: int) -> None:
        super().__init__(f"Round trip mismatch: decoded {code} re-encodes to {reencoded}.")
        self.code = code
        self.reencoded = reencoded
