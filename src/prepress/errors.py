"""
Engine Errors
=============
Local, synchronous failures raised to the immediate caller.

Quality-check failures are not errors; they become warnings in a QAReport.
"""


class PrepressError(Exception):
    """Base class for every error raised by the engine."""


class InvalidDimensions(PrepressError, ValueError):
    """Zero width/height, bad channel count, or data length mismatch."""


class InvalidRegion(PrepressError, ValueError):
    """Statistics requested over an empty or out-of-bounds region."""


class ParameterOutOfRange(PrepressError, ValueError):
    """A config value lies outside its documented bounds."""

    def __init__(self, name: str, value, low, high):
        self.name = name
        self.value = value
        self.low = low
        self.high = high
        super().__init__(f"{name}={value!r} is outside [{low}, {high}]")


class ReferenceNotReady(PrepressError, RuntimeError):
    """Reference matching requested before ReferenceStatistics was built."""
