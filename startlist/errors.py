"""
Error types shared across Startlist.

"Nothing recorded" is never an error: store queries return None for it.
These exceptions are reserved for failures the caller has to act on.
"""


class StartlistError(Exception):
    """Base class for Startlist errors."""


class StoreUnavailable(StartlistError):
    """
    The store could not answer a query or accept a write.

    Transient infrastructure failure. Never to be read as "no data":
    treating it as an empty result would manufacture spurious starts.
    """


class InvalidReport(StartlistError):
    """A position report or beacon line is malformed and has to be dropped."""
