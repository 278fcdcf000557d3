"""Custom exception hierarchy for recurrence_lite.

Malformed rule input never raises: it degrades to defaults and is logged.
The exceptions below are reserved for programmer errors that must fail fast.
"""


class RecurrenceLiteError(Exception):
    """Base exception for all recurrence_lite errors.

    All custom exceptions in the package inherit from this base class so
    callers can catch engine failures in one place.
    """


class InvalidDateKeyError(RecurrenceLiteError, ValueError):
    """A date-key string could not be parsed.

    Raised when:
    - The key is not in fixed-width YYYY-MM-DDTHH:MM:SS form
    - The key names a date that does not exist (e.g. 2023-02-30)
    """


class OverlayPatchError(RecurrenceLiteError):
    """An occurrence override could not be applied.

    Raised when:
    - A patch path traverses through a value that is not a mapping
    - A field that is fixed for the whole series is overridden per occurrence
    """


class UnknownSeriesError(RecurrenceLiteError, KeyError):
    """An event id is not registered with a DateBucketIndex.

    Raised when:
    - Looking up, removing or splitting a series that was never added
    """
