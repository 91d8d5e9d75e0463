"""
Exception types shared by all pipeline stages.
"""

from __future__ import annotations


class UntiscalError(Exception):
    """Base class for every error raised by untiscal."""


class LegendError(UntiscalError):
    """A course/room reference resolves to zero or several legend entries."""


class MalformedCalendarError(UntiscalError):
    """An event block holds zero or more than one BEGIN/END:VEVENT pair."""


class MissingFieldError(UntiscalError):
    """A required tagged field is absent from an event block."""


class SourceError(UntiscalError):
    """The timetable provider failed to deliver one date window."""
