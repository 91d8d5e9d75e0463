"""
untiscal: turn a WebUntis timetable feed into importable .ics calendars.
"""

from untiscal.model import CalendarEvent, Course, Period, Room
from untiscal.pipeline import run_pipeline

__all__ = ["CalendarEvent", "Course", "Period", "Room", "run_pipeline"]
