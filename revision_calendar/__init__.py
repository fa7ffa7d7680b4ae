"""Revision calendar: weekly view and drag-and-drop rescheduling for study timetables."""

__version__ = "0.1.0"
