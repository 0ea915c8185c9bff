"""Duty Roster - monthly duty scheduling for medical staff."""

__version__ = "0.1.0"
