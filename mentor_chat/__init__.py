"""Realtime chat and presence backend for the student/mentor project platform."""

__version__ = "1.0.0"
