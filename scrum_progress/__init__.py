"""Scrum progress core: sprint/story lifecycle rules and analytics aggregation."""

__version__ = "1.0.0"
