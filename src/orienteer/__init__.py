"""Hunt progression and proximity check-in engine."""

__version__ = "0.1.0"
