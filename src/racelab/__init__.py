"""racelab: reproducible race conditions and their remedies."""

__version__ = "0.1.0"
