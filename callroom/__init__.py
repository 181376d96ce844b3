"""callroom - multi-party call session orchestration."""

__version__ = "0.1.0"
