"""Contact engagement analysis for email interaction histories."""

__version__ = "0.1.0"
