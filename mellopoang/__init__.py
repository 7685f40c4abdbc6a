"""Live scoring contest: sessions, votes and rankings."""

__version__ = "0.1.0"
