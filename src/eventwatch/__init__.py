"""eventwatch: tail an append-only event log and render new records by category."""

__version__ = "0.1.0"
