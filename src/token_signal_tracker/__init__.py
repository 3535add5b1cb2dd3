"""Token Signal Tracker - performance metrics and threshold tracking for token signals."""

__version__ = "0.1.0"
