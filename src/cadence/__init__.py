"""
Cadence

Live two-party conversation transcription with speaker turns and
communication-quality analytics.
"""

__version__ = "0.1.0"
