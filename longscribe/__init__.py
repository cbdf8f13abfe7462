"""longscribe - transcription of long recordings across interchangeable backends."""

__version__ = "0.1.0"
