"""audioshelf: import audio files and folders into a personal library."""

__version__ = "0.1.0"
