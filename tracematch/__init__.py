"""Post-processing of frequently travelled GPS route sections."""

__version__ = "0.0.4"