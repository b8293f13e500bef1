"""Video-to-quiz generation pipeline."""

__version__ = "0.1.0"
