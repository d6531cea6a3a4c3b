"""Non-destructive photo edit pipeline."""

__version__ = "0.1.0"
