"""blockterm - block-based shell mixing system commands and AI requests."""

__version__ = "0.1.0"
