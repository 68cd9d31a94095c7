# corpuscleaner/errors.py
from __future__ import annotations

__all__ = ["ConfigError", "InvalidFormatError", "InvalidPatternError"]


class ConfigError(ValueError):
    """
    Raised when the cleaner configuration cannot be loaded.

    Configuration errors are fatal: they are raised before any corpus file is
    touched.
    """


class InvalidFormatError(ConfigError):
    """Malformed code point expression or inverted character range."""


class InvalidPatternError(ConfigError):
    """Regex rule pattern is empty or does not compile."""
