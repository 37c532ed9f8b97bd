"""
Identifier validation for the Cédula Service.

Pure helpers, no I/O: anything that reaches the rate limiter, cache or
registry has already passed through here.
"""

from .cedula import NationalId, validate, clean, format_display

__all__ = ["NationalId", "validate", "clean", "format_display"]
