"""
Caching package for the Cédula Service.

Cache-aside storage of successful registry records in Redis.
"""

from .result_cache import ResultCache, DEFAULT_RESULT_TTL

__all__ = ["ResultCache", "DEFAULT_RESULT_TTL"]
