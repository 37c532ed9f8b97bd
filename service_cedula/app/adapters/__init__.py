"""
Adapters for the Cédula Service.

Contains the JCE registry HTTP client and the payload repair/parsing it
relies on.
"""

from .payload import parse_registry_payload, sanitize_payload, decode_payload
from .registry_client import RegistryClient, RetryableStatusError

__all__ = [
    "RegistryClient",
    "RetryableStatusError",
    "parse_registry_payload",
    "sanitize_payload",
    "decode_payload",
]
