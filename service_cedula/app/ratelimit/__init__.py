"""
Rate limiting package for the Cédula Service.

Holds the distributed two-window token bucket, its in-process fallback and
client key extraction.
"""

from .token_bucket import (
    AdmissionController,
    AdmissionDecision,
    Bandwidth,
    LocalTokenBucket,
    build_bandwidths,
    get_client_key,
)

__all__ = [
    "AdmissionController",
    "AdmissionDecision",
    "Bandwidth",
    "LocalTokenBucket",
    "build_bandwidths",
    "get_client_key",
]
