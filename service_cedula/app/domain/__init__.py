"""
Domain layer for the Cédula Service.

Holds the record/result models, view shaping and the query orchestrator
that strings the pipeline stages together.
"""

from .models import RegistryRecord, QueryRequest, View, PersonData, PhotoInfo, ShapedResult
from .shaper import ResponseShaper
from .orchestrator import QueryOrchestrator

__all__ = [
    "RegistryRecord",
    "QueryRequest",
    "View",
    "PersonData",
    "PhotoInfo",
    "ShapedResult",
    "ResponseShaper",
    "QueryOrchestrator",
]
