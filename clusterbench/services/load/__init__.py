"""Load generation adapter."""

from clusterbench.services.load.models import EmitJobRequest, EmitMode, LoadRate, LoadStats
from clusterbench.services.load.client import HttpLoadEngine, LoadEngine

__all__ = [
    "EmitJobRequest",
    "EmitMode",
    "LoadRate",
    "LoadStats",
    "LoadEngine",
    "HttpLoadEngine",
]
