"""Trace event model."""
from typing import Any, Dict, List, Tuple

from pydantic import BaseModel, Field


class TraceEvent(BaseModel):
    """One structured trace event emitted by a node."""
    name: str = Field(default="", description="Event name as emitted")
    timestamp: int = Field(description="Milliseconds since the unix epoch")
    payload: Dict[str, Any] = Field(default_factory=dict)

    @property
    def stage(self) -> str:
        return str(self.payload.get("stage", ""))

    @property
    def trace_node(self) -> str:
        """Identifier of the traced operation, e.g. txn::<hash>."""
        return str(self.payload.get("node", ""))

    @property
    def peer(self) -> str:
        return str(self.payload.get("peer", ""))


# Events tagged with the node that reported them
NodeTrace = List[Tuple[str, TraceEvent]]
