"""Live trace capture from per-node trace sidecars."""
import asyncio
import structlog
import httpx
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import List, Optional

from pydantic import ValidationError

from clusterbench.cluster.models import Node
from clusterbench.config import settings
from clusterbench.services.tracing.models import NodeTrace, TraceEvent

logger = structlog.get_logger()


class TraceTail(ABC):
    """Abstract source of live trace events."""

    @abstractmethod
    async def capture_trace(self, nodes: List[Node], duration: timedelta) -> NodeTrace:
        """Collect events emitted by `nodes` during the next `duration`."""
        pass


class HttpTraceTail(TraceTail):
    """Tails the trace sidecar running next to every node."""

    def __init__(
        self,
        port: int = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.port = port or settings.TRACE_SIDECAR_PORT
        self._transport = transport

    async def capture_trace(self, nodes: List[Node], duration: timedelta) -> NodeTrace:
        timeout = duration.total_seconds() + 10.0
        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
            per_node = await asyncio.gather(
                *(self._capture_node(client, node, duration) for node in nodes)
            )

        trace: NodeTrace = []
        for events in per_node:
            trace.extend(events)
        logger.info("Captured live trace", nodes=len(nodes), events=len(trace))
        return trace

    async def _capture_node(
        self,
        client: httpx.AsyncClient,
        node: Node,
        duration: timedelta
    ) -> NodeTrace:
        try:
            response = await client.get(
                f"http://{node.address}:{self.port}/trace",
                params={"duration_ms": int(duration.total_seconds() * 1000)}
            )
            response.raise_for_status()
            return [
                (node.name, TraceEvent.model_validate(item))
                for item in response.json().get("events", [])
            ]
        except (httpx.HTTPError, ValidationError, ValueError, AttributeError) as e:
            # One bad sidecar must not lose the other nodes' events
            logger.warning("Trace sidecar unavailable", node=node.name, error=str(e))
            return []
