"""Trace retrieval from the log-indexing backend (Elasticsearch)."""
import structlog
import httpx
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from pydantic import ValidationError

from clusterbench.config import settings
from clusterbench.errors import TraceQueryError
from clusterbench.services.tracing.models import NodeTrace, TraceEvent

logger = structlog.get_logger()

MAX_TRACE_EVENTS = 10000


class LogTraceClient(ABC):
    """Abstract log-index trace backend."""

    @abstractmethod
    async def get_trace(self, start: datetime, duration: timedelta) -> NodeTrace:
        """
        Fetch trace events logged in [start, start + duration).

        Raises:
            TraceQueryError: if the backend cannot be queried
        """
        pass


class ElasticsearchTraceClient(LogTraceClient):
    """Reads trace events that nodes wrote to their structured logs."""

    def __init__(
        self,
        base_url: str = None,
        index: str = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = (base_url or settings.ELASTICSEARCH_URL).rstrip("/")
        self.index = index or settings.ELASTICSEARCH_INDEX
        self._transport = transport

    def _build_query(self, start: datetime, duration: timedelta) -> Dict[str, Any]:
        end = start + duration
        return {
            "size": MAX_TRACE_EVENTS,
            "query": {
                "bool": {
                    "filter": [
                        {"exists": {"field": "trace_event"}},
                        {
                            "range": {
                                "@timestamp": {
                                    "gte": start.isoformat(),
                                    "lt": end.isoformat()
                                }
                            }
                        }
                    ]
                }
            },
            "sort": [{"@timestamp": "asc"}]
        }

    async def get_trace(self, start: datetime, duration: timedelta) -> NodeTrace:
        async with httpx.AsyncClient(timeout=30.0, transport=self._transport) as client:
            try:
                response = await client.post(
                    f"{self.base_url}/{self.index}/_search",
                    json=self._build_query(start, duration)
                )
                response.raise_for_status()
                data = response.json()
            except httpx.RequestError as e:
                raise TraceQueryError(f"Elasticsearch unreachable: {e}") from e
            except httpx.HTTPStatusError as e:
                raise TraceQueryError(f"Elasticsearch query failed: {e.response.text}") from e
            except ValueError as e:
                raise TraceQueryError(f"Elasticsearch returned a non-JSON body: {e}") from e

        if not isinstance(data, dict):
            raise TraceQueryError("Elasticsearch returned an unexpected body")

        trace: NodeTrace = []
        skipped = 0
        for hit in data.get("hits", {}).get("hits", []):
            source = hit.get("_source", {})
            peer = source.get("kubernetes", {}).get("pod_name") or source.get("peer")
            event = source.get("trace_event")
            if not peer or not event:
                continue
            try:
                trace.append((peer, TraceEvent.model_validate(event)))
            except ValidationError:
                skipped += 1

        if skipped:
            logger.warning("Skipped malformed trace events", skipped=skipped)
        logger.info("Fetched trace from log index", events=len(trace), start=start.isoformat())
        return trace
