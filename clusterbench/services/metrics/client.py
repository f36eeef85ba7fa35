"""Metrics client for querying the Prometheus time-series backend."""
import math
import structlog
import httpx
from typing import Dict, List, Optional, Tuple

from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from clusterbench.config import settings

logger = structlog.get_logger()

AVG_TXNS_PER_BLOCK_QUERY = (
    "sum(rate(consensus_num_txns_per_block_sum[1m]))"
    " / sum(rate(consensus_num_txns_per_block_count[1m]))"
)
AVG_BACKUP_BYTES_PER_SECOND_QUERY = "sum(irate(backup_service_sent_bytes[1m]))"

Sample = Tuple[float, float]


class PrometheusClient:
    """Prometheus HTTP API client for range queries."""

    def __init__(
        self,
        prometheus_url: str = None,
        grafana_url: str = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.prometheus_url = (prometheus_url or settings.PROMETHEUS_URL).rstrip("/")
        self.grafana_url = (grafana_url or settings.GRAFANA_URL).rstrip("/")
        self._transport = transport

    def link_to_dashboard(self, start: int, end: int) -> str:
        """Grafana dashboard URL covering [start, end] unix seconds."""
        return (
            f"{self.grafana_url}/{settings.GRAFANA_DASHBOARD}"
            f"?from={start * 1000}&to={end * 1000}"
        )

    async def query_range(
        self,
        query: str,
        start: int,
        end: int,
        step: int = None
    ) -> Dict[str, List[Sample]]:
        """
        Run a range query.

        Returns:
            Samples per series, keyed by the series' label set. Empty when
            the query fails or matches nothing.
        """
        try:
            data = await self._fetch_range(query, start, end, step or settings.PROMETHEUS_STEP_SECONDS)
        except Exception as e:
            logger.warning("Prometheus range query failed", query=query, error=str(e))
            return {}

        series: Dict[str, List[Sample]] = {}
        if data.get("status") != "success":
            logger.warning("Prometheus returned an error", query=query, error=data.get("error"))
            return series

        for result in data.get("data", {}).get("result", []):
            key = ",".join(f"{k}={v}" for k, v in sorted(result.get("metric", {}).items()))
            samples = []
            for timestamp, value in result.get("values", []):
                try:
                    samples.append((float(timestamp), float(value)))
                except (TypeError, ValueError):
                    continue
            series[key] = samples
        return series

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
        reraise=True,
    )
    async def _fetch_range(self, query: str, start: int, end: int, step: int) -> dict:
        async with httpx.AsyncClient(timeout=10.0, transport=self._transport) as client:
            response = await client.get(
                f"{self.prometheus_url}/api/v1/query_range",
                params={
                    "query": query,
                    "start": start,
                    "end": end,
                    "step": f"{step}s"
                }
            )
            response.raise_for_status()
            return response.json()


class PrometheusRangeView:
    """Derived benchmark metrics over a fixed [start, end] window."""

    def __init__(self, client: PrometheusClient, start: int, end: int):
        self.client = client
        self.start = start
        self.end = end

    async def avg_txns_per_block(self) -> Optional[float]:
        return await self._query_avg(AVG_TXNS_PER_BLOCK_QUERY)

    async def avg_backup_bytes_per_second(self) -> Optional[float]:
        return await self._query_avg(AVG_BACKUP_BYTES_PER_SECOND_QUERY)

    async def _query_avg(self, query: str) -> Optional[float]:
        """Mean of all samples across all series, None without data."""
        series = await self.client.query_range(query, self.start, self.end)
        values = [
            value
            for samples in series.values()
            for _, value in samples
            if not math.isnan(value)
        ]
        if not values:
            return None
        return sum(values) / len(values)
