"""Load engine client for driving transaction load."""
import structlog
import httpx
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Optional

from clusterbench.config import settings
from clusterbench.errors import LoadDriverError
from clusterbench.services.load.models import EmitJobRequest, LoadStats

logger = structlog.get_logger()


class LoadEngine(ABC):
    """Abstract base class for load engines."""

    @abstractmethod
    async def emit_txn_for(
        self,
        duration: timedelta,
        request: EmitJobRequest
    ) -> LoadStats:
        """
        Drive `request` for `duration` and return the aggregate stats.

        Raises:
            LoadDriverError: if the engine cannot run the job
        """
        pass


class HttpLoadEngine(LoadEngine):
    """Transaction emitter service reached over HTTP."""

    def __init__(
        self,
        base_url: str = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = (base_url or settings.LOAD_ENGINE_URL).rstrip("/")
        self._transport = transport

    async def emit_txn_for(
        self,
        duration: timedelta,
        request: EmitJobRequest
    ) -> LoadStats:
        if not request.instances:
            raise LoadDriverError("No target instances for load job")

        logger.info(
            "Emitting transactions",
            targets=[n.name for n in request.instances],
            mode=request.mode.value,
            target_tps=request.target_tps,
            duration_seconds=duration.total_seconds()
        )

        # The call blocks for the whole window
        timeout = duration.total_seconds() + 60.0
        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
            try:
                response = await client.post(
                    f"{self.base_url}/api/emit",
                    json={
                        "duration_seconds": duration.total_seconds(),
                        "request": request.model_dump(mode="json"),
                    },
                )
                response.raise_for_status()
            except httpx.RequestError as e:
                raise LoadDriverError(f"Load engine unreachable: {e}") from e
            except httpx.HTTPStatusError as e:
                raise LoadDriverError(f"Load engine failed: {e.response.text}") from e

        stats = LoadStats.model_validate(response.json())
        logger.info(
            "Load window finished",
            submitted=stats.submitted,
            committed=stats.committed,
            expired=stats.expired
        )
        return stats
