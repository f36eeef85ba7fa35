"""Cluster control plane client."""
import structlog
import httpx
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from clusterbench.cluster.models import Cluster, Node, NodeRole
from clusterbench.config import settings
from clusterbench.errors import CommandError

logger = structlog.get_logger()

# Exit status of a process terminated with SIGKILL
KILLED_EXIT_CODE = 137

transport_retry = retry(
    retry=retry_if_exception_type(httpx.TransportError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
    reraise=True,
)


class ClusterControl(ABC):
    """Abstract control plane: lists members and runs commands on them."""

    @abstractmethod
    async def list_validators(self) -> List[Node]:
        """List validator nodes."""
        pass

    @abstractmethod
    async def list_fullnodes(self) -> List[Node]:
        """List fullnodes paired with validators."""
        pass

    @abstractmethod
    async def stop(self, node: Node) -> None:
        """Stop the node's service."""
        pass

    @abstractmethod
    async def start(self, node: Node, wipe: bool = False) -> None:
        """Start the node's service, optionally wiping its data first."""
        pass

    @abstractmethod
    async def exec(
        self,
        node: Node,
        command: str,
        allow_failure_signal: bool = False
    ) -> str:
        """
        Run a shell command on the node.

        Args:
            node: Target node
            command: Shell command line
            allow_failure_signal: The command may legitimately be killed by a
                signal; the control plane should not treat that as an error

        Returns:
            The command's stdout

        Raises:
            CommandError: if the command exits non-zero
        """
        pass

    async def snapshot(self) -> Cluster:
        """Build a cluster snapshot from the current membership."""
        return Cluster(
            validators=await self.list_validators(),
            fullnodes=await self.list_fullnodes(),
        )


class HttpClusterControl(ClusterControl):
    """Control plane reached over its REST API."""

    def __init__(
        self,
        base_url: str = None,
        timeout: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = (base_url or settings.CONTROL_PLANE_URL).rstrip("/")
        self.timeout = timeout or settings.CONTROL_PLANE_TIMEOUT_SECONDS
        self._transport = transport

    def _client(self, **kwargs) -> httpx.AsyncClient:
        kwargs.setdefault("timeout", self.timeout)
        return httpx.AsyncClient(
            base_url=self.base_url,
            transport=self._transport,
            **kwargs
        )

    async def list_validators(self) -> List[Node]:
        return await self._list_nodes(NodeRole.VALIDATOR)

    async def list_fullnodes(self) -> List[Node]:
        return await self._list_nodes(NodeRole.FULLNODE)

    @transport_retry
    async def _list_nodes(self, role: NodeRole) -> List[Node]:
        async with self._client() as client:
            response = await client.get("/nodes", params={"role": role.value})
            response.raise_for_status()
            return [
                Node(**{**item, "role": role})
                for item in response.json().get("nodes", [])
            ]

    async def stop(self, node: Node) -> None:
        logger.info("Stopping node", node=node.name)
        await self._post(node, f"/nodes/{node.name}/stop", {})

    async def start(self, node: Node, wipe: bool = False) -> None:
        logger.info("Starting node", node=node.name, wipe=wipe)
        await self._post(node, f"/nodes/{node.name}/start", {"wipe": wipe})

    async def exec(
        self,
        node: Node,
        command: str,
        allow_failure_signal: bool = False
    ) -> str:
        # No client timeout: commands such as the backup loop run until killed
        async with self._client(timeout=None) as client:
            try:
                response = await client.post(
                    f"/nodes/{node.name}/exec",
                    json={
                        "command": command,
                        "allow_failure_signal": allow_failure_signal,
                    },
                )
                response.raise_for_status()
            except httpx.RequestError as e:
                raise CommandError(node.name, command, str(e)) from e
            except httpx.HTTPStatusError as e:
                raise CommandError(node.name, command, e.response.text) from e

        result: Dict[str, Any] = response.json()
        exit_code = result.get("exit_code", 0)
        if exit_code != 0:
            raise CommandError(
                node.name,
                command,
                result.get("stderr") or "command failed",
                exit_code=exit_code,
            )
        return result.get("stdout", "")

    @transport_retry
    async def _send(self, path: str, payload: Dict[str, Any]) -> None:
        async with self._client() as client:
            response = await client.post(path, json=payload)
            response.raise_for_status()

    async def _post(self, node: Node, path: str, payload: Dict[str, Any]) -> None:
        try:
            await self._send(path, payload)
        except httpx.RequestError as e:
            raise CommandError(node.name, path, str(e)) from e
        except httpx.HTTPStatusError as e:
            raise CommandError(node.name, path, e.response.text) from e
