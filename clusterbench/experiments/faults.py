"""Fault injection by stopping validators, and its reversion."""
import asyncio
import structlog
from typing import List

from clusterbench.cluster.control import ClusterControl
from clusterbench.cluster.models import Node
from clusterbench.errors import FaultInjectionError, FaultReversionError

logger = structlog.get_logger()


class FaultInjector:
    """
    Stops a fixed set of nodes and later restarts them.

    Both directions fan out over all nodes concurrently. Injection is
    all-or-nothing: a single failed stop fails the injection. Reversion tries
    every node before reporting the ones that failed.
    """

    def __init__(self, control: ClusterControl, nodes: List[Node]):
        self.control = control
        self.nodes = list(nodes)

    async def inject(self) -> None:
        if not self.nodes:
            return

        logger.info("Injecting faults", nodes=[n.name for n in self.nodes])
        results = await asyncio.gather(
            *(self.control.stop(node) for node in self.nodes),
            return_exceptions=True
        )
        failures = [
            (node, result) for node, result in zip(self.nodes, results)
            if isinstance(result, BaseException)
        ]
        if failures:
            node, error = failures[0]
            logger.error(
                "Fault injection failed",
                failed=[n.name for n, _ in failures],
                error=str(error)
            )
            raise FaultInjectionError(f"Failed to stop {node.name}: {error}") from error

        logger.info("Faults injected", nodes=len(self.nodes))

    async def revert(self) -> None:
        if not self.nodes:
            return

        logger.info("Reverting faults", nodes=[n.name for n in self.nodes])
        results = await asyncio.gather(
            *(self.control.start(node, wipe=False) for node in self.nodes),
            return_exceptions=True
        )
        failed_nodes = []
        errors = []
        for node, result in zip(self.nodes, results):
            if isinstance(result, BaseException):
                failed_nodes.append(node.name)
                errors.append(result)

        if failed_nodes:
            logger.error("Fault reversion failed", failed=failed_nodes)
            raise FaultReversionError(failed_nodes, errors)

        logger.info("Faults reverted", nodes=len(self.nodes))
