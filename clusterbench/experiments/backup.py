"""Best-effort online DB backup running alongside the benchmark."""
import asyncio
import random
import structlog
from typing import List, Optional

from clusterbench.cluster.control import ClusterControl, KILLED_EXIT_CODE
from clusterbench.cluster.models import Node
from clusterbench.config import settings
from clusterbench.errors import BackupError, CommandError

logger = structlog.get_logger()


class BackupHandle:
    """Cancellation token and task of a running backup."""

    def __init__(self, node: Node, task: asyncio.Task, stop: asyncio.Event):
        self.node = node
        self.task = task
        self._stop = stop

    @property
    def done(self) -> bool:
        return self.task.done()

    async def cancel(self) -> None:
        """Signal the backup to stop and wait for it to wind down."""
        self._stop.set()
        await asyncio.gather(self.task, return_exceptions=True)


async def _run_backup(
    control: ClusterControl,
    node: Node,
    command: str,
    stop: asyncio.Event
) -> None:
    """Run the backup loop on `node` until it fails or `stop` is set."""
    exec_task = asyncio.ensure_future(
        control.exec(node, command, allow_failure_signal=True)
    )
    stop_task = asyncio.ensure_future(stop.wait())
    try:
        await asyncio.wait({exec_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        exec_task.cancel()
        stop_task.cancel()
        raise

    if not exec_task.done():
        exec_task.cancel()
        await asyncio.gather(exec_task, return_exceptions=True)
        logger.info("db-backup killed.", node=node.name)
        return

    stop_task.cancel()
    try:
        exec_task.result()
    except CommandError as e:
        if e.exit_code == KILLED_EXIT_CODE:
            logger.info("db-backup killed.", node=node.name)
        else:
            logger.warning("db-backup failed", node=node.name, error=str(e))
    except Exception as e:
        logger.warning("db-backup failed", node=node.name, error=str(e))
    else:
        logger.info("db-backup exited", node=node.name)


class BackupCoordinator:
    """Launches the backup on one randomly chosen up validator."""

    def __init__(
        self,
        control: ClusterControl,
        command: str = None,
        rng: Optional[random.Random] = None
    ):
        self.control = control
        self.command = command or settings.BACKUP_COMMAND
        self.rng = rng or random.Random()

    def start(self, up_validators: List[Node]) -> BackupHandle:
        """
        Spawn the backup task.

        Raises:
            BackupError: if there is no up validator to run it on
        """
        if not up_validators:
            raise BackupError("No up validator available for backup")

        node = self.rng.choice(up_validators)
        stop = asyncio.Event()
        task = asyncio.create_task(_run_backup(self.control, node, self.command, stop))
        logger.info("Started db-backup", node=node.name)
        return BackupHandle(node, task, stop)
