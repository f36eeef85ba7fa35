"""Exception hierarchy for benchmark runs."""
from typing import List, Optional


class ClusterBenchError(Exception):
    """Base class for all benchmark errors."""


class CommandError(ClusterBenchError):
    """A command issued through the cluster control plane failed."""

    def __init__(self, node: str, command: str, message: str, exit_code: Optional[int] = None):
        self.node = node
        self.command = command
        self.exit_code = exit_code
        super().__init__(f"{node}: {message} (exit code {exit_code})")


class FaultInjectionError(ClusterBenchError):
    """At least one down node could not be stopped."""


class FaultReversionError(ClusterBenchError):
    """At least one down node could not be restarted."""

    def __init__(self, failed_nodes: List[str], errors: List[BaseException]):
        self.failed_nodes = failed_nodes
        self.errors = errors
        details = "; ".join(str(e) for e in errors)
        super().__init__(f"Failed to restart {', '.join(failed_nodes)}: {details}")


class LoadDriverError(ClusterBenchError):
    """The load engine could not drive the requested job."""


class TraceError(ClusterBenchError):
    """The captured trace could not be processed."""


class TraceQueryError(TraceError):
    """The log-index trace backend could not be queried."""


class BackupError(ClusterBenchError):
    """The background backup could not be started."""


class ExperimentTimeoutError(ClusterBenchError):
    """The experiment exceeded its deadline."""
