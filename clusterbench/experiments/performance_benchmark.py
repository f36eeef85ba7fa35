"""
Performance benchmark experiment.

Takes a share of the validators down, drives load against the survivors for
`duration` plus a settling buffer on each side, optionally traces a
transaction and runs an online backup meanwhile, reports throughput metrics,
and finally restarts the stopped validators.
"""

import asyncio
import random
import structlog
from datetime import datetime, timedelta, timezone
from typing import Optional, Set

from clusterbench.cluster.models import Cluster, instancelist_to_set
from clusterbench.config import settings
from clusterbench.errors import BackupError, TraceError
from clusterbench.experiments.backup import BackupCoordinator, BackupHandle
from clusterbench.experiments.base import Context, Experiment
from clusterbench.experiments.faults import FaultInjector
from clusterbench.experiments.models import (
    ExperimentPlan,
    ExperimentState,
    PerformanceBenchmarkParams,
    RunWindow,
)
from clusterbench.experiments.topology import build_plan
from clusterbench.experiments.trace_capture import TraceCapture
from clusterbench.services.load.models import EmitJobRequest, LoadStats
from clusterbench.services.metrics.client import PrometheusRangeView

logger = structlog.get_logger()


class PerformanceBenchmark(Experiment):
    """
    Load test with a share of the validators stopped.

    Lifecycle: built -> faults_injected -> running -> reporting -> reverted
    -> succeeded | failed. The stopped validators are restarted whatever
    happened before, including when stopping them only partly succeeded.
    """

    def __init__(
        self,
        plan: ExperimentPlan,
        params: PerformanceBenchmarkParams,
        buffer: Optional[timedelta] = None,
        trace_capture_duration: Optional[timedelta] = None
    ):
        self.plan = plan
        self.down_validators = list(plan.down_validators)
        self.up_validators = list(plan.up_validators)
        self.up_fullnodes = list(plan.up_fullnodes)
        self.percent_nodes_down = params.percent_nodes_down
        self.duration = timedelta(seconds=params.duration)
        self.trace = params.trace
        self.tps = params.tps
        self.use_logs_for_trace = params.use_logs_for_trace
        self.backup = params.backup
        self.buffer = buffer if buffer is not None else timedelta(seconds=settings.BENCH_BUFFER_SECONDS)
        self.trace_capture_duration = trace_capture_duration or timedelta(
            seconds=settings.TRACE_CAPTURE_SECONDS
        )
        self.trace_capture: Optional[TraceCapture] = None
        self.backup_node: Optional[str] = None
        self.stats: Optional[LoadStats] = None
        super().__init__()

    @classmethod
    def build(
        cls,
        params: PerformanceBenchmarkParams,
        cluster: Cluster,
        rng: Optional[random.Random] = None,
        **kwargs
    ) -> "PerformanceBenchmark":
        """Plan the experiment against a cluster snapshot."""
        plan = build_plan(cluster, params.percent_nodes_down, rng)
        return cls(plan, params, **kwargs)

    @property
    def window(self) -> timedelta:
        """Load window: the measured duration plus a buffer on each side."""
        return self.duration + self.buffer * 2

    def affected_validators(self) -> Set[str]:
        return instancelist_to_set(self.down_validators)

    def deadline(self) -> timedelta:
        return timedelta(seconds=settings.DEADLINE_BASE_SECONDS) + self.duration

    def emit_job_request(self, context: Context) -> EmitJobRequest:
        instances = self.up_validators if context.emit_to_validator else self.up_fullnodes
        if self.tps is not None:
            return EmitJobRequest.fixed_tps(instances, self.tps)
        return EmitJobRequest.for_instances(instances, context.global_emit_job_request)

    async def run(self, context: Context) -> None:
        faults = FaultInjector(context.cluster_control, self.down_validators)
        backup: Optional[BackupHandle] = None
        primary_error: Optional[BaseException] = None

        try:
            await faults.inject()
            self._set_state(ExperimentState.FAULTS_INJECTED)

            backup = self.maybe_start_backup(context)
            window = self.window
            emit_txn = context.tx_emitter.emit_txn_for(window, self.emit_job_request(context))

            self.trace_capture = TraceCapture(
                trace_tail=context.trace_tail,
                log_trace_client=context.log_trace_client,
                enabled=self.trace,
                use_logs=self.use_logs_for_trace,
                delay=self.buffer,
                capture_duration=self.trace_capture_duration,
                rng=context.rng,
            )
            capture_trace = self.trace_capture.capture(self.up_validators + self.up_fullnodes)

            self._set_state(ExperimentState.RUNNING)
            start = datetime.now(timezone.utc)
            stats, live_trace = await asyncio.gather(
                emit_txn, capture_trace, return_exceptions=True
            )
            if isinstance(stats, BaseException):
                raise stats
            if isinstance(live_trace, BaseException):
                logger.warning("Trace capture failed", error=str(live_trace))
                live_trace = None
            self.stats = stats

            self._set_state(ExperimentState.REPORTING)
            trace = await self.trace_capture.resolve(live_trace, start)
            if trace is not None:
                try:
                    self.trace_capture.process(trace)
                except TraceError as e:
                    logger.error("Trace processing failed", experiment=str(self), error=str(e))

            await self.report(context, self.buffer, window, stats)

        except BaseException as e:
            primary_error = e
            raise

        finally:
            try:
                if backup is not None:
                    await backup.cancel()
            finally:
                await self.revert_faults(faults, primary_error)

    async def revert_faults(
        self,
        faults: FaultInjector,
        primary_error: Optional[BaseException]
    ) -> None:
        """
        Restart the down validators and settle the final state.

        A cancellation arriving meanwhile does not interrupt the restarts; it
        is re-raised once they have finished.
        """
        revert = asyncio.ensure_future(faults.revert())
        cancelled: Optional[asyncio.CancelledError] = None
        while not revert.done():
            try:
                await asyncio.wait({revert})
            except asyncio.CancelledError as e:
                cancelled = e
        if primary_error is None:
            primary_error = cancelled

        revert_error = revert.exception()
        if revert_error is not None:
            self.revert_error = revert_error
            self._set_state(ExperimentState.FAILED)
            if primary_error is None:
                raise revert_error
            logger.warning(
                "Fault reversion failed after run error",
                experiment=str(self),
                error=str(primary_error) or type(primary_error).__name__,
                revert_error=str(revert_error)
            )
        else:
            self._set_state(ExperimentState.REVERTED)
            self._set_state(
                ExperimentState.FAILED if primary_error is not None
                else ExperimentState.SUCCEEDED
            )

        if cancelled is not None:
            raise cancelled

    def maybe_start_backup(self, context: Context) -> Optional[BackupHandle]:
        if not self.backup:
            return None
        try:
            handle = BackupCoordinator(context.cluster_control, rng=context.rng).start(
                self.up_validators
            )
        except BackupError as e:
            logger.warning("Backup not started", experiment=str(self), error=str(e))
            return None
        self.backup_node = handle.node.name
        return handle

    async def report(
        self,
        context: Context,
        buffer: timedelta,
        window: timedelta,
        stats: LoadStats
    ) -> None:
        """Report derived metrics over the settled part of the load window."""
        run_window = RunWindow.ending_now(window, buffer)
        logger.info(
            "Link to dashboard",
            url=context.prometheus.link_to_dashboard(run_window.start, run_window.end)
        )

        pv = PrometheusRangeView(context.prometheus, run_window.start, run_window.end)

        # Transaction stats
        avg_txns_per_block = await pv.avg_txns_per_block()
        if avg_txns_per_block is not None:
            context.report.report_metric(self, "avg_txns_per_block", avg_txns_per_block)
        context.report.report_txn_stats(str(self), stats, window)

        # Backup throughput, only when a backup actually ran
        if self.backup and self.backup_node is not None:
            bytes_per_sec = await pv.avg_backup_bytes_per_second()
            if bytes_per_sec is None:
                bytes_per_sec = 0.0
            context.report.report_metric(self, "avg_backup_bytes_per_second", bytes_per_sec)
            context.report.report_text(
                f"{self}: Average backup throughput: {bytes_per_sec:.0f} Bps"
            )

    def __str__(self) -> str:
        if self.tps is not None:
            return f"fixed tps {self.tps}"
        if self.percent_nodes_down == 0:
            return "all up"
        return f"{self.percent_nodes_down}% down"
