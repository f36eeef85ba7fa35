"""
Trace capture during the load window.

States: idle -> delaying -> capturing -> captured | empty | failed

The live capture runs concurrently with the load job and waits for the
settling buffer before tailing the sidecars. Once the load has finished, the
log index can replace the live result. The merged trace is then processed to
pick and render one representative operation.
"""

import asyncio
import random
import structlog
from datetime import datetime, timedelta
from typing import List, Optional

from clusterbench.cluster.models import Node
from clusterbench.errors import TraceError, TraceQueryError
from clusterbench.experiments.models import TraceCaptureState
from clusterbench.services.tracing.analysis import normalize_events, random_node, trace_node
from clusterbench.services.tracing.log_index import LogTraceClient
from clusterbench.services.tracing.models import NodeTrace
from clusterbench.services.tracing.tail import TraceTail

logger = structlog.get_logger()


class TraceCapture:
    """Drives one trace capture through its states."""

    def __init__(
        self,
        trace_tail: TraceTail,
        log_trace_client: LogTraceClient,
        enabled: bool,
        use_logs: bool,
        delay: timedelta,
        capture_duration: timedelta,
        rng: Optional[random.Random] = None
    ):
        self.trace_tail = trace_tail
        self.log_trace_client = log_trace_client
        self.enabled = enabled
        self.use_logs = use_logs
        self.delay = delay
        self.capture_duration = capture_duration
        self.rng = rng or random.Random()
        self.state = TraceCaptureState.IDLE
        self.states: List[TraceCaptureState] = [TraceCaptureState.IDLE]
        self.representative: Optional[str] = None

    def _set_state(self, state: TraceCaptureState) -> None:
        self.state = state
        self.states.append(state)

    async def capture(self, nodes: List[Node]) -> Optional[NodeTrace]:
        """Wait for the load to settle, then tail the live sidecars of `nodes`."""
        if not self.enabled:
            if not self.use_logs:
                self._set_state(TraceCaptureState.EMPTY)
            return None

        self._set_state(TraceCaptureState.DELAYING)
        await asyncio.sleep(self.delay.total_seconds())

        self._set_state(TraceCaptureState.CAPTURING)
        try:
            return await self.trace_tail.capture_trace(nodes, self.capture_duration)
        except Exception as e:
            logger.warning("Live trace capture failed", error=str(e))
            # The log index still decides the outcome
            if not self.use_logs:
                self._set_state(TraceCaptureState.FAILED)
            return None

    async def resolve(
        self,
        live_trace: Optional[NodeTrace],
        load_start: datetime
    ) -> Optional[NodeTrace]:
        """
        Settle on the trace to process.

        A requested log-index trace replaces the live one; if the log index
        cannot be queried there is no trace at all.
        """
        trace = live_trace
        if self.use_logs:
            if self.state != TraceCaptureState.CAPTURING:
                self._set_state(TraceCaptureState.CAPTURING)
            start = load_start + self.delay
            try:
                trace = await self.log_trace_client.get_trace(start, self.capture_duration)
            except TraceQueryError as e:
                logger.info("Failed to capture traces from log index", error=str(e))
                trace = None

        if self.state == TraceCaptureState.FAILED and trace is None:
            return None
        if not trace:
            self._set_state(TraceCaptureState.EMPTY)
            return None

        self._set_state(TraceCaptureState.CAPTURED)
        return trace

    def process(self, trace: NodeTrace) -> str:
        """
        Normalize the trace and render one representative operation.

        Raises:
            TraceError: if no submitted transaction appears in the trace
        """
        logger.info("Traced events", count=len(trace))
        events = normalize_events(trace)

        node = random_node(events, rng=self.rng)
        if node is None:
            self._set_state(TraceCaptureState.FAILED)
            raise TraceError("No trace node found")

        logger.info("Tracing", node=node)
        trace_node(events, node)
        self.representative = node
        return node
