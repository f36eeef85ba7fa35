"""
Trace post-processing.

Captured traces arrive as (node, event) pairs from either backend. They are
normalized into one timestamp-ordered sequence, a representative operation is
picked from it, and that operation's timeline is rendered to the log.
"""

import random
import structlog
from typing import List, Optional

from clusterbench.services.tracing.models import NodeTrace, TraceEvent

logger = structlog.get_logger()

SUBMIT_STAGE = "json-rpc::submit"
TXN_PREFIX = "txn::"


def normalize_events(trace: NodeTrace) -> List[TraceEvent]:
    """
    Tag every event with its source peer and merge into one sequence.

    The sort is stable: events sharing a timestamp keep their capture order.
    """
    events = []
    for node, event in trace:
        payload = dict(event.payload)
        payload["peer"] = node
        events.append(event.model_copy(update={"payload": payload}))
    events.sort(key=lambda e: e.timestamp)
    return events


def random_node(
    events: List[TraceEvent],
    stage: str = SUBMIT_STAGE,
    prefix: str = TXN_PREFIX,
    rng: Optional[random.Random] = None
) -> Optional[str]:
    """Pick a random traced operation among events submitted at `stage`."""
    candidates = [
        e.trace_node for e in events
        if e.stage == stage and e.trace_node.startswith(prefix)
    ]
    if not candidates:
        return None
    return (rng or random.Random()).choice(candidates)


def trace_node(events: List[TraceEvent], node: str) -> List[TraceEvent]:
    """Log the end-to-end timeline of one traced operation."""
    timeline = [e for e in events if e.trace_node == node]
    if not timeline:
        return timeline

    origin = timeline[0].timestamp
    for event in timeline:
        logger.info(
            "Trace",
            node=node,
            offset_ms=event.timestamp - origin,
            peer=event.peer,
            stage=event.stage,
            name=event.name
        )
    return timeline
