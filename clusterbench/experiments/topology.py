"""Selection of the validators to take down and the nodes to load."""
import random
import structlog
from typing import List, Optional

from clusterbench.cluster.models import Cluster, Node
from clusterbench.experiments.models import ExperimentPlan

logger = structlog.get_logger()


def nodes_down_count(num_validators: int, percent_nodes_down: int) -> int:
    """floor(num_validators * percent / 100)"""
    return (num_validators * percent_nodes_down) // 100


def paired_fullnodes(validators: List[Node], fullnodes: List[Node]) -> List[Node]:
    """
    First fullnode sharing each validator's group.

    Validators without a paired fullnode contribute nothing.
    """
    paired = []
    for validator in validators:
        match = next((f for f in fullnodes if f.group == validator.group), None)
        if match is not None:
            paired.append(match)
    return paired


def build_plan(
    cluster: Cluster,
    percent_nodes_down: int,
    rng: Optional[random.Random] = None
) -> ExperimentPlan:
    """
    Split the cluster's validators into a down set and an up set.

    Args:
        cluster: Snapshot of the running cluster
        percent_nodes_down: Share of validators to stop, 0..100
        rng: Random source; pass a seeded one for reproducible splits

    Returns:
        ExperimentPlan with down validators, up validators and the up
        validators' paired fullnodes
    """
    count = nodes_down_count(len(cluster.validators), percent_nodes_down)
    down, up = cluster.split_n_validators_random(count, rng)
    up_validators = up.validator_instances()
    up_fullnodes = paired_fullnodes(up_validators, cluster.fullnode_instances())

    logger.info(
        "Built experiment plan",
        down=[n.name for n in down.validators],
        up_validators=len(up_validators),
        up_fullnodes=len(up_fullnodes)
    )
    return ExperimentPlan(
        down_validators=down.validator_instances(),
        up_validators=up_validators,
        up_fullnodes=up_fullnodes,
    )
