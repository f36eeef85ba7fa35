"""
Cluster topology models.

Node handles are immutable snapshots of cluster members. Any change to the
running topology goes through the control plane, never through these models.
"""

import enum
import random
from typing import List, Optional, Set, Tuple

from pydantic import BaseModel, ConfigDict, Field


class NodeRole(str, enum.Enum):
    """Role of a cluster member."""
    VALIDATOR = "validator"
    FULLNODE = "fullnode"


class Node(BaseModel):
    """Handle to one cluster member."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Unique node name, used as the peer tag")
    role: NodeRole = Field(default=NodeRole.VALIDATOR)
    group: str = Field(description="Validator group shared by paired fullnodes")
    address: str = Field(description="Host or IP the node is reachable on")

    def __str__(self) -> str:
        return self.name


class Cluster(BaseModel):
    """Snapshot of the validators and fullnodes of a running cluster."""
    validators: List[Node] = Field(default_factory=list)
    fullnodes: List[Node] = Field(default_factory=list)

    def validator_instances(self) -> List[Node]:
        return list(self.validators)

    def fullnode_instances(self) -> List[Node]:
        return list(self.fullnodes)

    def split_n_validators_random(
        self,
        count: int,
        rng: Optional[random.Random] = None
    ) -> Tuple["Cluster", "Cluster"]:
        """
        Split the validators into a random group of `count` and the rest.

        Fullnodes stay with the second cluster.

        Returns:
            (selected, remaining) clusters
        """
        if count < 0 or count > len(self.validators):
            raise ValueError(
                f"Cannot select {count} of {len(self.validators)} validators"
            )
        rng = rng or random.Random()
        selected = rng.sample(self.validators, count)
        selected_names = {node.name for node in selected}
        remaining = [n for n in self.validators if n.name not in selected_names]
        return (
            Cluster(validators=selected),
            Cluster(validators=remaining, fullnodes=self.fullnodes),
        )


def instancelist_to_set(nodes: List[Node]) -> Set[str]:
    """Names of the given nodes."""
    return {node.name for node in nodes}
