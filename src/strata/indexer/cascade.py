"""Cascade re-justification queue.

When an entity's intent drifts, the justifications of the code that calls it
may be stale too. The queue walks callers breadth-first, nearest first, and
stops at hub nodes: an entity with very many callers is usually a shared
utility whose callers do not depend on its business meaning.
"""

import logging
from dataclasses import dataclass, field

from strata.store.base import GraphStore

logger = logging.getLogger(__name__)


@dataclass
class CascadeConfig:
    """Bounds for cascade traversal.

    Attributes:
        max_hops: Maximum caller distance from a changed entity
        max_entities: Cap on changed + cascaded entities
        centrality_threshold: Caller count at which an entity is a hub
    """

    max_hops: int = 2
    max_entities: int = 50
    centrality_threshold: int = 50

    def __post_init__(self) -> None:
        if self.max_hops < 0:
            raise ValueError(f"max_hops must be >= 0, got {self.max_hops}")
        if self.max_entities <= 0:
            raise ValueError(f"max_entities must be positive, got {self.max_entities}")
        if self.centrality_threshold <= 0:
            raise ValueError(
                f"centrality_threshold must be positive, got {self.centrality_threshold}"
            )


@dataclass
class CascadeResult:
    re_justify_queue: list[str] = field(default_factory=list)
    cascade_queue: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def all_entity_ids(self) -> list[str]:
        return self.re_justify_queue + self.cascade_queue


def build_cascade_queue(
    changed_ids: list[str],
    graph_store: GraphStore,
    org_id: str = "",
    config: CascadeConfig | None = None,
) -> CascadeResult:
    """Collect callers of changed entities that need re-justification.

    Args:
        changed_ids: Entities whose intent changed
        graph_store: Store used for caller lookups
        org_id: Owning organization
        config: Traversal bounds (defaults to CascadeConfig())

    Returns:
        CascadeResult with the changed ids, the cascaded callers in BFS order,
        and the hub entities whose callers were not traversed
    """
    cfg = config or CascadeConfig()
    result = CascadeResult(re_justify_queue=list(dict.fromkeys(changed_ids)))
    visited = set(result.re_justify_queue)

    def full() -> bool:
        return len(result.re_justify_queue) + len(result.cascade_queue) >= cfg.max_entities

    frontier = list(result.re_justify_queue)
    for _hop in range(cfg.max_hops):
        if full() or not frontier:
            break
        next_frontier: list[str] = []

        for entity_id in frontier:
            if full():
                break
            callers = graph_store.get_callers_of(org_id, entity_id)
            if len(callers) >= cfg.centrality_threshold:
                result.skipped.append(entity_id)
                continue

            for caller in callers:
                if caller.id in visited:
                    continue
                visited.add(caller.id)
                result.cascade_queue.append(caller.id)
                next_frontier.append(caller.id)
                if full():
                    break

        frontier = next_frontier

    logger.debug(
        "Cascade: %d changed, %d cascaded, %d hubs skipped",
        len(result.re_justify_queue),
        len(result.cascade_queue),
        len(result.skipped),
    )
    return result
