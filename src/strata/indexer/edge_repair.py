"""Edge repair after incremental re-indexing.

Removes edges left dangling by deleted entities. Repair never creates edges:
new edges are produced by re-indexing the changed files, not by this step.
Running it twice on the same diff deletes nothing the second time.
"""

import logging
from dataclasses import dataclass

from strata.models.graph import EntityDiff
from strata.store.base import GraphStore

logger = logging.getLogger(__name__)


@dataclass
class EdgeRepairResult:
    edges_created: int = 0
    edges_deleted: int = 0


def repair_edges(
    diff: EntityDiff, graph_store: GraphStore, org_id: str = "", repo_id: str = ""
) -> EdgeRepairResult:
    """Delete edges that point at missing entities.

    Edges touching the diff's deleted entities are removed first. Edges of
    updated entities whose other endpoint no longer exists in the store
    (left behind by an earlier run) are removed second.

    Args:
        diff: Entity diff from the incremental index
        graph_store: Store to repair
        org_id: Owning organization
        repo_id: Repository the diff belongs to

    Returns:
        EdgeRepairResult (``edges_created`` is always 0)
    """
    result = EdgeRepairResult()
    deleted_ids = diff.deleted_ids

    if deleted_ids:
        result.edges_deleted += graph_store.batch_delete_edges_by_entity(
            org_id, sorted(deleted_ids)
        )

    if diff.updated:
        updated_ids = {e.id for e in diff.updated}
        stale = [
            edge.id
            for edge in graph_store.find_broken_edges(org_id, repo_id)
            if edge.from_id in updated_ids or edge.to_id in updated_ids
        ]
        if stale:
            result.edges_deleted += graph_store.delete_edges(org_id, stale)

    if result.edges_deleted:
        logger.info("Edge repair removed %d dangling edges", result.edges_deleted)
    return result
