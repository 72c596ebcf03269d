"""Graph context for justification prompts.

Each entity's prompt is anchored in its N-hop neighbourhood: who calls it,
what it calls, and how connected it is. Neighbourhoods for a whole batch
are fetched with a single ``get_batch_subgraphs`` query.
"""

import logging
from dataclasses import dataclass, field

from strata.models.graph import Edge, Entity
from strata.store.base import GraphQueryError, GraphStore

logger = logging.getLogger(__name__)

SUMMARY_NEIGHBOR_LIMIT = 5


@dataclass
class Neighbor:
    id: str
    name: str
    kind: str
    direction: str  # "inbound" or "outbound"
    file_path: str = ""


@dataclass
class GraphContext:
    """Graph neighbourhood of one entity.

    Attributes:
        entity_id: Entity the context describes
        neighbors: Entities in the neighbourhood, excluding the entity itself
        centrality: Approximate degree centrality in [0, 1]
        subgraph_summary: One-line description for the prompt
    """

    entity_id: str
    neighbors: list[Neighbor] = field(default_factory=list)
    centrality: float = 0.0
    subgraph_summary: str = ""


def build_graph_contexts(
    entities: list[Entity],
    graph_store: GraphStore,
    org_id: str,
    depth: int = 2,
) -> dict[str, GraphContext]:
    """Build contexts for a batch of entities.

    Raises:
        GraphQueryError: If the subgraph query fails
    """
    try:
        subgraphs = graph_store.get_batch_subgraphs(org_id, [e.id for e in entities], depth)
    except GraphQueryError:
        raise
    except Exception as e:
        raise GraphQueryError("get_batch_subgraphs", str(e)) from e

    contexts: dict[str, GraphContext] = {}
    for entity in entities:
        subgraph = subgraphs.get(entity.id)
        sub_entities = subgraph.entities if subgraph else []
        sub_edges = subgraph.edges if subgraph else []

        neighbors = [
            _neighbor(entity.id, other, sub_edges)
            for other in sub_entities
            if other.id != entity.id
        ]
        contexts[entity.id] = GraphContext(
            entity_id=entity.id,
            neighbors=neighbors,
            centrality=compute_approx_centrality(entity.id, sub_entities, sub_edges),
            subgraph_summary=summarize_subgraph(entity, neighbors),
        )

    logger.debug("Built graph context for %d entities", len(contexts))
    return contexts


def _neighbor(entity_id: str, other: Entity, edges: list[Edge]) -> Neighbor:
    outbound = next((e for e in edges if e.from_id == entity_id and e.to_id == other.id), None)
    connecting = outbound or next(
        (e for e in edges if e.from_id == other.id and e.to_id == entity_id), None
    )

    name = other.name
    if connecting is not None and connecting.kind == "imports" and connecting.imported_symbols:
        name = f"{other.name} (imports: {', '.join(connecting.imported_symbols)})"

    return Neighbor(
        id=other.id,
        name=name,
        kind=other.kind,
        direction="outbound" if outbound is not None else "inbound",
        file_path=other.file_path,
    )


def compute_approx_centrality(entity_id: str, entities: list[Entity], edges: list[Edge]) -> float:
    """Degree centrality normalised by the maximum possible in + out degree.

    This is a cheap stand-in for betweenness centrality and only meant as a
    routing hint.
    """
    if len(entities) <= 1:
        return 0.0
    degree = sum(1 for edge in edges if edge.touches(entity_id))
    return min(degree / ((len(entities) - 1) * 2), 1.0)


def summarize_subgraph(entity: Entity, neighbors: list[Neighbor]) -> str:
    inbound = [n for n in neighbors if n.direction == "inbound"]
    outbound = [n for n in neighbors if n.direction == "outbound"]

    parts = []
    if inbound:
        parts.append(f"Called by: {_list_neighbors(inbound)}")
    if outbound:
        parts.append(f"Calls: {_list_neighbors(outbound)}")
    if not parts:
        parts.append("Isolated entity with no direct connections")

    return f"{entity.name} ({entity.kind}) in {entity.file_path}: {'. '.join(parts)}"


def _list_neighbors(neighbors: list[Neighbor]) -> str:
    text = ", ".join(f"{n.name} ({n.kind})" for n in neighbors[:SUMMARY_NEIGHBOR_LIMIT])
    extra = len(neighbors) - SUMMARY_NEIGHBOR_LIMIT
    if extra > 0:
        text += f" and {extra} more"
    return text
