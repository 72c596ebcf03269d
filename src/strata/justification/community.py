"""Louvain community detection over the entity graph.

Communities are a pre-justification signal: the label of the cluster an
entity belongs to ("processPayment, validateCard, StripeAdapter (12
entities)") tells the model which part of the system it is looking at.
"""

from dataclasses import dataclass, field

import networkx as nx

from strata.models.graph import Edge, Entity

MIN_COMMUNITY_SIZE = 3
LABEL_ENTITY_COUNT = 5
LOUVAIN_SEED = 42


@dataclass
class CommunityInfo:
    label: str
    entity_count: int
    top_entities: list[str] = field(default_factory=list)


@dataclass
class CommunityResult:
    """Community assignments.

    Attributes:
        assignments: entity id -> community id (every entity with an edge)
        communities: community id -> info, only for communities of 3+ entities
        total_communities: Number of communities found, including small ones
    """

    assignments: dict[str, int] = field(default_factory=dict)
    communities: dict[int, CommunityInfo] = field(default_factory=dict)
    total_communities: int = 0


def build_undirected_graph(entities: list[Entity], edges: list[Edge]) -> nx.Graph:
    """Project entities and edges onto a simple undirected graph."""
    graph = nx.Graph()
    for entity in entities:
        graph.add_node(entity.id)
    for edge in edges:
        if edge.is_self_loop:
            continue
        if edge.from_id in graph and edge.to_id in graph:
            graph.add_edge(edge.from_id, edge.to_id)
    return graph


def detect_communities(entities: list[Entity], edges: list[Edge]) -> CommunityResult:
    """Cluster entities with Louvain modularity optimisation.

    A graph without edges yields an empty result rather than one community
    per entity.
    """
    if not entities:
        return CommunityResult()

    graph = build_undirected_graph(entities, edges)
    if graph.number_of_edges() == 0:
        return CommunityResult()

    clusters = nx.community.louvain_communities(graph, seed=LOUVAIN_SEED)
    by_id = {e.id: e for e in entities}

    result = CommunityResult(total_communities=len(clusters))
    for community_id, members in enumerate(clusters):
        for entity_id in members:
            result.assignments[entity_id] = community_id

        if len(members) < MIN_COMMUNITY_SIZE:
            continue

        ranked = sorted(
            (by_id[i] for i in members if i in by_id),
            key=lambda e: (-(e.pagerank_percentile or 0), e.name),
        )
        top = [e.name for e in ranked[:LABEL_ENTITY_COUNT]]
        result.communities[community_id] = CommunityInfo(
            label=f"{', '.join(top)} ({len(members)} entities)",
            entity_count=len(members),
            top_entities=top,
        )

    return result


def apply_communities(entities: list[Entity], result: CommunityResult) -> int:
    """Write community ids and labels onto entities.

    Returns:
        Number of entities that received a label
    """
    labelled = 0
    for entity in entities:
        community_id = result.assignments.get(entity.id)
        if community_id is None:
            continue
        entity.community_id = community_id
        info = result.communities.get(community_id)
        if info is not None:
            entity.community_label = info.label
            labelled += 1
    return labelled
