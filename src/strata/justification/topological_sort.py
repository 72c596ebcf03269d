"""Bottom-up ordering of entities for justification.

Level 0 holds leaves (entities that call nothing in the set). Every later
level only depends on lower levels, so when a level is justified the
justifications of everything it calls already exist and can be quoted in
the prompt.

Only ``calls`` and ``references`` edges order entities. Cycles are broken
by forcing the remaining entity with the fewest remaining callees into a
level of its own (ties: lowest entity id).
"""

from strata.models.graph import ORDERING_EDGE_KINDS, Edge, Entity


def topological_sort_entity_ids(entities: list[Entity], edges: list[Edge]) -> list[list[str]]:
    """Partition entity ids into dependency levels.

    Args:
        entities: Entities to order
        edges: Graph edges (edges to unknown entities are ignored)

    Returns:
        Levels of entity ids, leaves first; order within a level follows
        the input order
    """
    order = list(dict.fromkeys(e.id for e in entities))
    known = set(order)
    callees: dict[str, set[str]] = {entity_id: set() for entity_id in order}

    for edge in edges:
        if edge.kind not in ORDERING_EDGE_KINDS or edge.is_self_loop:
            continue
        if edge.from_id in known and edge.to_id in known:
            callees[edge.from_id].add(edge.to_id)

    levels: list[list[str]] = []
    remaining = set(order)

    while remaining:
        pending = [i for i in order if i in remaining]
        level = [i for i in pending if not (callees[i] & remaining)]

        if not level:
            # Cycle: force the node closest to being a leaf
            forced = min(pending, key=lambda i: (len(callees[i] & remaining), i))
            level = [forced]

        remaining.difference_update(level)
        levels.append(level)

    return levels


def topological_sort_entities(entities: list[Entity], edges: list[Edge]) -> list[list[Entity]]:
    """Same as ``topological_sort_entity_ids`` but returns the entities themselves."""
    by_id = {e.id: e for e in entities}
    return [[by_id[i] for i in level] for level in topological_sort_entity_ids(entities, edges)]
