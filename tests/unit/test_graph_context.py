"""Unit tests for graph context construction."""

import pytest
from conftest import calls, make_entity

from strata.justification.graph_context import (
    Neighbor,
    build_graph_contexts,
    compute_approx_centrality,
    summarize_subgraph,
)
from strata.models import Edge
from strata.store.base import GraphQueryError
from strata.store.memory import InMemoryGraphStore


class BrokenStore(InMemoryGraphStore):
    def get_batch_subgraphs(self, org_id, entity_ids, depth=2):
        raise ConnectionError("graph database unreachable")


class TestBuildGraphContexts:
    """Tests for build_graph_contexts."""

    def test_one_query_for_the_whole_batch(self, chain_store, chain) -> None:
        contexts = build_graph_contexts(list(chain), chain_store, "")
        assert chain_store.subgraph_queries == 1
        assert set(contexts) == {e.id for e in chain}

    def test_neighbor_directions(self, chain_store, chain) -> None:
        top, middle, leaf = chain
        context = build_graph_contexts([middle], chain_store, "", depth=1)[middle.id]

        directions = {n.id: n.direction for n in context.neighbors}
        assert directions == {top.id: "inbound", leaf.id: "outbound"}
        assert "Called by: handle_checkout" in context.subgraph_summary
        assert "Calls: format_amount" in context.subgraph_summary

    def test_entity_is_not_its_own_neighbor(self, chain_store, chain) -> None:
        top = chain[0]
        context = build_graph_contexts([top], chain_store, "")[top.id]
        assert top.id not in {n.id for n in context.neighbors}

    def test_imports_list_symbols(self) -> None:
        module, helper = make_entity("orders", kind="file"), make_entity("helpers", kind="file")
        store = InMemoryGraphStore(
            [module, helper],
            [Edge(module.id, helper.id, "imports", imported_symbols=["slugify", "money"])],
        )
        context = build_graph_contexts([module], store, "")[module.id]
        assert context.neighbors[0].name == "helpers (imports: slugify, money)"

    def test_store_failures_become_graph_query_errors(self, chain) -> None:
        with pytest.raises(GraphQueryError, match="get_batch_subgraphs failed"):
            build_graph_contexts(list(chain), BrokenStore(list(chain)), "")

    def test_entity_missing_from_store_gets_empty_context(self) -> None:
        ghost = make_entity("ghost")
        context = build_graph_contexts([ghost], InMemoryGraphStore(), "")[ghost.id]
        assert context.neighbors == []
        assert context.centrality == 0.0
        assert "Isolated entity" in context.subgraph_summary


class TestCentrality:
    """Tests for compute_approx_centrality."""

    def test_single_entity_is_zero(self) -> None:
        a = make_entity("a")
        assert compute_approx_centrality(a.id, [a], []) == 0.0

    def test_star_center_is_most_central(self) -> None:
        hub = make_entity("hub")
        spokes = [make_entity(f"s{i}") for i in range(4)]
        edges = [calls(s, hub) for s in spokes]
        entities = [hub, *spokes]

        hub_score = compute_approx_centrality(hub.id, entities, edges)
        spoke_score = compute_approx_centrality(spokes[0].id, entities, edges)

        assert hub_score == pytest.approx(0.5)
        assert spoke_score < hub_score
        assert 0.0 <= spoke_score <= 1.0


class TestSummarizeSubgraph:
    """Tests for summarize_subgraph."""

    def test_truncates_long_neighbor_lists(self) -> None:
        entity = make_entity("router")
        neighbors = [
            Neighbor(id=str(i), name=f"n{i}", kind="function", direction="outbound")
            for i in range(8)
        ]
        summary = summarize_subgraph(entity, neighbors)
        assert "and 3 more" in summary
        assert summary.startswith("router (function) in src/app.py")
