"""Unit tests for the cascade re-justification queue."""

import pytest
from conftest import calls, make_entity

from strata.indexer.cascade import CascadeConfig, build_cascade_queue
from strata.store.memory import InMemoryGraphStore


class TestCascadeConfig:
    """Tests for CascadeConfig validation."""

    def test_defaults(self) -> None:
        config = CascadeConfig()
        assert (config.max_hops, config.max_entities, config.centrality_threshold) == (2, 50, 50)

    def test_invalid_values_raise(self) -> None:
        with pytest.raises(ValueError, match="max_hops"):
            CascadeConfig(max_hops=-1)
        with pytest.raises(ValueError, match="max_entities"):
            CascadeConfig(max_entities=0)
        with pytest.raises(ValueError, match="centrality_threshold"):
            CascadeConfig(centrality_threshold=0)


class TestBuildCascadeQueue:
    """Tests for build_cascade_queue."""

    @pytest.fixture
    def call_chain(self) -> tuple[InMemoryGraphStore, list]:
        # e0 <- e1 <- e2 <- e3 (e1 calls e0, ...)
        entities = [make_entity(f"e{i}") for i in range(4)]
        edges = [calls(entities[i + 1], entities[i]) for i in range(3)]
        return InMemoryGraphStore(entities, edges), entities

    def test_walks_callers_up_to_max_hops(self, call_chain) -> None:
        store, entities = call_chain
        result = build_cascade_queue([entities[0].id], store)
        assert result.re_justify_queue == [entities[0].id]
        assert result.cascade_queue == [entities[1].id, entities[2].id]
        assert result.all_entity_ids == [e.id for e in entities[:3]]

    def test_zero_hops_cascades_nothing(self, call_chain) -> None:
        store, entities = call_chain
        result = build_cascade_queue([entities[0].id], store, config=CascadeConfig(max_hops=0))
        assert result.cascade_queue == []

    def test_max_entities_bounds_the_queue(self, call_chain) -> None:
        store, entities = call_chain
        config = CascadeConfig(max_hops=5, max_entities=2)
        result = build_cascade_queue([entities[0].id], store, config=config)
        assert len(result.all_entity_ids) == 2

    def test_changed_entities_are_not_cascaded_again(self) -> None:
        a, b = make_entity("a"), make_entity("b")
        store = InMemoryGraphStore([a, b], [calls(a, b), calls(b, a)])
        result = build_cascade_queue([a.id, b.id], store)
        assert result.cascade_queue == []

    def test_hubs_are_skipped(self) -> None:
        hub = make_entity("log")
        callers = [make_entity(f"caller{i}") for i in range(3)]
        store = InMemoryGraphStore([hub, *callers], [calls(c, hub) for c in callers])

        result = build_cascade_queue([hub.id], store, config=CascadeConfig(centrality_threshold=3))

        assert result.cascade_queue == []
        assert result.skipped == [hub.id]

    def test_no_duplicates_in_diamond(self) -> None:
        leaf, left, right, top = (make_entity(n) for n in ("leaf", "left", "right", "top"))
        edges = [calls(left, leaf), calls(right, leaf), calls(top, left), calls(top, right)]
        store = InMemoryGraphStore([leaf, left, right, top], edges)

        result = build_cascade_queue([leaf.id], store)

        assert sorted(result.cascade_queue) == sorted([left.id, right.id, top.id])
        assert len(result.cascade_queue) == 3
