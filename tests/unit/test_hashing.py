"""Unit tests for deterministic entity and edge identity hashing."""

import re

from strata.indexer.hashing import HASH_LENGTH, edge_hash, entity_hash
from strata.models import Edge, Entity

HEX = re.compile(r"^[0-9a-f]{16}$")


class TestEntityHash:
    """Tests for entity_hash."""

    def test_is_16_lowercase_hex(self) -> None:
        assert HASH_LENGTH == 16
        assert HEX.match(entity_hash("repo", "src/a.py", "function", "run"))

    def test_same_inputs_same_id(self) -> None:
        first = entity_hash("repo", "src/a.py", "function", "run", "def run()")
        second = entity_hash("repo", "src/a.py", "function", "run", "def run()")
        assert first == second

    def test_none_signature_equals_empty(self) -> None:
        assert entity_hash("repo", "a.py", "class", "A") == entity_hash(
            "repo", "a.py", "class", "A", ""
        )

    def test_each_field_changes_id(self) -> None:
        base = entity_hash("repo", "a.py", "function", "run", "sig")
        assert entity_hash("other", "a.py", "function", "run", "sig") != base
        assert entity_hash("repo", "b.py", "function", "run", "sig") != base
        assert entity_hash("repo", "a.py", "method", "run", "sig") != base
        assert entity_hash("repo", "a.py", "function", "walk", "sig") != base
        assert entity_hash("repo", "a.py", "function", "run", "sig2") != base

    def test_fields_are_not_concatenated_ambiguously(self) -> None:
        assert entity_hash("repo", "ab", "c", "d") != entity_hash("repo", "a", "bc", "d")


class TestEdgeHash:
    """Tests for edge_hash and Edge.id."""

    def test_direction_matters(self) -> None:
        assert edge_hash("a", "b", "calls") != edge_hash("b", "a", "calls")

    def test_kind_matters(self) -> None:
        assert edge_hash("a", "b", "calls") != edge_hash("a", "b", "imports")

    def test_edge_id_uses_edge_hash(self) -> None:
        edge = Edge(from_id="a", to_id="b", kind="calls")
        assert edge.id == edge_hash("a", "b", "calls")
        assert HEX.match(edge.id)


class TestEntityCreate:
    """Tests for Entity.create / from_dict id derivation."""

    def test_create_derives_id(self) -> None:
        entity = Entity.create("org", "repo", "function", "run", "a.py", signature="def run()")
        assert entity.id == entity_hash("repo", "a.py", "function", "run", "def run()")

    def test_from_dict_without_id_is_idempotent(self) -> None:
        data = {"repo_id": "repo", "kind": "function", "name": "run", "file_path": "a.py"}
        assert Entity.from_dict(data).id == Entity.from_dict(dict(data)).id

    def test_from_dict_keeps_explicit_id(self) -> None:
        entity = Entity.from_dict({"id": "abc", "kind": "function", "name": "run"})
        assert entity.id == "abc"
        assert entity.file_path == ""

    def test_round_trip(self) -> None:
        entity = Entity.create("org", "repo", "class", "Cart", "cart.py", body="class Cart: ...")
        assert Entity.from_dict(entity.to_dict()) == entity
