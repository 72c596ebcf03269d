"""Incremental indexing support: identity hashing, change detection, edge repair."""

from strata.indexer.hashing import edge_hash, entity_hash

__all__ = ["edge_hash", "entity_hash"]
