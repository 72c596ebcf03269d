"""Graph store port and implementations."""

from strata.store.base import GraphQueryError, GraphStore
from strata.store.memory import InMemoryGraphStore

__all__ = ["GraphQueryError", "GraphStore", "InMemoryGraphStore"]
