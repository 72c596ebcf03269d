"""Graph store port.

The pipeline never talks to a database directly. Everything it needs from
the knowledge graph, and everything it writes back, goes through
``GraphStore``. Implementations raise ``GraphQueryError`` for any backend
failure so the orchestrator can retry uniformly.
"""

from abc import ABC, abstractmethod

from strata.models.graph import Edge, Entity, Subgraph
from strata.models.justification import DriftScore, FeatureAggregation, Justification


class GraphQueryError(Exception):
    """Raised when a graph store query or write fails."""

    def __init__(self, operation: str, message: str) -> None:
        self.operation = operation
        super().__init__(f"{operation} failed: {message}")


class GraphStore(ABC):
    """Abstract knowledge graph store."""

    # =========================================================================
    # Reads
    # =========================================================================

    @abstractmethod
    def get_entity(self, org_id: str, entity_id: str) -> Entity | None: ...

    @abstractmethod
    def get_all_entities(self, org_id: str, repo_id: str) -> list[Entity]: ...

    @abstractmethod
    def get_all_edges(self, org_id: str, repo_id: str) -> list[Edge]: ...

    @abstractmethod
    def get_batch_subgraphs(
        self, org_id: str, entity_ids: list[str], depth: int = 2
    ) -> dict[str, Subgraph]:
        """Return the ``depth``-hop neighbourhood of every requested entity.

        Implementations must answer the whole batch with a single query.
        """

    @abstractmethod
    def get_edges_for_entities(self, org_id: str, entity_ids: list[str]) -> list[Edge]:
        """Return every edge with at least one endpoint in ``entity_ids``."""

    @abstractmethod
    def get_callers_of(self, org_id: str, entity_id: str) -> list[Entity]:
        """Return entities with a ``calls`` edge into ``entity_id``."""

    @abstractmethod
    def find_broken_edges(self, org_id: str, repo_id: str) -> list[Edge]:
        """Return edges whose endpoints no longer exist."""

    @abstractmethod
    def get_justification(self, org_id: str, entity_id: str) -> Justification | None:
        """Return the current (open) justification of an entity."""

    @abstractmethod
    def get_justification_history(self, org_id: str, entity_id: str) -> list[Justification]:
        """Return every justification row of an entity, oldest first."""

    # =========================================================================
    # Writes
    # =========================================================================

    @abstractmethod
    def batch_delete_edges_by_entity(self, org_id: str, entity_ids: list[str]) -> int:
        """Delete every edge touching ``entity_ids``. Returns the number deleted."""

    @abstractmethod
    def delete_edges(self, org_id: str, edge_ids: list[str]) -> int:
        """Delete edges by id. Returns the number deleted."""

    @abstractmethod
    def bulk_upsert_justifications(self, org_id: str, justifications: list[Justification]) -> None:
        """Store justifications bi-temporally.

        For each entity the currently open row is closed and the new row is
        inserted. Rows are never modified in place otherwise.
        """

    @abstractmethod
    def bulk_upsert_feature_aggregations(
        self, org_id: str, features: list[FeatureAggregation]
    ) -> None: ...

    @abstractmethod
    def append_drift_scores(self, org_id: str, scores: list[DriftScore]) -> None: ...

    @abstractmethod
    def update_run_status(self, repo_id: str, status: str, message: str | None = None) -> None: ...
