"""In-memory graph store.

Backs the CLI (graph snapshots loaded from JSON) and the test suite. All
access is guarded by a lock because the orchestrator reads from worker
threads while justifying a level.
"""

import json
import logging
import threading
from collections import deque
from dataclasses import replace
from pathlib import Path
from typing import Any

from strata.models.graph import Edge, Entity, Subgraph
from strata.models.justification import DriftScore, FeatureAggregation, Justification, utc_now
from strata.store.base import GraphStore

logger = logging.getLogger(__name__)


class InMemoryGraphStore(GraphStore):
    """Dict-backed ``GraphStore``.

    Attributes:
        subgraph_queries: Number of ``get_batch_subgraphs`` calls served
        run_statuses: (repo_id, status, message) tuples in call order
    """

    def __init__(
        self,
        entities: list[Entity] | None = None,
        edges: list[Edge] | None = None,
    ) -> None:
        self._lock = threading.RLock()
        self._entities: dict[str, Entity] = {}
        self._edges: dict[str, Edge] = {}
        self._justifications: dict[str, list[Justification]] = {}
        self._features: dict[str, FeatureAggregation] = {}
        self._drift_scores: list[DriftScore] = []
        self.subgraph_queries = 0
        self.run_statuses: list[tuple[str, str, str | None]] = []

        for entity in entities or []:
            self.add_entity(entity)
        for edge in edges or []:
            self.add_edge(edge)

    # =========================================================================
    # Snapshot loading
    # =========================================================================

    @classmethod
    def from_snapshot(cls, data: dict[str, Any]) -> "InMemoryGraphStore":
        """Build a store from ``{"entities": [...], "edges": [...]}``."""
        return cls(
            entities=[Entity.from_dict(e) for e in data.get("entities", [])],
            edges=[Edge.from_dict(e) for e in data.get("edges", [])],
        )

    @classmethod
    def load(cls, path: Path) -> "InMemoryGraphStore":
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        store = cls.from_snapshot(data)
        logger.debug(
            "Loaded snapshot %s: %d entities, %d edges",
            path,
            len(store._entities),
            len(store._edges),
        )
        return store

    def add_entity(self, entity: Entity) -> None:
        with self._lock:
            self._entities[entity.id] = entity

    def add_edge(self, edge: Edge) -> None:
        with self._lock:
            self._edges[edge.id] = edge

    def remove_entity(self, entity_id: str) -> None:
        """Remove an entity without touching its edges (they become broken)."""
        with self._lock:
            self._entities.pop(entity_id, None)

    # =========================================================================
    # Reads
    # =========================================================================

    def get_entity(self, org_id: str, entity_id: str) -> Entity | None:
        with self._lock:
            entity = self._entities.get(entity_id)
        if entity is None or not _in_org(entity, org_id):
            return None
        return entity

    def get_all_entities(self, org_id: str, repo_id: str) -> list[Entity]:
        with self._lock:
            return [
                e
                for e in self._entities.values()
                if _in_org(e, org_id) and (not repo_id or not e.repo_id or e.repo_id == repo_id)
            ]

    def get_all_edges(self, org_id: str, repo_id: str) -> list[Edge]:
        ids = {e.id for e in self.get_all_entities(org_id, repo_id)}
        with self._lock:
            return [e for e in self._edges.values() if e.from_id in ids or e.to_id in ids]

    def get_batch_subgraphs(
        self, org_id: str, entity_ids: list[str], depth: int = 2
    ) -> dict[str, Subgraph]:
        with self._lock:
            self.subgraph_queries += 1
            adjacency: dict[str, set[str]] = {}
            for edge in self._edges.values():
                adjacency.setdefault(edge.from_id, set()).add(edge.to_id)
                adjacency.setdefault(edge.to_id, set()).add(edge.from_id)

            result: dict[str, Subgraph] = {}
            for entity_id in entity_ids:
                if entity_id not in self._entities:
                    continue
                reached = _bfs(entity_id, adjacency, depth)
                result[entity_id] = Subgraph(
                    entities=[self._entities[i] for i in reached if i in self._entities],
                    edges=[
                        e
                        for e in self._edges.values()
                        if e.from_id in reached and e.to_id in reached
                    ],
                )
            return result

    def get_edges_for_entities(self, org_id: str, entity_ids: list[str]) -> list[Edge]:
        wanted = set(entity_ids)
        with self._lock:
            return [e for e in self._edges.values() if e.from_id in wanted or e.to_id in wanted]

    def get_callers_of(self, org_id: str, entity_id: str) -> list[Entity]:
        with self._lock:
            caller_ids = [
                e.from_id
                for e in self._edges.values()
                if e.kind == "calls" and e.to_id == entity_id and not e.is_self_loop
            ]
            return [self._entities[i] for i in dict.fromkeys(caller_ids) if i in self._entities]

    def find_broken_edges(self, org_id: str, repo_id: str) -> list[Edge]:
        with self._lock:
            return [
                e
                for e in self._edges.values()
                if e.from_id not in self._entities or e.to_id not in self._entities
            ]

    def get_justification(self, org_id: str, entity_id: str) -> Justification | None:
        with self._lock:
            for row in self._justifications.get(entity_id, []):
                if row.is_current:
                    return row
        return None

    def get_justification_history(self, org_id: str, entity_id: str) -> list[Justification]:
        with self._lock:
            return list(self._justifications.get(entity_id, []))

    def get_current_justifications(self) -> list[Justification]:
        with self._lock:
            return [r for rows in self._justifications.values() for r in rows if r.is_current]

    def get_feature_aggregations(self) -> list[FeatureAggregation]:
        with self._lock:
            return list(self._features.values())

    def get_drift_scores(self, entity_id: str | None = None) -> list[DriftScore]:
        with self._lock:
            return [s for s in self._drift_scores if entity_id is None or s.entity_id == entity_id]

    # =========================================================================
    # Writes
    # =========================================================================

    def batch_delete_edges_by_entity(self, org_id: str, entity_ids: list[str]) -> int:
        doomed = set(entity_ids)
        with self._lock:
            ids = [k for k, e in self._edges.items() if e.from_id in doomed or e.to_id in doomed]
            for key in ids:
                del self._edges[key]
        return len(ids)

    def delete_edges(self, org_id: str, edge_ids: list[str]) -> int:
        deleted = 0
        with self._lock:
            for key in edge_ids:
                if self._edges.pop(key, None) is not None:
                    deleted += 1
        return deleted

    def bulk_upsert_justifications(self, org_id: str, justifications: list[Justification]) -> None:
        now = utc_now()
        with self._lock:
            for new in justifications:
                rows = self._justifications.setdefault(new.entity_id, [])
                for i, row in enumerate(rows):
                    if row.is_current:
                        rows[i] = row.closed(now)
                rows.append(replace(new, valid_from=now, valid_to=None))

    def bulk_upsert_feature_aggregations(
        self, org_id: str, features: list[FeatureAggregation]
    ) -> None:
        with self._lock:
            for feature in features:
                self._features[feature.id] = feature

    def append_drift_scores(self, org_id: str, scores: list[DriftScore]) -> None:
        with self._lock:
            self._drift_scores.extend(scores)

    def update_run_status(self, repo_id: str, status: str, message: str | None = None) -> None:
        with self._lock:
            self.run_statuses.append((repo_id, status, message))

    # =========================================================================
    # Export
    # =========================================================================

    def snapshot(self) -> dict[str, Any]:
        """Serialize entities, edges and current annotations to a dict."""
        with self._lock:
            return {
                "entities": [e.to_dict() for e in self._entities.values()],
                "edges": [e.to_dict() for e in self._edges.values()],
                "justifications": [j.to_dict() for j in self.get_current_justifications()],
                "features": [f.to_dict() for f in self._features.values()],
                "drift_scores": [d.to_dict() for d in self._drift_scores],
            }


def _in_org(entity: Entity, org_id: str) -> bool:
    return not org_id or not entity.org_id or entity.org_id == org_id


def _bfs(start: str, adjacency: dict[str, set[str]], depth: int) -> set[str]:
    seen = {start}
    queue: deque[tuple[str, int]] = deque([(start, 0)])
    while queue:
        node, dist = queue.popleft()
        if dist >= depth:
            continue
        for neighbor in adjacency.get(node, ()):
            if neighbor not in seen:
                seen.add(neighbor)
                queue.append((neighbor, dist + 1))
    return seen
