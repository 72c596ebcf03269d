"""Knowledge graph entities.

This module contains the raw graph records the pipeline operates on:
- Entity: A graph node representing a code construct (file, function, class, ...)
- Edge: A directed relation between two entities (calls, imports, ...)
- EntityDiff: Added / updated / deleted entities produced by an incremental index
- Subgraph: The N-hop neighbourhood returned by the graph store
"""

from dataclasses import dataclass, field
from typing import Any

# Edge kinds that express a runtime dependency of the caller on the callee
ORDERING_EDGE_KINDS = frozenset({"calls", "references"})

EDGE_KINDS = frozenset(
    {"calls", "imports", "extends", "implements", "references", "contains", "member_of"}
)


@dataclass
class Entity:
    """A code construct in the knowledge graph.

    Attributes:
        id: Deterministic entity hash (see ``strata.indexer.hashing``)
        org_id: Owning organization
        repo_id: Owning repository
        kind: Entity kind (file, function, class, interface, variable, ...)
        name: Entity name
        file_path: Repository-relative file path
        signature: Declaration signature, if any
        body: Source text, if any
        exported: Whether the entity is part of the module's public surface
        language: Source language (python, typescript, ...)
        parent: Name of the enclosing class/struct, if any
        doc: Docstring or doc comment
        pagerank_percentile: Importance annotation (0-100)
        community_id: Louvain community assignment
        community_label: Human-readable community label for prompts
    """

    id: str
    org_id: str
    repo_id: str
    kind: str
    name: str
    file_path: str
    signature: str | None = None
    body: str | None = None
    exported: bool | None = None
    language: str | None = None
    parent: str | None = None
    doc: str | None = None
    start_line: int | None = None
    end_line: int | None = None
    pagerank_percentile: float | None = None
    community_id: int | None = None
    community_label: str | None = None

    @classmethod
    def create(
        cls,
        org_id: str,
        repo_id: str,
        kind: str,
        name: str,
        file_path: str,
        signature: str | None = None,
        **kwargs: Any,
    ) -> "Entity":
        """Create an entity whose id is derived from its identifying fields."""
        from strata.indexer.hashing import entity_hash

        return cls(
            id=entity_hash(repo_id, file_path, kind, name, signature),
            org_id=org_id,
            repo_id=repo_id,
            kind=kind,
            name=name,
            file_path=file_path,
            signature=signature,
            **kwargs,
        )

    @property
    def display_name(self) -> str:
        """Name with file location, used when referencing the entity in prompts."""
        return f"{self.name} in {self.file_path}" if self.file_path else self.name

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization (None fields omitted)."""
        data = {
            "id": self.id,
            "org_id": self.org_id,
            "repo_id": self.repo_id,
            "kind": self.kind,
            "name": self.name,
            "file_path": self.file_path,
            "signature": self.signature,
            "body": self.body,
            "exported": self.exported,
            "language": self.language,
            "parent": self.parent,
            "doc": self.doc,
            "start_line": self.start_line,
            "end_line": self.end_line,
            "pagerank_percentile": self.pagerank_percentile,
            "community_id": self.community_id,
            "community_label": self.community_label,
        }
        return {k: v for k, v in data.items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Entity":
        """Create an Entity from a dictionary.

        Missing ``id`` values are derived with ``entity_hash`` so hand-written
        snapshots stay idempotent across runs.
        """
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        known.setdefault("org_id", "")
        known.setdefault("repo_id", "")
        known.setdefault("file_path", "")
        if not known.get("id"):
            known.pop("id", None)
            return cls.create(**known)
        return cls(**known)


@dataclass
class Edge:
    """A directed relation between two entities.

    Attributes:
        from_id: Source entity id
        to_id: Target entity id
        kind: Relation kind (calls, imports, extends, implements, references, ...)
        imported_symbols: Symbols carried by an ``imports`` edge
    """

    from_id: str
    to_id: str
    kind: str
    imported_symbols: list[str] = field(default_factory=list)

    @property
    def id(self) -> str:
        """Deterministic edge hash of (from, to, kind)."""
        from strata.indexer.hashing import edge_hash

        return edge_hash(self.from_id, self.to_id, self.kind)

    @property
    def is_self_loop(self) -> bool:
        return self.from_id == self.to_id

    def touches(self, entity_id: str) -> bool:
        """Return True if either endpoint is ``entity_id``."""
        return self.from_id == entity_id or self.to_id == entity_id

    def other_end(self, entity_id: str) -> str:
        """Return the endpoint opposite to ``entity_id``."""
        return self.to_id if self.from_id == entity_id else self.from_id

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "from_id": self.from_id,
            "to_id": self.to_id,
            "kind": self.kind,
        }
        if self.imported_symbols:
            data["imported_symbols"] = list(self.imported_symbols)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Edge":
        """Create an Edge from a dictionary.

        Accepts both ``from_id``/``to_id`` and the document-store style
        ``_from``/``_to`` (``collection/key``) endpoint fields.
        """
        from_id = data.get("from_id") or str(data.get("_from", "")).split("/")[-1]
        to_id = data.get("to_id") or str(data.get("_to", "")).split("/")[-1]
        return cls(
            from_id=from_id,
            to_id=to_id,
            kind=data.get("kind", "references"),
            imported_symbols=list(data.get("imported_symbols") or []),
        )


@dataclass
class EntityDiff:
    """Entity-level diff produced by re-indexing changed files.

    Attributes:
        added: Entities with ids not previously in the graph
        updated: Entities whose id is unchanged but whose content changed
        deleted: Entities no longer present
    """

    added: list[Entity] = field(default_factory=list)
    updated: list[Entity] = field(default_factory=list)
    deleted: list[Entity] = field(default_factory=list)

    @property
    def deleted_ids(self) -> set[str]:
        return {e.id for e in self.deleted}

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.updated or self.deleted)


@dataclass
class Subgraph:
    """N-hop neighbourhood of an entity.

    Attributes:
        entities: Entities in the neighbourhood (including the center)
        edges: Edges between those entities
    """

    entities: list[Entity] = field(default_factory=list)
    edges: list[Edge] = field(default_factory=list)
