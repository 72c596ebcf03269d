"""Deterministic identity hashing for entities and edges.

Entity and edge ids are pure functions of their identifying fields, so
re-indexing the same code always yields the same keys and diffs can be
computed by address instead of by content.
"""

import hashlib

# 16 hex characters = 64 bits
HASH_LENGTH = 16

_SEPARATOR = "\0"


def _short_sha256(*parts: str) -> str:
    digest = hashlib.sha256(_SEPARATOR.join(parts).encode("utf-8")).hexdigest()
    return digest[:HASH_LENGTH]


def entity_hash(
    repo_id: str,
    file_path: str,
    kind: str,
    name: str,
    signature: str | None = None,
) -> str:
    """Derive an entity id.

    Args:
        repo_id: Repository the entity belongs to
        file_path: Repository-relative file path
        kind: Entity kind (file, function, class, ...)
        name: Entity name
        signature: Declaration signature (None is treated as "")

    Returns:
        16 lowercase hex characters
    """
    return _short_sha256(repo_id, file_path, kind, name, signature or "")


def edge_hash(from_id: str, to_id: str, kind: str) -> str:
    """Derive an edge id from its endpoints and kind.

    Returns:
        16 lowercase hex characters
    """
    return _short_sha256(from_id, to_id, kind)
