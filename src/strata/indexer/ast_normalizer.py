"""Cosmetic vs semantic change detection.

Compares code bodies by canonical structure instead of raw text, so
reformatting, re-indenting or editing comments does not trigger a
re-justification. Also provides structural fingerprints used to recognise
entities that moved between files unchanged.

Every function here degrades conservatively: when no parser is registered
for a language, or parsing fails, a change is treated as semantic and
fingerprints fall back to whitespace-normalised hashing.
"""

import hashlib
import logging
import re
from dataclasses import dataclass

from strata.indexer.parsers import ParserRegistry, get_registry
from strata.models.graph import Entity

logger = logging.getLogger(__name__)

FINGERPRINT_LENGTH = 32

_WHITESPACE = re.compile(r"\s+")


def is_semantic_change(
    old_body: str,
    new_body: str,
    language: str | None,
    registry: ParserRegistry | None = None,
    enabled: bool = True,
) -> bool:
    """Decide whether two versions of a body differ in meaning.

    Args:
        old_body: Previous source text
        new_body: Current source text
        language: Source language used to pick a parser
        registry: Parser registry (defaults to the global registry)
        enabled: When False, every textual difference counts as semantic

    Returns:
        False only when the bodies are identical or structurally equal
    """
    if old_body == new_body:
        return False
    if not enabled:
        return True

    parser = (registry or get_registry()).get(language)
    if parser is None:
        return True

    try:
        return parser.parse(old_body) != parser.parse(new_body)
    except Exception as e:
        logger.debug("Structural comparison failed for %s, assuming semantic: %s", language, e)
        return True


def compute_semantic_fingerprint(
    body: str | None,
    language: str | None,
    registry: ParserRegistry | None = None,
) -> str | None:
    """Hash the structure of a body.

    Returns:
        32 hex characters, or None for an empty or blank body
    """
    if not body or not body.strip():
        return None

    parser = (registry or get_registry()).get(language)
    if parser is not None:
        try:
            return _sha256(parser.parse(body))
        except Exception as e:
            logger.debug("Fingerprint parse failed for %s, using text hash: %s", language, e)

    return _sha256(_WHITESPACE.sub(" ", body).strip())


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]


@dataclass
class MovePair:
    """A deleted entity that reappeared as an added one."""

    from_entity: Entity
    to_entity: Entity


def detect_moves(
    added: list[Entity],
    deleted: list[Entity],
    language: str | None = None,
    registry: ParserRegistry | None = None,
) -> list[MovePair]:
    """Pair added entities with deleted ones that share a fingerprint and kind.

    Each deleted entity is matched at most once. Entities with no body never
    match. ``language`` overrides the per-entity language when given.
    """
    registry = registry or get_registry()
    by_fingerprint: dict[str, list[Entity]] = {}
    for entity in deleted:
        fp = compute_semantic_fingerprint(entity.body, language or entity.language, registry)
        if fp is not None:
            by_fingerprint.setdefault(fp, []).append(entity)

    moves: list[MovePair] = []
    for entity in added:
        fp = compute_semantic_fingerprint(entity.body, language or entity.language, registry)
        if fp is None:
            continue
        candidates = by_fingerprint.get(fp, [])
        for i, candidate in enumerate(candidates):
            if candidate.kind == entity.kind:
                moves.append(MovePair(from_entity=candidate, to_entity=entity))
                del candidates[i]
                break

    if moves:
        logger.debug("Detected %d moved entities", len(moves))
    return moves
