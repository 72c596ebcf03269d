"""Change significance (drift) classification.

Combines two signals: structural AST hashes decide whether anything changed
at all, and embedding similarity between the old and new versions decides
how much the meaning moved.
"""

import math
from dataclasses import dataclass

from strata.models.justification import DriftCategory, DriftScore

COSMETIC_THRESHOLD = 0.95
REFACTOR_THRESHOLD = 0.8


@dataclass
class DriftResult:
    category: DriftCategory
    similarity: float

    @property
    def triggers_cascade(self) -> bool:
        """Only a change of intent invalidates the justifications of callers."""
        return self.category == DriftCategory.INTENT_DRIFT


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Cosine similarity, or 0.0 for empty, mismatched or zero vectors."""
    if not a or not b or len(a) != len(b):
        return 0.0
    dot = sum(x * y for x, y in zip(a, b, strict=True))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


def classify_similarity(similarity: float) -> DriftCategory:
    if similarity > COSMETIC_THRESHOLD:
        return DriftCategory.COSMETIC
    if similarity > REFACTOR_THRESHOLD:
        return DriftCategory.REFACTOR
    return DriftCategory.INTENT_DRIFT


def compute_drift(
    ast_hash_old: str | None,
    ast_hash_new: str | None,
    embedding_old: list[float] | None = None,
    embedding_new: list[float] | None = None,
) -> DriftResult:
    """Classify how significantly an entity changed.

    Equal AST hashes short-circuit to ``stable`` without looking at the
    embeddings.
    """
    if ast_hash_old is not None and ast_hash_old == ast_hash_new:
        return DriftResult(category=DriftCategory.STABLE, similarity=1.0)

    similarity = cosine_similarity(embedding_old or [], embedding_new or [])
    return DriftResult(category=classify_similarity(similarity), similarity=similarity)


def build_drift_score(
    entity_id: str,
    result: DriftResult,
    ast_hash_old: str | None = None,
    ast_hash_new: str | None = None,
) -> DriftScore:
    return DriftScore(
        entity_id=entity_id,
        category=result.category,
        embedding_similarity=result.similarity,
        ast_hash_old=ast_hash_old,
        ast_hash_new=ast_hash_new,
    )
