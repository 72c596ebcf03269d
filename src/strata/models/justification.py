"""Justification layer records.

This module contains entities produced by the annotation pipeline:
- Taxonomy: Business classification of an entity
- SemanticTriple: (subject, predicate, object) fact extracted by the LLM
- Justification: Bi-temporal LLM-derived annotation of an entity
- FeatureAggregation: Per-feature rollup of current justifications
- DriftCategory / DriftScore: Append-only change significance history
"""

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class Taxonomy(str, Enum):
    """Business classification of an entity."""

    VERTICAL = "VERTICAL"  # Business feature code
    HORIZONTAL = "HORIZONTAL"  # Shared infrastructure
    UTILITY = "UTILITY"  # Generic helpers, tests, types


class DriftCategory(str, Enum):
    """Significance of a change to an entity."""

    STABLE = "stable"
    COSMETIC = "cosmetic"
    REFACTOR = "refactor"
    INTENT_DRIFT = "intent_drift"


class ModelTier(str, Enum):
    """Which tier produced a justification."""

    HEURISTIC = "heuristic"
    FAST = "fast"
    STANDARD = "standard"
    PREMIUM = "premium"


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class SemanticTriple:
    """A (subject, predicate, object) fact about the codebase."""

    subject: str
    predicate: str
    object: str

    def to_dict(self) -> dict[str, str]:
        return {"subject": self.subject, "predicate": self.predicate, "object": self.object}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SemanticTriple":
        return cls(
            subject=str(data.get("subject", "")),
            predicate=str(data.get("predicate", "")),
            object=str(data.get("object", "")),
        )


@dataclass
class Justification:
    """LLM-derived semantic annotation of an entity.

    Rows are bi-temporal: a row with ``valid_to is None`` is the current one.
    Superseding a justification closes the old row and inserts a new one;
    rows are never updated in place.

    Attributes:
        entity_id: Annotated entity
        taxonomy: VERTICAL, HORIZONTAL or UTILITY
        confidence: Model confidence in [0, 1]
        business_purpose: One or two sentence business justification
        domain_concepts: Domain vocabulary the entity deals with
        feature_tag: snake_case feature area
        semantic_triples: Extracted facts
        compliance_tags: Compliance regimes touched (PCI, GDPR, ...)
        model_tier: Tier that produced the row (heuristic, fast, standard, premium)
        model_used: Concrete model identifier
        architectural_pattern: pure_domain, pure_infrastructure, adapter, mixed, unknown
        reasoning: Chain-of-evidence explanation from the model
        quality_score: Heuristic quality score (metadata only)
        quality_flags: Reasons for quality deductions
        valid_from: Start of validity
        valid_to: End of validity (None = current)
    """

    entity_id: str
    taxonomy: Taxonomy
    confidence: float
    business_purpose: str
    org_id: str = ""
    repo_id: str = ""
    domain_concepts: list[str] = field(default_factory=list)
    feature_tag: str = ""
    semantic_triples: list[SemanticTriple] = field(default_factory=list)
    compliance_tags: list[str] = field(default_factory=list)
    model_tier: str = ModelTier.STANDARD.value
    model_used: str | None = None
    architectural_pattern: str = "unknown"
    reasoning: str = ""
    body_hash: str | None = None
    quality_score: float | None = None
    quality_flags: list[str] = field(default_factory=list)
    valid_from: datetime = field(default_factory=utc_now)
    valid_to: datetime | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.taxonomy, Taxonomy):
            self.taxonomy = Taxonomy(str(self.taxonomy).upper())
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {self.confidence}")

    @property
    def is_current(self) -> bool:
        return self.valid_to is None

    def closed(self, at: datetime) -> "Justification":
        """Return a copy of this row with its validity window closed at ``at``."""
        return replace(self, valid_to=at)

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity_id": self.entity_id,
            "org_id": self.org_id,
            "repo_id": self.repo_id,
            "taxonomy": self.taxonomy.value,
            "confidence": self.confidence,
            "business_purpose": self.business_purpose,
            "domain_concepts": list(self.domain_concepts),
            "feature_tag": self.feature_tag,
            "semantic_triples": [t.to_dict() for t in self.semantic_triples],
            "compliance_tags": list(self.compliance_tags),
            "model_tier": self.model_tier,
            "model_used": self.model_used,
            "architectural_pattern": self.architectural_pattern,
            "reasoning": self.reasoning,
            "body_hash": self.body_hash,
            "quality_score": self.quality_score,
            "quality_flags": list(self.quality_flags),
            "valid_from": self.valid_from.isoformat(),
            "valid_to": self.valid_to.isoformat() if self.valid_to else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Justification":
        valid_from = data.get("valid_from")
        valid_to = data.get("valid_to")
        return cls(
            entity_id=data["entity_id"],
            org_id=data.get("org_id", ""),
            repo_id=data.get("repo_id", ""),
            taxonomy=Taxonomy(str(data.get("taxonomy", "UTILITY")).upper()),
            confidence=float(data.get("confidence", 0.0)),
            business_purpose=data.get("business_purpose", ""),
            domain_concepts=list(data.get("domain_concepts") or []),
            feature_tag=data.get("feature_tag", ""),
            semantic_triples=[
                SemanticTriple.from_dict(t) for t in data.get("semantic_triples") or []
            ],
            compliance_tags=list(data.get("compliance_tags") or []),
            model_tier=data.get("model_tier", ModelTier.STANDARD.value),
            model_used=data.get("model_used"),
            architectural_pattern=data.get("architectural_pattern", "unknown"),
            reasoning=data.get("reasoning", ""),
            body_hash=data.get("body_hash"),
            quality_score=data.get("quality_score"),
            quality_flags=list(data.get("quality_flags") or []),
            valid_from=datetime.fromisoformat(valid_from) if valid_from else utc_now(),
            valid_to=datetime.fromisoformat(valid_to) if valid_to else None,
        )


@dataclass
class FeatureAggregation:
    """Rollup of current justifications sharing a feature tag.

    Attributes:
        feature_tag: Feature area
        entity_count: Number of distinct entities tagged with the feature
        average_confidence: Arithmetic mean of the justifications' confidence
        taxonomy_breakdown: Count of justifications per taxonomy
        entry_points: Entity ids called from outside the feature (or uncalled)
        hot_paths: Call chains inside the feature starting at entry points
    """

    feature_tag: str
    entity_count: int
    average_confidence: float
    org_id: str = ""
    repo_id: str = ""
    taxonomy_breakdown: dict[str, int] = field(default_factory=dict)
    entry_points: list[str] = field(default_factory=list)
    hot_paths: list[list[str]] = field(default_factory=list)

    @property
    def id(self) -> str:
        return f"{self.repo_id}_{self.feature_tag}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "repo_id": self.repo_id,
            "feature_tag": self.feature_tag,
            "entity_count": self.entity_count,
            "average_confidence": self.average_confidence,
            "taxonomy_breakdown": dict(self.taxonomy_breakdown),
            "entry_points": list(self.entry_points),
            "hot_paths": [list(p) for p in self.hot_paths],
        }


@dataclass(frozen=True)
class DriftScore:
    """One entry in an entity's append-only drift history."""

    entity_id: str
    category: DriftCategory
    embedding_similarity: float
    ast_hash_old: str | None = None
    ast_hash_new: str | None = None
    detected_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity_id": self.entity_id,
            "category": self.category.value,
            "embedding_similarity": self.embedding_similarity,
            "ast_hash_old": self.ast_hash_old,
            "ast_hash_new": self.ast_hash_new,
            "detected_at": self.detected_at.isoformat(),
        }
