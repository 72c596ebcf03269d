"""Parsing of batch justification responses.

The model answers a batch prompt with a JSON array, one object per entity.
Anything that cannot be turned into a valid justification for every entity
in the batch raises ``LLMError``; nothing is fabricated to fill a gap.
"""

from typing import Any

from strata.justification.batcher import Batch
from strata.llm.client import LLMError
from strata.models.graph import Entity
from strata.models.justification import Justification, SemanticTriple, Taxonomy

# Keys the model may wrap the array in
_WRAPPER_KEYS = ("justifications", "results", "entities", "items")

ARCHITECTURAL_PATTERNS = frozenset(
    {"pure_domain", "pure_infrastructure", "adapter", "mixed", "unknown"}
)


def _get(raw: dict[str, Any], camel: str, snake: str, default: Any = None) -> Any:
    if camel in raw:
        return raw[camel]
    return raw.get(snake, default)


def unwrap_items(data: Any, expected: int) -> list[dict[str, Any]]:
    """Return the list of per-entity objects from a parsed response."""
    if isinstance(data, dict):
        for key in _WRAPPER_KEYS:
            if isinstance(data.get(key), list):
                data = data[key]
                break
        else:
            if expected == 1:
                data = [data]

    if not isinstance(data, list):
        raise LLMError(f"Expected a JSON array of justifications, got {type(data).__name__}")
    if not all(isinstance(item, dict) for item in data):
        raise LLMError("Justification array contains non-object items")
    return data


def parse_justification(
    raw: dict[str, Any], entity: Entity, model_tier: str, model_used: str | None
) -> Justification:
    """Build a justification from one response object.

    Raises:
        LLMError: If required fields are missing or invalid
    """
    purpose = _get(raw, "businessPurpose", "business_purpose")
    if not isinstance(purpose, str) or not purpose.strip():
        raise LLMError(f"Missing businessPurpose for entity {entity.id}")

    try:
        taxonomy = Taxonomy(str(raw.get("taxonomy", "")).upper())
    except ValueError as e:
        raise LLMError(f"Invalid taxonomy for entity {entity.id}: {raw.get('taxonomy')}") from e

    try:
        confidence = float(raw.get("confidence", 0.5))
    except (TypeError, ValueError) as e:
        raise LLMError(f"Invalid confidence for entity {entity.id}") from e
    if not 0.0 <= confidence <= 1.0:
        raise LLMError(f"Confidence out of range for entity {entity.id}: {confidence}")

    triples = []
    for item in _get(raw, "semanticTriples", "semantic_triples", []) or []:
        if isinstance(item, dict) and item.get("subject") and item.get("object"):
            triples.append(SemanticTriple.from_dict(item))

    pattern = str(_get(raw, "architecturalPattern", "architectural_pattern", "unknown"))
    if pattern not in ARCHITECTURAL_PATTERNS:
        pattern = "unknown"

    return Justification(
        entity_id=entity.id,
        org_id=entity.org_id,
        repo_id=entity.repo_id,
        taxonomy=taxonomy,
        confidence=confidence,
        business_purpose=purpose.strip(),
        domain_concepts=[str(c) for c in _get(raw, "domainConcepts", "domain_concepts", []) or []],
        feature_tag=str(_get(raw, "featureTag", "feature_tag", "") or ""),
        semantic_triples=triples,
        compliance_tags=[str(t) for t in _get(raw, "complianceTags", "compliance_tags", []) or []],
        model_tier=model_tier,
        model_used=model_used,
        architectural_pattern=pattern,
        reasoning=str(raw.get("reasoning", "") or ""),
    )


def parse_batch_response(
    data: Any, batch: Batch, model_tier: str, model_used: str | None
) -> list[Justification]:
    """Match response objects to the batch's entities.

    Objects are matched by ``entityId``; an object without one is matched by
    position.

    Raises:
        LLMError: If any entity in the batch has no valid justification
    """
    items = unwrap_items(data, len(batch))
    by_id: dict[str, dict[str, Any]] = {}
    for position, raw in enumerate(items):
        entity_id = _get(raw, "entityId", "entity_id")
        if entity_id is None and position < len(batch):
            entity_id = batch.items[position].entity.id
        if entity_id is not None:
            by_id.setdefault(str(entity_id), raw)

    justifications = []
    for item in batch.items:
        raw = by_id.get(item.entity.id)
        if raw is None:
            raise LLMError(f"LLM response missing entity {item.entity.id} ({item.entity.name})")
        justifications.append(parse_justification(raw, item.entity, model_tier, model_used))
    return justifications
