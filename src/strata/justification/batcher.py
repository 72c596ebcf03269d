"""Token-budgeted batching of entities for LLM calls.

Packs entities greedily into batches that fit an input token budget, so a
level of a few hundred small functions costs a handful of calls instead of
hundreds. Token counts are estimates (about 3.5 characters per token for
code); they only need to be conservative, not exact.
"""

import math
from dataclasses import dataclass, field

from strata.justification.graph_context import GraphContext
from strata.models.graph import Entity
from strata.models.justification import Justification

CHARS_PER_TOKEN = 3.5
ENTITY_HEADER_TOKENS = 25
BODY_PREVIEW_LINES = 10
NEIGHBOR_PREVIEW_COUNT = 5


@dataclass
class BatcherConfig:
    """Batch packing limits.

    Attributes:
        max_input_tokens: Input budget per call (about 70% of a 10K window)
        max_entities_per_batch: Hard cap on entities per call
        system_prompt_tokens: Fixed cost of the system prompt and instructions
        output_tokens_per_entity: Output tokens reserved per entity
    """

    max_input_tokens: int = 7000
    max_entities_per_batch: int = 15
    system_prompt_tokens: int = 500
    output_tokens_per_entity: int = 150

    def __post_init__(self) -> None:
        if self.max_input_tokens <= 0:
            raise ValueError(f"max_input_tokens must be positive, got {self.max_input_tokens}")
        if self.max_entities_per_batch <= 0:
            raise ValueError(
                f"max_entities_per_batch must be positive, got {self.max_entities_per_batch}"
            )


@dataclass
class BatchItem:
    """An entity prepared for batching.

    Attributes:
        entity: Entity to justify
        context: Its graph context
        callee_justifications: Current justifications of entities it calls
        estimated_tokens: Filled in by ``create_batches``
    """

    entity: Entity
    context: GraphContext
    callee_justifications: list[Justification] = field(default_factory=list)
    estimated_tokens: int = 0


@dataclass
class Batch:
    items: list[BatchItem]
    total_estimated_tokens: int

    @property
    def entities(self) -> list[Entity]:
        return [item.entity for item in self.items]

    def __len__(self) -> int:
        return len(self.items)


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def estimate_entity_tokens(entity: Entity, context: GraphContext) -> int:
    """Estimate the prompt tokens one entity contributes to a batch."""
    tokens = ENTITY_HEADER_TOKENS
    tokens += estimate_tokens(f"{entity.name} {entity.kind} {entity.file_path}")

    if entity.signature:
        tokens += estimate_tokens(entity.signature)

    if entity.body:
        tokens += estimate_tokens("\n".join(entity.body.split("\n")[:BODY_PREVIEW_LINES]))

    if context.neighbors:
        tokens += estimate_tokens(
            ", ".join(f"{n.name} {n.kind}" for n in context.neighbors[:NEIGHBOR_PREVIEW_COUNT])
        )

    return tokens


def create_batches(items: list[BatchItem], config: BatcherConfig | None = None) -> list[Batch]:
    """Greedily pack items into batches.

    An item that cannot fit even alone goes into a batch of its own (after
    flushing the batch being built). Every other batch stays within
    ``max_input_tokens``. Item order is preserved across batches.
    """
    cfg = config or BatcherConfig()
    batches: list[Batch] = []
    current: list[BatchItem] = []
    current_tokens = cfg.system_prompt_tokens

    for item in items:
        item.estimated_tokens = estimate_entity_tokens(item.entity, item.context)
        budget = item.estimated_tokens + cfg.output_tokens_per_entity

        if cfg.system_prompt_tokens + budget > cfg.max_input_tokens:
            if current:
                batches.append(Batch(current, current_tokens))
                current = []
                current_tokens = cfg.system_prompt_tokens
            batches.append(Batch([item], cfg.system_prompt_tokens + budget))
            continue

        if (
            current_tokens + budget > cfg.max_input_tokens
            or len(current) >= cfg.max_entities_per_batch
        ):
            if current:
                batches.append(Batch(current, current_tokens))
            current = []
            current_tokens = cfg.system_prompt_tokens

        current.append(item)
        current_tokens += budget

    if current:
        batches.append(Batch(current, current_tokens))

    return batches
