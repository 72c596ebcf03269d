"""Prompts for batch justification.

The system prompt carries the quality rules; the user prompt is rendered
from ``templates/batch_prompt.md.j2`` with one section per entity, including
its graph summary and the justifications of entities it calls (already
available because levels are processed bottom-up).
"""

from dataclasses import dataclass, field
from typing import Any

from jinja2 import Environment, PackageLoader, select_autoescape

from strata.justification.batcher import Batch, BatchItem
from strata.models.graph import Entity

BATCH_TEMPLATE = "batch_prompt.md.j2"
BODY_PREVIEW_LINES = 30
CONNECTION_LIMIT = 5
DEPENDENCY_LIMIT = 3

JUSTIFICATION_SYSTEM_PROMPT = """You are a senior software architect analyzing source code entities to classify their business purpose.

## Quality Rules

1. **Be specific, not generic.** Never say "Function that does X" or "Handles X-related operations". Explain the concrete business action: "Validates payment card numbers against the Luhn algorithm before processing charges."

2. **Use precise action verbs.** Start businessPurpose with verbs like: validates, orchestrates, transforms, persists, aggregates, routes, authorizes, schedules, reconciles, normalizes, encrypts, dispatches, throttles.

3. **Explain the business WHY, not the technical HOW.** Bad: "Calls the database and returns a user object." Good: "Retrieves customer profile data to personalize the checkout experience."

4. **Classify architectural patterns.**
   - pure_domain: business rules only, no infrastructure
   - pure_infrastructure: database, HTTP, messaging or file I/O only
   - adapter: translates between domain and infrastructure
   - mixed: both domain logic AND infrastructure concerns

5. **Detect mixed responsibilities.** If an entity both implements business rules AND handles infrastructure, set confidence lower (0.5-0.7) and note the mixed concern in businessPurpose.

6. **Domain concepts must be meaningful.** Don't list programming terms like "function", "class", "string". List domain terms like "order", "payment", "authentication", "subscription".

7. **Feature tags should group related entities.** Use consistent snake_case tags that map to product features: "user_auth", "payment_processing", "order_management".

Respond with JSON only.
"""


@dataclass
class ProjectContext:
    """Project-level context shared by every prompt in a run."""

    name: str | None = None
    description: str | None = None
    domain: str | None = None
    tech_stack: list[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.name or self.description or self.domain or self.tech_stack)


def _preview_body(body: str | None) -> str | None:
    if not body:
        return None
    lines = body.split("\n")
    preview = "\n".join(lines[:BODY_PREVIEW_LINES])
    if len(lines) > BODY_PREVIEW_LINES:
        preview += "\n# ..."
    return preview


class PromptBuilder:
    """Renders batch prompts from the package template."""

    def __init__(self, project: ProjectContext | None = None) -> None:
        self.project = project
        self._env = Environment(
            loader=PackageLoader("strata", "templates"),
            autoescape=select_autoescape(["html", "xml"]),
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )

    @property
    def system_prompt(self) -> str:
        return JUSTIFICATION_SYSTEM_PROMPT

    def build_batch_prompt(self, batch: Batch, entity_names: dict[str, str] | None = None) -> str:
        """Render the user prompt for one batch.

        Args:
            batch: Batch to justify
            entity_names: entity id -> display name, used for dependency lines
        """
        template = self._env.get_template(BATCH_TEMPLATE)
        return template.render(
            project=self.project if self.project else None,
            entities=[self._item_context(item, entity_names or {}) for item in batch.items],
        )

    def _item_context(self, item: BatchItem, entity_names: dict[str, str]) -> dict[str, Any]:
        connections = ", ".join(
            f"{n.name} ({n.kind}, {n.direction})"
            for n in item.context.neighbors[:CONNECTION_LIMIT]
        )
        dependencies = "; ".join(
            f"{entity_names.get(j.entity_id, j.entity_id)} [{j.taxonomy.value}]: "
            f"{j.business_purpose}"
            for j in item.callee_justifications[:DEPENDENCY_LIMIT]
        )
        return {
            "entity": item.entity,
            "summary": item.context.subgraph_summary,
            "body": _preview_body(item.entity.body),
            "connections": connections,
            "dependencies": dependencies,
        }


def build_embedding_text(entity: Entity, business_purpose: str | None = None) -> str:
    """Text embedded for drift detection: identity, signature and body."""
    parts = [f"{entity.kind} {entity.name}", entity.file_path]
    if entity.signature:
        parts.append(entity.signature)
    if business_purpose:
        parts.append(business_purpose)
    if entity.body:
        parts.append(entity.body)
    return "\n".join(parts)
