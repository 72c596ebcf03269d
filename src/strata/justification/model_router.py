"""Model tier routing.

Tiers, cheapest first:
- heuristic: obvious cases (tests, config, type-only declarations, barrel
  modules) are classified without calling the LLM at all
- fast: trivial entities (variables, constants)
- standard: everything else
- premium: highly connected entities whose meaning matters most
"""

import re
from dataclasses import dataclass

from strata.models.graph import Entity
from strata.models.justification import Justification, ModelTier, Taxonomy

PREMIUM_CENTRALITY = 0.8

TEST_FILE_PATTERNS = [
    re.compile(r"\.test\.[jt]sx?$"),
    re.compile(r"\.spec\.[jt]sx?$"),
    re.compile(r"__tests__/"),
    re.compile(r"\.stories\.[jt]sx?$"),
    re.compile(r"(^|/)test_[^/]+\.py$"),
    re.compile(r"_test\.(py|go)$"),
    re.compile(r"(^|/)conftest\.py$"),
]

CONFIG_FILE_PATTERNS = [
    re.compile(r"\.config\.[jt]sx?$"),
    re.compile(r"\.config\.(json|ya?ml|toml)$"),
    re.compile(r"tsconfig.*\.json$"),
    re.compile(r"package\.json$"),
    re.compile(r"pyproject\.toml$"),
    re.compile(r"setup\.cfg$"),
    re.compile(r"\.eslintrc"),
    re.compile(r"\.prettierrc"),
    re.compile(r"webpack\."),
    re.compile(r"vite\."),
    re.compile(r"rollup\."),
    re.compile(r"jest\."),
    re.compile(r"vitest\."),
]

TYPE_ONLY_KINDS = frozenset({"type", "interface", "enum"})
FAST_KINDS = frozenset({"variable", "constant"})

_BARREL_NAME = re.compile(r"^(index\.[jt]sx?|__init__\.py)$")
_BARREL_SUFFIXES = ("/index.ts", "/index.js", "/__init__.py")


@dataclass
class HeuristicResult:
    taxonomy: Taxonomy
    confidence: float
    business_purpose: str
    feature_tag: str
    reason: str

    def to_justification(self, entity: Entity) -> Justification:
        return Justification(
            entity_id=entity.id,
            org_id=entity.org_id,
            repo_id=entity.repo_id,
            taxonomy=self.taxonomy,
            confidence=self.confidence,
            business_purpose=self.business_purpose,
            feature_tag=self.feature_tag,
            model_tier=ModelTier.HEURISTIC.value,
            model_used=None,
            reasoning=self.reason,
        )


@dataclass
class ModelRoute:
    tier: ModelTier
    reason: str


def apply_heuristics(entity: Entity) -> HeuristicResult | None:
    """Classify an entity without the LLM, or return None when the LLM is needed."""
    file_path = entity.file_path or ""
    kind = entity.kind or ""

    if any(p.search(file_path) for p in TEST_FILE_PATTERNS):
        return HeuristicResult(
            taxonomy=Taxonomy.UTILITY,
            confidence=0.95,
            business_purpose="Test infrastructure that validates correctness of production code",
            feature_tag="testing",
            reason="test file pattern match",
        )

    if any(p.search(file_path) for p in CONFIG_FILE_PATTERNS):
        return HeuristicResult(
            taxonomy=Taxonomy.HORIZONTAL,
            confidence=0.9,
            business_purpose="Build and tooling configuration shared across the project",
            feature_tag="configuration",
            reason="config file pattern match",
        )

    if kind in TYPE_ONLY_KINDS:
        return HeuristicResult(
            taxonomy=Taxonomy.UTILITY,
            confidence=0.85,
            business_purpose="Type definition providing type safety across the codebase",
            feature_tag="type_system",
            reason="type-only entity kind",
        )

    if kind == "file" and (
        _BARREL_NAME.match(entity.name or "") or file_path.endswith(_BARREL_SUFFIXES)
    ):
        return HeuristicResult(
            taxonomy=Taxonomy.HORIZONTAL,
            confidence=0.85,
            business_purpose="Module re-export barrel organizing the public API surface",
            feature_tag="module_structure",
            reason="index/barrel file",
        )

    return None


def route_model(entity: Entity, centrality: float = 0.0) -> ModelRoute:
    """Pick the model tier for an entity."""
    heuristic = apply_heuristics(entity)
    if heuristic is not None:
        return ModelRoute(tier=ModelTier.HEURISTIC, reason=heuristic.reason)

    if centrality > PREMIUM_CENTRALITY:
        return ModelRoute(tier=ModelTier.PREMIUM, reason="high centrality")

    if entity.kind in FAST_KINDS:
        return ModelRoute(tier=ModelTier.FAST, reason="simple entity kind")

    return ModelRoute(tier=ModelTier.STANDARD, reason="default routing")
