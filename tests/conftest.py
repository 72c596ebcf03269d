"""Shared pytest fixtures for Strata tests.

Fixtures are organized by category:
- Graph fixtures: Entities, edges and an in-memory graph store
- Parser fixtures: A deterministic structural parser registry
- LLM fixtures: A scripted LLM client standing in for LiteLLM
"""

import os

# litellm fetches its model cost map over the network at import; use the bundled copy.
os.environ.setdefault("LITELLM_LOCAL_MODEL_COST_MAP", "True")

import json
import re
from pathlib import Path
from typing import Any

import pytest

from strata.config import StrataConfig
from strata.indexer.parsers import ParserRegistry, reset_registry
from strata.models import Edge, Entity
from strata.store.memory import InMemoryGraphStore

ORG = "org-1"
REPO = "repo-1"


def make_entity(
    name: str,
    kind: str = "function",
    file_path: str = "src/app.py",
    body: str | None = None,
    **kwargs: Any,
) -> Entity:
    """Create an entity with a deterministic id."""
    return Entity.create(
        org_id=ORG,
        repo_id=REPO,
        kind=kind,
        name=name,
        file_path=file_path,
        body=body if body is not None else f"def {name}():\n    return 1\n",
        language="python",
        **kwargs,
    )


def calls(caller: Entity, callee: Entity) -> Edge:
    return Edge(from_id=caller.id, to_id=callee.id, kind="calls")


# =============================================================================
# Parser Fixtures
# =============================================================================


class WhitespaceParser:
    """Canonicalizes by dropping comments and collapsing whitespace."""

    def parse(self, code: str) -> str:
        code = re.sub(r"#[^\n]*", "", code)
        return " ".join(code.split())


@pytest.fixture
def registry() -> ParserRegistry:
    """Registry with a deterministic python parser (no tree-sitter needed)."""
    reg = ParserRegistry()
    reg.register("python", WhitespaceParser())
    return reg


@pytest.fixture(autouse=True)
def _reset_global_registry():
    """Keep the global parser registry isolated between tests."""
    reset_registry()
    yield
    reset_registry()


# =============================================================================
# Graph Fixtures
# =============================================================================


@pytest.fixture
def chain() -> tuple[Entity, Entity, Entity]:
    """handle_checkout -> charge_card -> format_amount."""
    return (
        make_entity("handle_checkout", file_path="src/checkout.py"),
        make_entity("charge_card", file_path="src/payments.py"),
        make_entity("format_amount", file_path="src/money.py"),
    )


@pytest.fixture
def chain_store(chain: tuple[Entity, Entity, Entity]) -> InMemoryGraphStore:
    top, middle, leaf = chain
    return InMemoryGraphStore(
        entities=list(chain),
        edges=[calls(top, middle), calls(middle, leaf)],
    )


@pytest.fixture
def snapshot_file(tmp_path: Path, chain_store: InMemoryGraphStore) -> Path:
    path = tmp_path / "graph.json"
    path.write_text(json.dumps(chain_store.snapshot()))
    return path


# =============================================================================
# LLM Fixtures
# =============================================================================


class ScriptedLLM:
    """LLM client double answering batch prompts from a purpose table.

    Every entity id found in the prompt gets a justification built from
    ``purposes`` (keyed by entity id), or a generic business purpose.
    """

    def __init__(
        self,
        purposes: dict[str, dict[str, Any]] | None = None,
        failures: list[Exception] | None = None,
        embeddings: dict[str, list[float]] | None = None,
    ) -> None:
        self.purposes = purposes or {}
        self.failures = list(failures or [])
        self.embeddings = embeddings or {}
        self.prompts: list[str] = []
        self.models: list[str | None] = []
        self.embed_calls: list[list[str]] = []

    def generate_object(
        self, prompt: str, system_prompt: str | None = None, model: str | None = None
    ) -> Any:
        self.prompts.append(prompt)
        self.models.append(model)
        if self.failures:
            raise self.failures.pop(0)

        ids = re.findall(r"\(ID: ([0-9a-f]+)\)", prompt)
        return [self._answer(entity_id) for entity_id in ids]

    def _answer(self, entity_id: str) -> dict[str, Any]:
        answer = {
            "entityId": entity_id,
            "taxonomy": "VERTICAL",
            "confidence": 0.7,
            "businessPurpose": "Calculates the customer invoice total for checkout billing",
            "domainConcepts": ["invoice", "checkout"],
            "featureTag": "Checkout Billing",
            "semanticTriples": [
                {"subject": "checkout", "predicate": "produces", "object": "invoice"}
            ],
            "complianceTags": [],
            "architecturalPattern": "pure_domain",
            "reasoning": "Names and callers reference invoices",
        }
        answer.update(self.purposes.get(entity_id, {}))
        return answer

    def embed(self, texts: list[str]) -> list[list[float]]:
        self.embed_calls.append(list(texts))
        if self.failures:
            raise self.failures.pop(0)
        return [self.embeddings.get(text, [1.0, 0.0]) for text in texts]


@pytest.fixture
def scripted_llm() -> ScriptedLLM:
    return ScriptedLLM()


@pytest.fixture
def config() -> StrataConfig:
    """Default config with single-threaded batches and no communities."""
    cfg = StrataConfig()
    cfg.pipeline.max_workers = 1
    cfg.pipeline.detect_communities = False
    return cfg

