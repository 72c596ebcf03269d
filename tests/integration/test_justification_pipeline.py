"""Integration tests for full justification runs.

Runs the real pipeline against the in-memory graph store with a scripted LLM
client standing in for LiteLLM.
"""

from typing import Any

import pytest
from conftest import REPO, ScriptedLLM, calls, make_entity

from strata.config import StrataConfig
from strata.justification.batcher import BatcherConfig
from strata.llm.client import LLMError
from strata.models import ModelTier, RunStatus
from strata.models.llm_config import LLMConfig
from strata.pipeline import JustificationPipeline, PipelineOptions
from strata.store.memory import InMemoryGraphStore


class FailingAfter(ScriptedLLM):
    """Answers the first ``successes`` calls, then raises on every call."""

    def __init__(self, successes: int) -> None:
        super().__init__()
        self.successes = successes

    def generate_object(
        self, prompt: str, system_prompt: str | None = None, model: str | None = None
    ) -> Any:
        if len(self.prompts) >= self.successes:
            self.prompts.append(prompt)
            raise LLMError("Connection failed to ollama: connection refused")
        return super().generate_object(prompt, system_prompt=system_prompt, model=model)


class EmptyResponseLLM(ScriptedLLM):
    def generate_object(
        self, prompt: str, system_prompt: str | None = None, model: str | None = None
    ) -> Any:
        self.prompts.append(prompt)
        return []


def _isolated_store(count: int) -> InMemoryGraphStore:
    return InMemoryGraphStore(
        entities=[make_entity(f"compute_total_{i}", file_path=f"src/m{i}.py") for i in range(count)]
    )


class TestFullRun:
    """Tests for JustificationPipeline.run_full."""

    def test_levels_processed_leaves_first(self, chain, chain_store, config, registry) -> None:
        top, middle, leaf = chain
        llm = ScriptedLLM()

        result = JustificationPipeline(chain_store, llm, config, registry).run_full("org-1", REPO)

        assert result.status == RunStatus.COMPLETED
        assert len(llm.prompts) == 3
        assert f"(ID: {leaf.id})" in llm.prompts[0]
        assert f"(ID: {middle.id})" in llm.prompts[1]
        assert f"(ID: {top.id})" in llm.prompts[2]
        assert [level.entity_count for level in result.levels] == [1, 1, 1]
        assert result.entities_justified == 3

    def test_callee_purpose_included_in_caller_prompt(
        self, chain_store, config, registry
    ) -> None:
        llm = ScriptedLLM()

        JustificationPipeline(chain_store, llm, config, registry).run_full("org-1", REPO)

        assert (
            "format_amount in src/money.py [VERTICAL]: "
            "Calculates the customer invoice total for checkout billing"
        ) in llm.prompts[1]
        assert "charge_card in src/payments.py [VERTICAL]" in llm.prompts[2]

    def test_run_status_reported(self, chain_store, config, registry) -> None:
        JustificationPipeline(chain_store, ScriptedLLM(), config, registry).run_full(
            "org-1", REPO
        )

        assert chain_store.run_statuses == [(REPO, "justifying", None), (REPO, "ready", None)]

    def test_stored_justifications(self, chain, chain_store, config, registry) -> None:
        JustificationPipeline(chain_store, ScriptedLLM(), config, registry).run_full(
            "org-1", REPO
        )

        for entity in chain:
            stored = chain_store.get_justification("org-1", entity.id)
            assert stored is not None
            assert stored.feature_tag == "checkout_billing"
            assert stored.domain_concepts == ["invoice", "checkout"]
            assert stored.quality_score is not None
            assert stored.body_hash is not None and len(stored.body_hash) == 32
            assert stored.model_used == "llama3.2"
            assert stored.model_tier == ModelTier.STANDARD.value

    def test_features_aggregated(self, chain, chain_store, config, registry) -> None:
        top, _, _ = chain

        result = JustificationPipeline(chain_store, ScriptedLLM(), config, registry).run_full(
            "org-1", REPO
        )

        assert len(result.features) == 1
        feature = result.features[0]
        assert feature.feature_tag == "checkout_billing"
        assert feature.entity_count == 3
        assert feature.entry_points == [top.id]
        assert chain_store.get_feature_aggregations() == result.features

    def test_skip_features(self, chain_store, config, registry) -> None:
        result = JustificationPipeline(chain_store, ScriptedLLM(), config, registry).run_full(
            "org-1", REPO, PipelineOptions(skip_features=True)
        )

        assert result.features == []
        assert chain_store.get_feature_aggregations() == []

    def test_one_subgraph_query_per_level(self, chain_store, config, registry) -> None:
        JustificationPipeline(chain_store, ScriptedLLM(), config, registry).run_full(
            "org-1", REPO
        )

        assert chain_store.subgraph_queries == 3

    def test_with_community_detection(self, chain_store, registry) -> None:
        cfg = StrataConfig()
        cfg.pipeline.max_workers = 2

        result = JustificationPipeline(chain_store, ScriptedLLM(), cfg, registry).run_full(
            "org-1", REPO
        )

        assert result.status == RunStatus.COMPLETED
        assert result.entities_justified == 3

    def test_empty_repository(self, config, registry) -> None:
        store = InMemoryGraphStore()
        llm = ScriptedLLM()

        result = JustificationPipeline(store, llm, config, registry).run_full("org-1", REPO)

        assert result.status == RunStatus.COMPLETED
        assert result.levels == []
        assert llm.prompts == []


class TestRetries:
    """Tests for per-level retries and run failure."""

    def test_transient_failure_retried(self, chain_store, config, registry) -> None:
        llm = ScriptedLLM(failures=[LLMError("Rate limit exceeded for ollama: slow down")])

        result = JustificationPipeline(chain_store, llm, config, registry).run_full(
            "org-1", REPO
        )

        assert result.status == RunStatus.COMPLETED
        assert result.levels[0].attempts == 2
        assert result.levels[1].attempts == 1
        assert len(result.errors) == 1
        assert result.errors[0].component == "llm"
        assert result.errors[0].recoverable is True

    def test_persistent_failure_fails_run(self, chain, chain_store, config, registry) -> None:
        message = "Connection failed to ollama: connection refused"
        llm = ScriptedLLM(failures=[LLMError(message)] * 3)

        result = JustificationPipeline(chain_store, llm, config, registry).run_full(
            "org-1", REPO
        )

        assert result.status == RunStatus.FAILED
        assert result.error_message == message
        assert chain_store.run_statuses[-1] == (REPO, "justify_failed", message)
        assert len(llm.prompts) == 3
        assert all(chain_store.get_justification("org-1", e.id) is None for e in chain)
        assert [e.attempt for e in result.errors if e.component == "llm"] == [1, 2, 3]

    def test_earlier_levels_kept_on_failure(self, chain, chain_store, config, registry) -> None:
        top, middle, leaf = chain

        result = JustificationPipeline(chain_store, FailingAfter(1), config, registry).run_full(
            "org-1", REPO
        )

        assert result.status == RunStatus.FAILED
        assert chain_store.get_justification("org-1", leaf.id) is not None
        assert chain_store.get_justification("org-1", middle.id) is None
        assert chain_store.get_justification("org-1", top.id) is None

    def test_malformed_response_not_fabricated(self, chain, chain_store, config, registry) -> None:
        llm = EmptyResponseLLM()

        result = JustificationPipeline(chain_store, llm, config, registry).run_full(
            "org-1", REPO
        )

        assert result.status == RunStatus.FAILED
        assert "missing entity" in (result.error_message or "")
        assert len(llm.prompts) == config.pipeline.max_attempts
        assert chain_store.get_current_justifications() == []


class TestRoutingAndBatching:
    """Tests for heuristics, model tiers and batch packing."""

    def test_heuristic_entities_skip_llm(self, config, registry) -> None:
        test_fn = make_entity("test_checkout", file_path="tests/test_checkout.py")
        prod_fn = make_entity("apply_discount", file_path="src/pricing.py")
        store = InMemoryGraphStore(entities=[test_fn, prod_fn])
        llm = ScriptedLLM()

        result = JustificationPipeline(store, llm, config, registry).run_full("org-1", REPO)

        assert result.levels[0].heuristic_count == 1
        assert all(f"(ID: {test_fn.id})" not in p for p in llm.prompts)
        stored = store.get_justification("org-1", test_fn.id)
        assert stored is not None
        assert stored.model_tier == ModelTier.HEURISTIC.value
        assert stored.feature_tag == "testing"
        assert stored.model_used is None

    def test_skip_heuristics_sends_everything(self, config, registry) -> None:
        test_fn = make_entity("test_checkout", file_path="tests/test_checkout.py")
        store = InMemoryGraphStore(entities=[test_fn])
        llm = ScriptedLLM()

        JustificationPipeline(store, llm, config, registry).run_full(
            "org-1", REPO, PipelineOptions(skip_heuristics=True)
        )

        assert len(llm.prompts) == 1
        assert llm.models == ["llama3.2"]

    def test_fast_model_for_constants(self, registry) -> None:
        cfg = StrataConfig()
        cfg.pipeline.detect_communities = False
        cfg.llm = LLMConfig(
            provider="ollama",
            model="llama3.2",
            fast_model="llama3.2:1b",
            api_base="http://localhost:11434",
        )
        constant = make_entity("TAX_RATE", kind="constant", body="TAX_RATE = 0.2\n")
        store = InMemoryGraphStore(entities=[constant])
        llm = ScriptedLLM()

        JustificationPipeline(store, llm, cfg, registry).run_full("org-1", REPO)

        assert llm.models == ["llama3.2:1b"]
        stored = store.get_justification("org-1", constant.id)
        assert stored is not None
        assert stored.model_tier == ModelTier.FAST.value
        assert stored.model_used == "llama3.2:1b"

    def test_batches_capped_by_entity_count(self, config, registry) -> None:
        config.batcher = BatcherConfig(max_entities_per_batch=2)
        store = _isolated_store(5)
        llm = ScriptedLLM()

        result = JustificationPipeline(store, llm, config, registry).run_full("org-1", REPO)

        assert result.levels[0].batch_count == 3
        assert len(llm.prompts) == 3
        assert store.subgraph_queries == 3
        assert result.entities_justified == 5

    def test_batching_disabled(self, config, registry) -> None:
        config.pipeline.use_batching = False
        store = _isolated_store(5)
        llm = ScriptedLLM()

        result = JustificationPipeline(store, llm, config, registry).run_full("org-1", REPO)

        assert result.levels[0].batch_count == 5
        assert len(llm.prompts) == 5

    def test_parallel_batches(self, config, registry) -> None:
        config.pipeline.max_workers = 4
        config.batcher = BatcherConfig(max_entities_per_batch=1)
        store = _isolated_store(6)
        llm = ScriptedLLM()

        result = JustificationPipeline(store, llm, config, registry).run_full("org-1", REPO)

        assert result.status == RunStatus.COMPLETED
        assert len(store.get_current_justifications()) == 6


@pytest.mark.parametrize("repo_filter", ["", REPO])
def test_cycle_entities_all_justified(repo_filter: str, config, registry) -> None:
    a = make_entity("reserve_stock", file_path="src/stock.py")
    b = make_entity("release_stock", file_path="src/stock.py")
    store = InMemoryGraphStore(entities=[a, b], edges=[calls(a, b), calls(b, a)])

    result = JustificationPipeline(store, ScriptedLLM(), config, registry).run_full(
        "org-1", repo_filter
    )

    assert result.entities_justified == 2
    assert len(result.levels) == 2
