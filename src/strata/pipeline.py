"""Justification pipeline orchestrator.

Runs the dependency-ordered annotation of a repository's knowledge graph:

Full run:
1. Load entities and edges from the graph store
2. Label Louvain communities (prompt context)
3. Order entities into topological levels, leaves first
4. Justify each level (heuristics, then batched LLM calls in parallel),
   storing it before the next level starts
5. Roll current justifications up into feature aggregations

Incremental run (after re-indexing a commit):
1. Detect moved entities and carry their justifications over
2. Repair edges left dangling by deletions
3. Drop cosmetic updates (structural comparison)
4. Score drift of semantic updates and cascade to callers on intent drift
5. Justify added, changed and cascaded entities with the full-run machinery
"""

import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from typing import Any, Protocol

from strata.config import StrataConfig
from strata.indexer.ast_normalizer import (
    compute_semantic_fingerprint,
    detect_moves,
    is_semantic_change,
)
from strata.indexer.cascade import build_cascade_queue
from strata.indexer.edge_repair import repair_edges
from strata.indexer.parsers import ParserRegistry, get_registry
from strata.justification.batcher import Batch, BatchItem, create_batches
from strata.justification.community import apply_communities, detect_communities
from strata.justification.drift import build_drift_score, compute_drift
from strata.justification.graph_context import build_graph_contexts
from strata.justification.model_router import apply_heuristics, route_model
from strata.justification.post_processor import (
    aggregate_features,
    merge_similar_feature_tags,
    normalize_justifications,
)
from strata.justification.prompts import PromptBuilder, build_embedding_text
from strata.justification.quality import score_justification
from strata.justification.response import parse_batch_response
from strata.justification.topological_sort import topological_sort_entities
from strata.llm.client import LLMError
from strata.models import (
    DriftCategory,
    DriftScore,
    Edge,
    Entity,
    EntityDiff,
    Justification,
    LevelResult,
    ModelTier,
    RunError,
    RunKind,
    RunResult,
    RunStatus,
)
from strata.store.base import GraphQueryError, GraphStore
from strata.utils.logging import get_logger

logger = get_logger(__name__)

# Run status values reported through GraphStore.update_run_status
STATUS_JUSTIFYING = "justifying"
STATUS_READY = "ready"
STATUS_FAILED = "justify_failed"

_TIER_RANK = {ModelTier.FAST: 0, ModelTier.STANDARD: 1, ModelTier.PREMIUM: 2}


class JustificationClient(Protocol):
    """What the pipeline needs from an LLM client."""

    def generate_object(
        self, prompt: str, system_prompt: str | None = None, model: str | None = None
    ) -> Any: ...

    def embed(self, texts: list[str]) -> list[list[float]]: ...


class PipelineError(Exception):
    """Raised when a level cannot be justified within the retry budget.

    The message is the last underlying error, verbatim.
    """

    def __init__(self, message: str, level: int | None = None) -> None:
        self.level = level
        super().__init__(message)


@dataclass
class PipelineOptions:
    """Options for controlling pipeline execution.

    Attributes:
        skip_heuristics: Send every entity to the LLM, even obvious ones
        skip_features: Do not recompute feature aggregations
        embed_drift: Use embeddings for drift when an embedding model is configured
    """

    skip_heuristics: bool = False
    skip_features: bool = False
    embed_drift: bool = True


class JustificationPipeline:
    """Orchestrates level-by-level justification against a graph store."""

    def __init__(
        self,
        graph_store: GraphStore,
        llm_client: JustificationClient,
        config: StrataConfig | None = None,
        registry: ParserRegistry | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            graph_store: Source of entities and sink for annotations
            llm_client: Structured-output and embedding client
            config: Strata configuration (uses defaults if None)
            registry: Structural parser registry (defaults to the global one)
        """
        self.store = graph_store
        self.llm = llm_client
        self.config = config or StrataConfig()
        self._registry = registry
        self._prompts = PromptBuilder(self.config.project or None)

    @property
    def registry(self) -> ParserRegistry:
        if self._registry is None:
            self._registry = get_registry()
        return self._registry

    # =========================================================================
    # Full run
    # =========================================================================

    def run_full(
        self, org_id: str, repo_id: str, options: PipelineOptions | None = None
    ) -> RunResult:
        """Justify every entity of a repository.

        Returns:
            RunResult; a failed run has status FAILED and the last error
            message verbatim
        """
        options = options or PipelineOptions()
        result = RunResult(org_id=org_id, repo_id=repo_id, kind=RunKind.FULL)

        def run() -> None:
            entities = self.store.get_all_entities(org_id, repo_id)
            edges = self.store.get_all_edges(org_id, repo_id)
            logger.info("Justifying %d entities (%d edges)", len(entities), len(edges))

            if self.config.pipeline.detect_communities:
                communities = detect_communities(entities, edges)
                labelled = apply_communities(entities, communities)
                logger.info(
                    "Detected %d communities (%d entities labelled)",
                    communities.total_communities,
                    labelled,
                )

            self._justify_entities(org_id, entities, edges, result, options)
            if not options.skip_features:
                self._refresh_features(org_id, repo_id, entities, edges, result)

        return self._execute(result, run)

    # =========================================================================
    # Incremental run
    # =========================================================================

    def run_incremental(
        self,
        org_id: str,
        repo_id: str,
        diff: EntityDiff,
        previous_versions: dict[str, Entity] | None = None,
        options: PipelineOptions | None = None,
    ) -> RunResult:
        """Bring annotations up to date after a re-index.

        Args:
            org_id: Owning organization
            repo_id: Repository
            diff: Added / updated / deleted entities (the store already holds
                the new versions)
            previous_versions: entity id -> pre-change version of updated entities
            options: Pipeline options
        """
        options = options or PipelineOptions()
        previous_versions = previous_versions or {}
        result = RunResult(org_id=org_id, repo_id=repo_id, kind=RunKind.INCREMENTAL)

        def run() -> None:
            moved_ids = self._carry_over_moves(org_id, diff, result)

            repair = repair_edges(diff, self.store, org_id, repo_id)
            result.edges_deleted = repair.edges_deleted

            changed = self._semantic_updates(org_id, diff.updated, previous_versions, result)

            drift_scores = self._score_drift(org_id, changed, previous_versions, options)
            if drift_scores:
                self.store.append_drift_scores(org_id, drift_scores)
                result.drift_scores = drift_scores

            drifted = [
                s.entity_id for s in drift_scores if s.category == DriftCategory.INTENT_DRIFT
            ]
            cascade_entities: list[Entity] = []
            if drifted:
                cascade = build_cascade_queue(drifted, self.store, org_id, self.config.cascade)
                result.cascade_entity_ids = cascade.cascade_queue
                for entity_id in cascade.cascade_queue:
                    entity = self.store.get_entity(org_id, entity_id)
                    if entity is not None:
                        cascade_entities.append(entity)

            to_justify: dict[str, Entity] = {}
            for entity in [*diff.added, *changed, *cascade_entities]:
                if entity.id not in moved_ids:
                    to_justify.setdefault(entity.id, entity)

            logger.info(
                "Incremental: %d added, %d changed (%d cosmetic), %d cascaded, %d moved",
                len(diff.added),
                len(changed),
                result.skipped_cosmetic,
                len(cascade_entities),
                len(moved_ids),
            )

            edges = self.store.get_all_edges(org_id, repo_id)
            self._justify_entities(org_id, list(to_justify.values()), edges, result, options)

            if not options.skip_features and (to_justify or moved_ids):
                entities = self.store.get_all_entities(org_id, repo_id)
                self._refresh_features(org_id, repo_id, entities, edges, result)

        return self._execute(result, run)

    def _carry_over_moves(self, org_id: str, diff: EntityDiff, result: RunResult) -> set[str]:
        moves = detect_moves(diff.added, diff.deleted, registry=self.registry)
        result.moves_detected = len(moves)

        carried: list[Justification] = []
        moved_ids: set[str] = set()
        for move in moves:
            previous = self.store.get_justification(org_id, move.from_entity.id)
            if previous is None:
                continue
            carried.append(
                replace(
                    previous,
                    entity_id=move.to_entity.id,
                    org_id=move.to_entity.org_id,
                    repo_id=move.to_entity.repo_id,
                )
            )
            moved_ids.add(move.to_entity.id)

        if carried:
            self.store.bulk_upsert_justifications(org_id, carried)
            logger.info("Carried %d justifications over to moved entities", len(carried))
        return moved_ids

    def _semantic_updates(
        self,
        org_id: str,
        updated: list[Entity],
        previous_versions: dict[str, Entity],
        result: RunResult,
    ) -> list[Entity]:
        changed = []
        for entity in updated:
            old = previous_versions.get(entity.id)
            if old is not None:
                semantic = is_semantic_change(
                    old.body or "",
                    entity.body or "",
                    entity.language,
                    registry=self.registry,
                    enabled=self.config.pipeline.ast_comparison,
                )
            else:
                current = self.store.get_justification(org_id, entity.id)
                fingerprint = compute_semantic_fingerprint(
                    entity.body, entity.language, self.registry
                )
                semantic = current is None or current.body_hash != fingerprint

            if semantic:
                changed.append(entity)
            else:
                result.skipped_cosmetic += 1
        return changed

    def _score_drift(
        self,
        org_id: str,
        changed: list[Entity],
        previous_versions: dict[str, Entity],
        options: PipelineOptions,
    ) -> list[DriftScore]:
        scored: list[tuple[Entity, Entity | None, str | None, str | None]] = []
        for entity in changed:
            current = self.store.get_justification(org_id, entity.id)
            old = previous_versions.get(entity.id)
            if current is None and old is None:
                continue
            old_hash = current.body_hash if current is not None else None
            if old_hash is None and old is not None:
                old_hash = compute_semantic_fingerprint(old.body, old.language, self.registry)
            new_hash = compute_semantic_fingerprint(entity.body, entity.language, self.registry)
            scored.append((entity, old, old_hash, new_hash))

        if not scored:
            return []

        embeddings: dict[str, tuple[list[float], list[float]]] = {}
        pairs = [(entity, old) for entity, old, _, _ in scored if old is not None]
        if options.embed_drift and self.config.llm.embedding_model and pairs:
            texts: list[str] = []
            for entity, old in pairs:
                texts.append(build_embedding_text(old))  # type: ignore[arg-type]
                texts.append(build_embedding_text(entity))
            try:
                vectors = self.llm.embed(texts)
            except LLMError as e:
                logger.warning("Embedding failed, drift falls back to intent_drift: %s", e)
            else:
                for i, (entity, _) in enumerate(pairs):
                    embeddings[entity.id] = (vectors[2 * i], vectors[2 * i + 1])

        scores = []
        for entity, _, old_hash, new_hash in scored:
            old_vec, new_vec = embeddings.get(entity.id, ([], []))
            drift = compute_drift(old_hash, new_hash, old_vec, new_vec)
            scores.append(build_drift_score(entity.id, drift, old_hash, new_hash))
            logger.debug("Drift %s: %s (%.3f)", entity.name, drift.category.value, drift.similarity)
        return scores

    # =========================================================================
    # Level processing
    # =========================================================================

    def _execute(self, result: RunResult, run: Callable[[], None]) -> RunResult:
        result.status = RunStatus.RUNNING
        self.store.update_run_status(result.repo_id, STATUS_JUSTIFYING)
        try:
            run()
        except (PipelineError, GraphQueryError, LLMError) as e:
            message = str(e)
            logger.error("Justification run failed: %s", message)
            result.add_error(RunError(component="pipeline", message=message, recoverable=False))
            result.fail(message)
            self.store.update_run_status(result.repo_id, STATUS_FAILED, message)
            return result

        result.complete()
        self.store.update_run_status(result.repo_id, STATUS_READY)
        logger.info(
            "Run complete: %d entities justified across %d levels",
            result.entities_justified,
            len(result.levels),
        )
        return result

    def _justify_entities(
        self,
        org_id: str,
        entities: list[Entity],
        edges: list[Edge],
        result: RunResult,
        options: PipelineOptions,
    ) -> None:
        if not entities:
            return
        levels = topological_sort_entities(entities, edges)
        names = {e.id: e.display_name for e in entities}
        logger.info("Processing %d entities in %d levels", len(entities), len(levels))

        for index, level in enumerate(levels):
            result.levels.append(self._justify_level(org_id, index, level, names, result, options))

    def _justify_level(
        self,
        org_id: str,
        index: int,
        entities: list[Entity],
        names: dict[str, str],
        result: RunResult,
        options: PipelineOptions,
    ) -> LevelResult:
        max_attempts = self.config.pipeline.max_attempts
        for attempt in range(1, max_attempts + 1):
            try:
                level_result = self._process_level(org_id, index, entities, names, options)
            except (LLMError, GraphQueryError) as e:
                component = "llm" if isinstance(e, LLMError) else "graph_store"
                result.add_error(
                    RunError(
                        component=component,
                        message=str(e),
                        level=index,
                        attempt=attempt,
                        recoverable=attempt < max_attempts,
                    )
                )
                if attempt == max_attempts:
                    raise PipelineError(str(e), level=index) from e
                logger.warning(
                    "Level %d attempt %d/%d failed, retrying: %s", index, attempt, max_attempts, e
                )
                continue

            level_result.attempts = attempt
            return level_result

        raise PipelineError(f"Level {index} was not processed", level=index)

    def _process_level(
        self,
        org_id: str,
        index: int,
        entities: list[Entity],
        names: dict[str, str],
        options: PipelineOptions,
    ) -> LevelResult:
        level_result = LevelResult(index=index, entity_count=len(entities))

        heuristic: list[Justification] = []
        pending: list[Entity] = []
        for entity in entities:
            hit = None if options.skip_heuristics else apply_heuristics(entity)
            if hit is not None:
                heuristic.append(hit.to_justification(entity))
            else:
                pending.append(entity)
        level_result.heuristic_count = len(heuristic)

        batches = self._plan_batches(org_id, pending)
        level_result.batch_count = len(batches)

        justified: list[Justification] = []
        if batches:
            workers = min(self.config.pipeline.max_workers, len(batches))
            with ThreadPoolExecutor(max_workers=workers) as pool:
                futures = [pool.submit(self._justify_batch, batch, names) for batch in batches]
                for future in futures:
                    justified.extend(future.result())

        by_id = {e.id: e for e in entities}
        rows = []
        for j in normalize_justifications(heuristic + justified):
            quality = score_justification(j)
            entity = by_id[j.entity_id]
            rows.append(
                replace(
                    j,
                    quality_score=quality.score,
                    quality_flags=quality.flags,
                    body_hash=compute_semantic_fingerprint(
                        entity.body, entity.language, self.registry
                    ),
                )
            )

        self.store.bulk_upsert_justifications(org_id, rows)
        level_result.justified_count = len(rows)
        logger.structured(
            logging.INFO,
            f"Level {index}: {len(rows)} justified",
            org_id=org_id,
            level_index=index,
            heuristic=level_result.heuristic_count,
            batches=level_result.batch_count,
        )
        return level_result

    def _plan_batches(self, org_id: str, entities: list[Entity]) -> list[Batch]:
        """Fetch graph context once per chunk of entities and pack them into batches."""
        batcher = self.config.batcher
        if not self.config.pipeline.use_batching:
            batcher = replace(batcher, max_entities_per_batch=1)

        batches: list[Batch] = []
        callee_cache: dict[str, Justification | None] = {}
        chunk_size = max(batcher.max_entities_per_batch, 1)
        for start in range(0, len(entities), chunk_size):
            chunk = entities[start : start + chunk_size]
            contexts = build_graph_contexts(
                chunk, self.store, org_id, depth=self.config.pipeline.context_depth
            )
            items = []
            for entity in chunk:
                context = contexts[entity.id]
                callees = []
                for neighbor in context.neighbors:
                    if neighbor.direction != "outbound":
                        continue
                    if neighbor.id not in callee_cache:
                        callee_cache[neighbor.id] = self.store.get_justification(
                            org_id, neighbor.id
                        )
                    if callee_cache[neighbor.id] is not None:
                        callees.append(callee_cache[neighbor.id])
                items.append(
                    BatchItem(entity=entity, context=context, callee_justifications=callees)
                )
            batches.extend(create_batches(items, batcher))
        return batches

    def _justify_batch(self, batch: Batch, names: dict[str, str]) -> list[Justification]:
        tiers = [route_model(item.entity, item.context.centrality).tier for item in batch.items]
        # Heuristic-routed entities only reach the LLM with skip_heuristics
        tier = max(
            (t if t in _TIER_RANK else ModelTier.STANDARD for t in tiers),
            key=lambda t: _TIER_RANK[t],
        )
        model = self.config.llm.model_for_tier(tier.value)
        prompt = self._prompts.build_batch_prompt(batch, names)

        data = self.llm.generate_object(
            prompt, system_prompt=self._prompts.system_prompt, model=model
        )
        justifications = parse_batch_response(data, batch, tier.value, model)
        logger.debug("Batch of %d justified with %s (%s)", len(batch), model, tier.value)
        return justifications

    # =========================================================================
    # Features
    # =========================================================================

    def _refresh_features(
        self,
        org_id: str,
        repo_id: str,
        entities: list[Entity],
        edges: list[Edge],
        result: RunResult,
    ) -> None:
        current = [
            j for e in entities if (j := self.store.get_justification(org_id, e.id)) is not None
        ]
        if not current:
            return

        merged = merge_similar_feature_tags(current)
        retagged = [
            m for m, c in zip(merged, current, strict=True) if m.feature_tag != c.feature_tag
        ]
        if retagged:
            self.store.bulk_upsert_justifications(org_id, retagged)
            logger.info("Merged feature tags on %d justifications", len(retagged))

        features = aggregate_features(merged, entities, edges, org_id, repo_id)
        self.store.bulk_upsert_feature_aggregations(org_id, features)
        result.features = features
        logger.info("Aggregated %d features", len(features))

