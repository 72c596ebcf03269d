"""Strata data models.

This module exports the core records used throughout the pipeline:
- Entity / Edge / EntityDiff / Subgraph: Knowledge graph records
- Justification / SemanticTriple / FeatureAggregation: Annotation layer
- DriftScore / DriftCategory: Change significance history
- RunResult / RunStatus: Pipeline execution records
"""

from strata.models.graph import (
    EDGE_KINDS,
    ORDERING_EDGE_KINDS,
    Edge,
    Entity,
    EntityDiff,
    Subgraph,
)
from strata.models.justification import (
    DriftCategory,
    DriftScore,
    FeatureAggregation,
    Justification,
    ModelTier,
    SemanticTriple,
    Taxonomy,
)
from strata.models.llm_config import VALID_PROVIDERS, LLMConfig
from strata.models.run import LevelResult, RunError, RunKind, RunResult, RunStatus

__all__ = [
    "DriftCategory",
    "DriftScore",
    "EDGE_KINDS",
    "Edge",
    "Entity",
    "EntityDiff",
    "FeatureAggregation",
    "Justification",
    "LLMConfig",
    "LevelResult",
    "ModelTier",
    "ORDERING_EDGE_KINDS",
    "RunError",
    "RunKind",
    "RunResult",
    "RunStatus",
    "SemanticTriple",
    "Subgraph",
    "Taxonomy",
    "VALID_PROVIDERS",
]
