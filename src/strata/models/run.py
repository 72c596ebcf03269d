"""Pipeline run records.

This module contains entities related to pipeline execution:
- RunStatus: Lifecycle of a justification or incremental run
- RunError: Error captured during a run
- LevelResult: Outcome of one topological level
- RunResult: Aggregated outcome of a run
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from strata.models.justification import DriftScore, FeatureAggregation


class RunStatus(Enum):
    """Status of a pipeline run."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class RunKind(Enum):
    """Kind of pipeline run."""

    FULL = "full"
    INCREMENTAL = "incremental"


@dataclass
class RunError:
    """Error encountered during a run.

    Attributes:
        component: Component that failed (graph_context, llm, store, ...)
        message: Error description, kept verbatim
        level: Topological level being processed, if any
        attempt: Attempt number the error occurred on
        recoverable: Whether the run continued after this error
    """

    component: str
    message: str
    level: int | None = None
    attempt: int = 1
    recoverable: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "component": self.component,
            "message": self.message,
            "level": self.level,
            "attempt": self.attempt,
            "recoverable": self.recoverable,
        }


@dataclass
class LevelResult:
    """Outcome of processing one topological level.

    Attributes:
        index: Level index (0 = leaves)
        entity_count: Entities in the level
        justified_count: Justifications stored for the level
        batch_count: LLM batches issued
        heuristic_count: Entities justified without the LLM
        attempts: Attempts needed to complete the level
    """

    index: int
    entity_count: int
    justified_count: int = 0
    batch_count: int = 0
    heuristic_count: int = 0
    attempts: int = 1


@dataclass
class RunResult:
    """Aggregated outcome of a pipeline run."""

    org_id: str
    repo_id: str
    kind: RunKind = RunKind.FULL
    status: RunStatus = RunStatus.PENDING
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None
    levels: list[LevelResult] = field(default_factory=list)
    features: list[FeatureAggregation] = field(default_factory=list)
    drift_scores: list[DriftScore] = field(default_factory=list)
    cascade_entity_ids: list[str] = field(default_factory=list)
    edges_deleted: int = 0
    moves_detected: int = 0
    skipped_cosmetic: int = 0
    errors: list[RunError] = field(default_factory=list)
    error_message: str | None = None

    @property
    def entities_justified(self) -> int:
        return sum(level.justified_count for level in self.levels)

    def add_error(self, error: RunError) -> None:
        self.errors.append(error)

    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def fail(self, message: str) -> None:
        """Mark the run failed, retaining the error message verbatim."""
        self.status = RunStatus.FAILED
        self.error_message = message
        self.finished_at = datetime.now(UTC)

    def complete(self) -> None:
        self.status = RunStatus.COMPLETED
        self.finished_at = datetime.now(UTC)

    def to_dict(self) -> dict[str, Any]:
        return {
            "org_id": self.org_id,
            "repo_id": self.repo_id,
            "kind": self.kind.value,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "entities_justified": self.entities_justified,
            "levels": [
                {
                    "index": lvl.index,
                    "entity_count": lvl.entity_count,
                    "justified_count": lvl.justified_count,
                    "batch_count": lvl.batch_count,
                    "heuristic_count": lvl.heuristic_count,
                    "attempts": lvl.attempts,
                }
                for lvl in self.levels
            ],
            "features": [f.to_dict() for f in self.features],
            "drift_scores": [d.to_dict() for d in self.drift_scores],
            "cascade_entity_ids": list(self.cascade_entity_ids),
            "edges_deleted": self.edges_deleted,
            "moves_detected": self.moves_detected,
            "skipped_cosmetic": self.skipped_cosmetic,
            "errors": [e.to_dict() for e in self.errors],
            "error_message": self.error_message,
        }
