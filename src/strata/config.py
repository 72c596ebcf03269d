"""Strata configuration system.

Configuration is YAML-based with minimal CLI overrides (--config, --ci).
Supports environment variable substitution (${VAR}) in config files.

Configuration file discovery (in priority order):
1. CLI --config argument
2. ./.strata/config.yaml
3. ./strata.yaml
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from strata.indexer.cascade import CascadeConfig
from strata.justification.batcher import BatcherConfig
from strata.justification.prompts import ProjectContext
from strata.llm.rate_limiter import RateLimitConfig
from strata.models.llm_config import LLMConfig

DEFAULT_OLLAMA_BASE = "http://localhost:11434"

# =============================================================================
# Configuration Dataclasses
# =============================================================================


@dataclass
class PipelineConfig:
    """Orchestrator settings.

    Attributes:
        max_attempts: Attempts per topological level before the run fails
        max_workers: Concurrent LLM batches within a level
        context_depth: Hop depth of graph context subgraphs
        ast_comparison: Use structural comparison to skip cosmetic changes
        use_batching: Pack entities into multi-entity LLM calls
        detect_communities: Label entities with Louvain communities before justifying
    """

    max_attempts: int = 3
    max_workers: int = 4
    context_depth: int = 2
    ast_comparison: bool = True
    use_batching: bool = True
    detect_communities: bool = True

    def __post_init__(self) -> None:
        """Validate pipeline configuration."""
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1 (got {self.max_attempts})")
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be >= 1 (got {self.max_workers})")
        if self.context_depth < 1:
            raise ValueError(f"context_depth must be >= 1 (got {self.context_depth})")


def _default_llm() -> LLMConfig:
    return LLMConfig(provider="ollama", model="llama3.2", api_base=DEFAULT_OLLAMA_BASE)


@dataclass
class StrataConfig:
    """Top-level Strata configuration.

    Attributes:
        llm: LLM provider settings (Ollama default, nothing leaves the machine)
        batcher: Token budget for batched justification calls
        rate_limit: Requests / tokens per minute
        cascade: Bounds for cascade re-justification
        pipeline: Orchestrator settings
        project: Project context included in every prompt
    """

    llm: LLMConfig = field(default_factory=_default_llm)
    batcher: BatcherConfig = field(default_factory=BatcherConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    cascade: CascadeConfig = field(default_factory=CascadeConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    project: ProjectContext = field(default_factory=ProjectContext)

    # Runtime overrides (set by CLI)
    _config_path: Path | None = field(default=None, repr=False)

    @property
    def config_path(self) -> Path | None:
        """Get the path to the config file that was loaded."""
        return self._config_path


# =============================================================================
# Environment Variable Substitution
# =============================================================================


_ENV_VAR = re.compile(r"\$\{([^}]+)\}")


def substitute_env_vars(value: Any) -> Any:
    """Substitute environment variables in config values.

    Supports ${VAR} syntax. Example: ${ANTHROPIC_API_KEY} -> value of
    ANTHROPIC_API_KEY

    Raises:
        ValueError: If a referenced variable is not set
    """
    if isinstance(value, str):

        def replace_var(match: re.Match[str]) -> str:
            var_name = match.group(1)
            env_value = os.environ.get(var_name)
            if env_value is None:
                raise ValueError(f"Environment variable not set: {var_name}")
            return env_value

        return _ENV_VAR.sub(replace_var, value)

    elif isinstance(value, dict):
        return {k: substitute_env_vars(v) for k, v in value.items()}

    elif isinstance(value, list):
        return [substitute_env_vars(v) for v in value]

    return value


# =============================================================================
# Config File Discovery
# =============================================================================


def find_config_file(start_path: Path | None = None) -> Path | None:
    """Find configuration file in standard locations.

    Search order:
    1. ./.strata/config.yaml
    2. ./strata.yaml
    """
    if start_path is None:
        start_path = Path.cwd()

    start_path = start_path.resolve()

    candidates = [
        start_path / ".strata" / "config.yaml",
        start_path / "strata.yaml",
    ]

    for candidate in candidates:
        if candidate.exists():
            return candidate

    return None


# =============================================================================
# Config Loading
# =============================================================================


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise ValueError(f"Config section '{name}' must be a mapping")
    return value


def load_config_from_dict(data: dict[str, Any]) -> StrataConfig:
    """Load configuration from a dictionary.

    Raises:
        ValueError: If a value is invalid or a referenced env var is unset
    """
    data = substitute_env_vars(data)

    config = StrataConfig()

    if "llm" in data:
        llm_data = dict(_section(data, "llm"))
        provider = str(llm_data.get("provider", "ollama")).lower()
        if provider == "ollama" and not llm_data.get("api_base"):
            llm_data["api_base"] = DEFAULT_OLLAMA_BASE
        llm_data.setdefault("provider", provider)
        llm_data.setdefault("model", "llama3.2")
        config.llm = LLMConfig.from_dict(llm_data)

    if "batcher" in data:
        batcher_data = _section(data, "batcher")
        defaults = BatcherConfig()
        config.batcher = BatcherConfig(
            max_input_tokens=batcher_data.get("max_input_tokens", defaults.max_input_tokens),
            max_entities_per_batch=batcher_data.get(
                "max_entities_per_batch", defaults.max_entities_per_batch
            ),
            system_prompt_tokens=batcher_data.get(
                "system_prompt_tokens", defaults.system_prompt_tokens
            ),
            output_tokens_per_entity=batcher_data.get(
                "output_tokens_per_entity", defaults.output_tokens_per_entity
            ),
        )

    if "rate_limit" in data:
        rate_data = _section(data, "rate_limit")
        config.rate_limit = RateLimitConfig(
            requests_per_minute=rate_data.get("requests_per_minute", 15),
            tokens_per_minute=rate_data.get("tokens_per_minute", 200_000),
        )

    if "cascade" in data:
        cascade_data = _section(data, "cascade")
        config.cascade = CascadeConfig(
            max_hops=cascade_data.get("max_hops", 2),
            max_entities=cascade_data.get("max_entities", 50),
            centrality_threshold=cascade_data.get("centrality_threshold", 50),
        )

    if "pipeline" in data:
        pipeline_data = _section(data, "pipeline")
        defaults_p = PipelineConfig()
        config.pipeline = PipelineConfig(
            max_attempts=pipeline_data.get("max_attempts", defaults_p.max_attempts),
            max_workers=pipeline_data.get("max_workers", defaults_p.max_workers),
            context_depth=pipeline_data.get("context_depth", defaults_p.context_depth),
            ast_comparison=pipeline_data.get("ast_comparison", defaults_p.ast_comparison),
            use_batching=pipeline_data.get("use_batching", defaults_p.use_batching),
            detect_communities=pipeline_data.get(
                "detect_communities", defaults_p.detect_communities
            ),
        )

    if "project" in data:
        project_data = _section(data, "project")
        config.project = ProjectContext(
            name=project_data.get("name"),
            description=project_data.get("description"),
            domain=project_data.get("domain"),
            tech_stack=list(project_data.get("tech_stack") or []),
        )

    return config


def load_config(
    config_path: Path | None = None,
    auto_discover: bool = True,
) -> StrataConfig:
    """Load configuration from file.

    Args:
        config_path: Explicit path to config file
        auto_discover: Whether to search for config file if not specified

    Raises:
        FileNotFoundError: If config_path specified but doesn't exist
    """
    if config_path is not None:
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        found_path = config_path
    elif auto_discover:
        found_path = find_config_file()
    else:
        found_path = None

    if found_path is not None:
        with open(found_path) as f:
            data = yaml.safe_load(f) or {}
        config = load_config_from_dict(data)
        config._config_path = found_path
    else:
        config = StrataConfig()

    return config


def create_default_config() -> str:
    """Create default configuration YAML content.

    Returns:
        YAML string with default configuration and comments
    """
    return '''# Strata Configuration

# LLM settings used for justification and drift embeddings
# Default: Ollama (no code leaves the machine)
llm:
  provider: "ollama"     # ollama, claude, openai, gemini, bedrock
  model: "llama3.2"      # Standard tier model
  # fast_model: "llama3.2:1b"       # Variables and constants
  # premium_model: "llama3.1:70b"   # High-centrality entities
  # embedding_model: "nomic-embed-text"  # Enables embedding-based drift detection
  # api_key: "${ANTHROPIC_API_KEY}"  # Required for claude/openai/gemini
  api_base: "http://localhost:11434"
  temperature: 0         # MUST be 0 for reproducible justifications
  max_tokens: 4096

# Token budget for batched justification calls
batcher:
  max_input_tokens: 7000
  max_entities_per_batch: 15
  system_prompt_tokens: 500
  output_tokens_per_entity: 150

# Provider limits over a sliding 60s window (0 = unlimited)
rate_limit:
  requests_per_minute: 15
  tokens_per_minute: 200000

# Re-justification of callers after an intent change
cascade:
  max_hops: 2
  max_entities: 50
  centrality_threshold: 50

pipeline:
  max_attempts: 3
  max_workers: 4
  context_depth: 2
  ast_comparison: true
  use_batching: true
  detect_communities: true

# Project context included in every prompt
# project:
#   name: "checkout-service"
#   description: "Handles carts, payments and order confirmation"
#   domain: "e-commerce"
#   tech_stack: ["python", "fastapi", "postgres"]
'''
