"""Strata CLI interface.

Commands operate on a JSON graph snapshot ({"entities": [...], "edges": [...]}):
- init: Initialize Strata configuration
- levels: Print the topological justification order
- communities: Print detected Louvain communities
- batches: Print the LLM batch plan
- justify: Run the full justification pipeline
- score: Quality-score a justifications file

Global options:
- --config: Path to configuration file
- --verbose: Enable verbose output with timestamps
- --quiet: Suppress info messages
- --ci: JSON log output
- --version: Show version and exit
"""

import json
from pathlib import Path
from typing import Annotated

import typer

from strata import __version__
from strata.config import StrataConfig, create_default_config, load_config
from strata.store.memory import InMemoryGraphStore
from strata.utils.logging import configure_from_cli, get_logger

# Create Typer app
app = typer.Typer(
    name="strata",
    help="Dependency-ordered business justification of code knowledge graphs",
    add_completion=False,
    no_args_is_help=True,
)

# Global state
_config: StrataConfig | None = None
_logger = get_logger()

SnapshotArg = Annotated[
    Path,
    typer.Argument(
        help="Graph snapshot JSON ({'entities': [...], 'edges': [...]})",
        exists=True,
        dir_okay=False,
    ),
]
OrgOption = Annotated[str, typer.Option("--org", help="Organization id filter")]
RepoOption = Annotated[str, typer.Option("--repo", help="Repository id filter")]
JsonOption = Annotated[bool, typer.Option("--json", help="Output results as JSON")]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"strata {__version__}")
        raise typer.Exit()


def _get_config() -> StrataConfig:
    return _config or StrataConfig()


def _load_store(snapshot: Path) -> InMemoryGraphStore:
    try:
        return InMemoryGraphStore.load(snapshot)
    except (OSError, ValueError, KeyError) as e:
        _logger.error(f"Invalid snapshot {snapshot}: {e}")
        raise typer.Exit(1)


@app.callback()
def main(
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration file",
            exists=True,
            dir_okay=False,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable verbose output with timestamps",
        ),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option(
            "--quiet",
            "-q",
            help="Suppress info messages (warnings and errors only)",
        ),
    ] = False,
    ci: Annotated[
        bool,
        typer.Option(
            "--ci",
            help="Enable CI mode with JSON output",
        ),
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = False,
) -> None:
    """Strata - business justification for code knowledge graphs.

    Annotates every entity of a repository graph with an LLM-derived
    business purpose, leaves first, and keeps the annotations consistent
    as the code changes.
    """
    global _config

    # Configure logging based on CLI flags
    configure_from_cli(verbose=verbose, quiet=quiet, ci=ci)

    # Load configuration
    try:
        _config = load_config(config_path=config)
        if _config.config_path:
            _logger.debug(f"Loaded config from: {_config.config_path}")
    except FileNotFoundError as e:
        _logger.error(str(e))
        raise typer.Exit(1)
    except ValueError as e:
        _logger.error(f"Failed to load config: {e}")
        raise typer.Exit(1)


# =============================================================================
# init command
# =============================================================================


@app.command()
def init(
    force: Annotated[
        bool,
        typer.Option(
            "--force",
            help="Overwrite existing config",
        ),
    ] = False,
) -> None:
    """Initialize Strata configuration in ./.strata/config.yaml."""
    strata_dir = Path(".strata")
    strata_dir.mkdir(exist_ok=True)
    config_file = strata_dir / "config.yaml"

    if config_file.exists() and not force:
        _logger.error(f"Config already exists: {config_file}")
        _logger.info("Use --force to overwrite")
        raise typer.Exit(1)

    config_file.write_text(create_default_config())
    _logger.info(f"Created config: {config_file}")
    typer.echo(f"Strata configuration initialized: {config_file}")


# =============================================================================
# Inspection commands
# =============================================================================


@app.command()
def levels(
    snapshot: SnapshotArg,
    org: OrgOption = "",
    repo: RepoOption = "",
    json_output: JsonOption = False,
) -> None:
    """Print entities grouped into topological levels (leaves first)."""
    from strata.justification.topological_sort import topological_sort_entities

    store = _load_store(snapshot)
    entities = store.get_all_entities(org, repo)
    ordered = topological_sort_entities(entities, store.get_all_edges(org, repo))

    if json_output:
        typer.echo(json.dumps([[e.id for e in level] for level in ordered], indent=2))
        return

    for index, level in enumerate(ordered):
        typer.echo(f"Level {index} ({len(level)} entities)")
        for entity in level:
            typer.echo(f"  {entity.id}  {entity.display_name}")


@app.command()
def communities(
    snapshot: SnapshotArg,
    org: OrgOption = "",
    repo: RepoOption = "",
    json_output: JsonOption = False,
) -> None:
    """Print Louvain communities of the graph."""
    from strata.justification.community import detect_communities

    store = _load_store(snapshot)
    result = detect_communities(store.get_all_entities(org, repo), store.get_all_edges(org, repo))

    if json_output:
        payload = {
            "total_communities": result.total_communities,
            "communities": {
                str(cid): {
                    "label": info.label,
                    "entity_count": info.entity_count,
                    "top_entities": info.top_entities,
                }
                for cid, info in result.communities.items()
            },
            "assignments": result.assignments,
        }
        typer.echo(json.dumps(payload, indent=2))
        return

    typer.echo(f"{result.total_communities} communities ({len(result.communities)} labelled)")
    for cid, info in sorted(result.communities.items()):
        typer.echo(f"  [{cid}] {info.label}: {info.entity_count} entities")


@app.command()
def batches(
    snapshot: SnapshotArg,
    org: OrgOption = "",
    repo: RepoOption = "",
    json_output: JsonOption = False,
) -> None:
    """Print the batch plan for justifying every entity."""
    from strata.justification.batcher import BatchItem, create_batches
    from strata.justification.graph_context import build_graph_contexts
    from strata.justification.model_router import apply_heuristics
    from strata.justification.topological_sort import topological_sort_entities

    config = _get_config()
    store = _load_store(snapshot)
    entities = store.get_all_entities(org, repo)
    ordered = topological_sort_entities(entities, store.get_all_edges(org, repo))

    plan = []
    for index, level in enumerate(ordered):
        pending = [e for e in level if apply_heuristics(e) is None]
        contexts = (
            build_graph_contexts(pending, store, org, config.pipeline.context_depth)
            if pending
            else {}
        )
        items = [BatchItem(entity=e, context=contexts[e.id]) for e in pending]
        for batch in create_batches(items, config.batcher):
            plan.append(
                {
                    "level": index,
                    "entity_ids": [e.id for e in batch.entities],
                    "estimated_tokens": batch.total_estimated_tokens,
                }
            )

    if json_output:
        typer.echo(json.dumps(plan, indent=2))
        return

    typer.echo(f"{len(plan)} batches")
    for entry in plan:
        typer.echo(
            f"  level {entry['level']}: {len(entry['entity_ids'])} entities, "
            f"~{entry['estimated_tokens']} tokens"
        )


# =============================================================================
# justify command
# =============================================================================


@app.command()
def justify(
    snapshot: SnapshotArg,
    output: Annotated[
        Path,
        typer.Option(
            "--output",
            "-o",
            help="Where to write the annotated snapshot",
        ),
    ] = Path("strata-output.json"),
    org: OrgOption = "",
    repo: RepoOption = "",
    skip_heuristics: Annotated[
        bool,
        typer.Option(
            "--skip-heuristics",
            help="Send every entity to the LLM",
        ),
    ] = False,
) -> None:
    """Justify every entity of a snapshot with the configured LLM.

    Exit codes:
        0: All entities justified
        1: Run failed (the error is reported verbatim)
    """
    from strata.llm import RateLimiter, create_client
    from strata.pipeline import JustificationPipeline, PipelineOptions

    config = _get_config()
    store = _load_store(snapshot)
    for warning in config.llm.validate():
        _logger.warning(warning)

    try:
        client = create_client(config.llm, rate_limiter=RateLimiter(config.rate_limit))
    except ValueError as e:
        _logger.error(str(e))
        raise typer.Exit(1)

    pipeline = JustificationPipeline(store, client, config)
    result = pipeline.run_full(org, repo, PipelineOptions(skip_heuristics=skip_heuristics))

    payload = store.snapshot()
    payload["run"] = result.to_dict()
    output.write_text(json.dumps(payload, indent=2))

    if result.error_message:
        _logger.error(f"Justification failed: {result.error_message}")
        raise typer.Exit(1)

    typer.echo(
        f"Justified {result.entities_justified} entities in {len(result.levels)} levels, "
        f"{len(result.features)} features -> {output}"
    )


# =============================================================================
# score command
# =============================================================================


@app.command()
def score(
    justifications: Annotated[
        Path,
        typer.Argument(
            help="JSON file with a list of justifications (or a 'justifications' key)",
            exists=True,
            dir_okay=False,
        ),
    ],
    json_output: JsonOption = False,
) -> None:
    """Quality-score existing justifications."""
    from strata.justification.quality import score_justification
    from strata.models import Justification

    data = json.loads(justifications.read_text())
    if isinstance(data, dict):
        data = data.get("justifications", [])

    rows = []
    for raw in data:
        j = Justification.from_dict(raw)
        quality = score_justification(j)
        rows.append({"entity_id": j.entity_id, "score": quality.score, "flags": quality.flags})

    if json_output:
        typer.echo(json.dumps(rows, indent=2))
        return

    for row in rows:
        flags = f"  ({', '.join(row['flags'])})" if row["flags"] else ""
        typer.echo(f"{row['score']:.2f}  {row['entity_id']}{flags}")
    if rows:
        average = sum(r["score"] for r in rows) / len(rows)
        typer.echo(f"\nAverage quality: {average:.2f} over {len(rows)} justifications")


if __name__ == "__main__":
    app()
