"""Strata - Incremental knowledge-graph justification pipeline.

Strata keeps a code knowledge graph (entities and the edges between them)
consistent and semantically annotated as commits land. It runs after a
repository has been parsed into raw entities and edges.

Core principles:
- Deterministic Identity: entity and edge ids are pure hashes of their fields
- Bottom-Up Annotation: callees are justified before their callers
- Bounded Cost: entities are packed into token-budgeted LLM batches
- Conservative Change Detection: when in doubt, treat a change as semantic
- Append-Only History: justifications are superseded, never overwritten
"""

__version__ = "0.1.0"
__author__ = "Strata Contributors"
