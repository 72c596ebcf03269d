"""Justification engine.

Ordering (topological levels), graph context, batching, prompting, response
parsing, post-processing, quality scoring and drift classification for
LLM-derived business justifications.
"""
