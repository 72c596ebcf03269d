"""Justification post-processing.

Cleans up raw model output and rolls it up into features:
- normalize_justifications: canonical casing for tags and concepts
- merge_similar_feature_tags: collapse near-duplicate tags (user_auth / user_authn)
- extract_semantic_triples: deduplicated facts across justifications
- deduplicate_features / aggregate_features: per-feature rollups
- cluster_feature_areas: group feature tags that share domain concepts
"""

import re
from collections import Counter
from dataclasses import replace

from strata.models.graph import Edge, Entity
from strata.models.justification import (
    FeatureAggregation,
    Justification,
    SemanticTriple,
    Taxonomy,
)

TAG_MERGE_THRESHOLD = 0.75
AREA_OVERLAP_THRESHOLD = 2
MAX_ENTRY_POINTS = 10
HOT_PATH_STARTS = 3
HOT_PATH_DEPTH = 10

_WHITESPACE = re.compile(r"\s+")
_NON_TAG_CHARS = re.compile(r"[^a-z0-9_]")


def normalize_feature_tag(tag: str) -> str:
    tag = _WHITESPACE.sub("_", tag.lower().strip())
    return _NON_TAG_CHARS.sub("", tag)


def normalize_justifications(justifications: list[Justification]) -> list[Justification]:
    """Return copies with canonical feature tags, concepts and compliance tags.

    Idempotent: normalizing an already normalized list changes nothing.
    """
    return [
        replace(
            j,
            feature_tag=normalize_feature_tag(j.feature_tag),
            domain_concepts=[c.lower().strip() for c in j.domain_concepts],
            compliance_tags=[t.upper().strip() for t in j.compliance_tags],
        )
        for j in justifications
    ]


# =============================================================================
# Feature tag merging
# =============================================================================


def levenshtein_distance(a: str, b: str) -> int:
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    prev = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        curr = [i] + [0] * len(b)
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            curr[j] = min(prev[j] + 1, curr[j - 1] + 1, prev[j - 1] + cost)
        prev = curr
    return prev[-1]


def tag_similarity(a: str, b: str) -> float:
    """1.0 for identical tags, falling toward 0.0 as edit distance grows."""
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1.0 - levenshtein_distance(a, b) / longest


def build_tag_merge_map(tags: list[str], threshold: float = TAG_MERGE_THRESHOLD) -> dict[str, str]:
    """Map near-duplicate tags onto the most frequent tag of their cluster.

    Clusters are single-linkage: a tag joins a cluster when it is similar
    enough to any member. Frequency ties go to the lexicographically
    smallest tag. Canonical tags do not appear as keys.
    """
    freq = Counter(tags)
    unique = list(freq)
    if len(unique) <= 1:
        return {}

    merge_map: dict[str, str] = {}
    assigned: set[str] = set()
    for tag in unique:
        if tag in assigned:
            continue
        cluster = [tag]
        assigned.add(tag)
        for other in unique:
            if other in assigned:
                continue
            if any(tag_similarity(member, other) >= threshold for member in cluster):
                cluster.append(other)
                assigned.add(other)

        if len(cluster) > 1:
            canonical = min(cluster, key=lambda t: (-freq[t], t))
            for member in cluster:
                if member != canonical:
                    merge_map[member] = canonical

    return merge_map


def merge_similar_feature_tags(justifications: list[Justification]) -> list[Justification]:
    """Rewrite feature tags so near-duplicates share one canonical tag."""
    merge_map = build_tag_merge_map([j.feature_tag for j in justifications])
    if not merge_map:
        return list(justifications)
    return [
        replace(j, feature_tag=merge_map[j.feature_tag]) if j.feature_tag in merge_map else j
        for j in justifications
    ]


def cluster_feature_areas(justifications: list[Justification]) -> dict[str, str]:
    """Map feature tags to a broader feature area.

    Two tags belong to the same area when their justifications share at
    least two domain concepts. The area is named after its most frequent tag.
    """
    concepts: dict[str, set[str]] = {}
    for j in justifications:
        concepts.setdefault(j.feature_tag, set()).update(
            c.lower().strip() for c in j.domain_concepts
        )

    tags = list(concepts)
    if len(tags) <= 1:
        return {}

    freq = Counter(j.feature_tag for j in justifications)
    area_map: dict[str, str] = {}
    assigned: set[str] = set()
    for tag in tags:
        if tag in assigned:
            continue
        cluster = [tag]
        assigned.add(tag)
        for other in tags:
            if other in assigned:
                continue
            if len(concepts[tag] & concepts[other]) >= AREA_OVERLAP_THRESHOLD:
                cluster.append(other)
                assigned.add(other)

        if len(cluster) > 1:
            canonical = min(cluster, key=lambda t: (-freq[t], t))
            for member in cluster:
                if member != canonical:
                    area_map[member] = canonical

    return area_map


# =============================================================================
# Triples and features
# =============================================================================


def extract_semantic_triples(justifications: list[Justification]) -> list[SemanticTriple]:
    """Flatten triples across justifications, dropping exact duplicates."""
    seen: set[tuple[str, str, str]] = set()
    triples: list[SemanticTriple] = []
    for j in justifications:
        for triple in j.semantic_triples:
            key = (triple.subject, triple.predicate, triple.object)
            if key not in seen:
                seen.add(key)
                triples.append(triple)
    return triples


def _group_by_tag(justifications: list[Justification]) -> dict[str, list[Justification]]:
    groups: dict[str, list[Justification]] = {}
    for j in justifications:
        groups.setdefault(j.feature_tag, []).append(j)
    return groups


def _rollup(tag: str, rows: list[Justification], org_id: str, repo_id: str) -> FeatureAggregation:
    breakdown = {t.value: 0 for t in Taxonomy}
    for j in rows:
        breakdown[j.taxonomy.value] += 1
    return FeatureAggregation(
        feature_tag=tag,
        entity_count=len({j.entity_id for j in rows}),
        average_confidence=sum(j.confidence for j in rows) / len(rows),
        org_id=org_id,
        repo_id=repo_id,
        taxonomy_breakdown=breakdown,
    )


def deduplicate_features(
    justifications: list[Justification], org_id: str = "", repo_id: str = ""
) -> list[FeatureAggregation]:
    """One aggregation per feature tag, in first-seen order."""
    return [
        _rollup(tag, rows, org_id, repo_id)
        for tag, rows in _group_by_tag(justifications).items()
    ]


def aggregate_features(
    justifications: list[Justification],
    entities: list[Entity],
    edges: list[Edge],
    org_id: str = "",
    repo_id: str = "",
) -> list[FeatureAggregation]:
    """Feature rollups with entry points and hot paths.

    Entry points are non-file entities of a feature that are called from
    outside it, or not called at all. Hot paths follow the first in-feature
    callee from up to three entry points.
    """
    kinds = {e.id: e.kind for e in entities}
    callers: dict[str, set[str]] = {}
    callees: dict[str, list[str]] = {}
    for edge in edges:
        if edge.kind != "calls":
            continue
        callers.setdefault(edge.to_id, set()).add(edge.from_id)
        callees.setdefault(edge.from_id, []).append(edge.to_id)

    features: list[FeatureAggregation] = []
    for tag, rows in _group_by_tag(justifications).items():
        member_ids = list(dict.fromkeys(j.entity_id for j in rows))
        members = set(member_ids)

        entry_points = []
        for entity_id in member_ids:
            entity_callers = callers.get(entity_id, set())
            if entity_callers - members or not entity_callers:
                if entity_id in kinds and kinds[entity_id] != "file":
                    entry_points.append(entity_id)

        hot_paths = []
        for start in entry_points[:HOT_PATH_STARTS]:
            path = _follow_calls(start, members, callees)
            if len(path) > 1:
                hot_paths.append(path)

        feature = _rollup(tag, rows, org_id, repo_id)
        feature.entry_points = entry_points[:MAX_ENTRY_POINTS]
        feature.hot_paths = hot_paths
        features.append(feature)

    return features


def _follow_calls(start: str, boundary: set[str], callees: dict[str, list[str]]) -> list[str]:
    path = [start]
    visited = {start}
    current = start
    for _ in range(HOT_PATH_DEPTH):
        nxt = next(
            (c for c in callees.get(current, []) if c in boundary and c not in visited), None
        )
        if nxt is None:
            break
        visited.add(nxt)
        path.append(nxt)
        current = nxt
    return path
