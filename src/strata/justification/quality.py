"""Heuristic quality scoring of justifications.

Scores are diagnostics stored next to the justification. They never block
the pipeline; low scores point reviewers at annotations worth overriding.
"""

import re
from dataclasses import dataclass, field

from strata.models.justification import Justification, Taxonomy

GENERIC_PHRASES = (
    "handles operations",
    "manages data",
    "performs operations",
    "handles processing",
    "manages the",
    "provides functionality",
    "utility function",
    "helper function",
    "does various",
    "general purpose",
    "handles various",
)

PROGRAMMING_TERMS = frozenset(
    {
        "function", "class", "string", "number", "boolean", "object", "array",
        "variable", "parameter", "argument", "return", "void", "null", "undefined",
        "interface", "type", "method", "property", "constructor", "instance",
        "module", "import", "export", "async", "await", "promise", "callback",
    }
)

GENERIC_FEATURE_TAGS = frozenset({"utility", "misc", "other"})

FALLBACK_SENTINEL = "classification failed"

MIN_PURPOSE_LENGTH = 30

MIN_REASONING_LENGTH = 80

_LAZY_OPENER = re.compile(r"^(a |the |this )(function|class|method|interface|type|variable)", re.I)


@dataclass
class QualityScore:
    score: float
    flags: list[str] = field(default_factory=list)


def score_justification(justification: Justification) -> QualityScore:
    """Score a justification from 0.0 (useless) to 1.0.

    Deductions:
        0.3  first generic boilerplate phrase in the purpose
        0.2  purpose shorter than 30 characters
        0.2  confidence >= 0.8 with no domain concepts
        0.15 per programming term used as a domain concept (max 0.3)
        0.1  feature tag utility / misc / other
        0.15 lazy opener ("A function that ...")

    A purpose containing the fallback sentinel scores exactly 0.0.

    Missing, short or purpose-copying reasoning, a low-confidence VERTICAL
    and ``pure_domain`` without concepts are flagged without a deduction.
    """
    score = 1.0
    flags: list[str] = []
    purpose = justification.business_purpose or ""
    lowered = purpose.lower()

    for phrase in GENERIC_PHRASES:
        if phrase in lowered:
            score -= 0.3
            flags.append(f'generic_phrase: "{phrase}"')
            break

    if len(purpose) < MIN_PURPOSE_LENGTH:
        score -= 0.2
        flags.append("short_purpose")

    if justification.confidence >= 0.8 and not justification.domain_concepts:
        score -= 0.2
        flags.append("high_confidence_no_concepts")

    term_count = sum(1 for c in justification.domain_concepts if c.lower() in PROGRAMMING_TERMS)
    if term_count:
        score -= min(0.15 * term_count, 0.3)
        flags.append(f"programming_terms_as_concepts: {term_count}")

    if justification.feature_tag in GENERIC_FEATURE_TAGS:
        score -= 0.1
        flags.append("generic_feature_tag")

    if _LAZY_OPENER.match(purpose):
        score -= 0.15
        flags.append("lazy_phrasing")

    if FALLBACK_SENTINEL in lowered:
        score = 0.0
        flags.append("fallback_justification")

    flags.extend(_advisory_flags(justification, lowered))

    return QualityScore(score=max(0.0, round(score, 2)), flags=flags)


def _advisory_flags(justification: Justification, purpose: str) -> list[str]:
    """Flags on reasoning and classification consistency. These never change the score."""
    flags: list[str] = []
    reasoning = (justification.reasoning or "").strip().lower()
    if not reasoning:
        flags.append("missing_reasoning")
    else:
        if len(reasoning) < MIN_REASONING_LENGTH:
            flags.append("short_reasoning")
        purpose = purpose.strip()
        if reasoning == purpose or (len(purpose) > 20 and purpose in reasoning):
            flags.append("reasoning_copies_purpose")

    if justification.taxonomy == Taxonomy.VERTICAL and justification.confidence < 0.5:
        flags.append("low_confidence_vertical")

    if justification.architectural_pattern == "pure_domain" and not justification.domain_concepts:
        flags.append("pure_domain_no_concepts")

    return flags
