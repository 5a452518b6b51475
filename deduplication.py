"""
Similarity-based deduplication of reviewer findings.

Two findings are duplicates when their combined similarity score reaches
the threshold:

    0.5 * message + 0.3 * location + 0.2 * category

Findings are compared within per-file buckets first, then once more
across buckets. The more severe finding of a duplicate pair survives.
"""

import logging
from collections.abc import Sequence

from config import DEFAULT_DEDUP_THRESHOLD
from models import Finding, severity_rank

logger = logging.getLogger(__name__)

MESSAGE_WEIGHT = 0.5
LOCATION_WEIGHT = 0.3
CATEGORY_WEIGHT = 0.2

# Only this many leading characters of a message are compared
MAX_MESSAGE_CHARS = 200

RELATED_CATEGORIES: dict[str, tuple[str, ...]] = {
    "sql-injection": ("injection", "security", "input-validation"),
    "xss": ("injection", "security", "input-validation"),
    "hardcoded-secret": ("security", "credentials"),
    "breaking-change": ("api-compatibility", "versioning"),
    "missing-tests": ("test-coverage", "quality"),
    "performance": ("optimization", "efficiency"),
}


# =============================================================================
# SIMILARITY
# =============================================================================
def levenshtein_distance(a: str, b: str) -> int:
    """Character-level edit distance (insert / delete / substitute)."""
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, 1):
        current = [i]
        for j, char_b in enumerate(b, 1):
            cost = 0 if char_a == char_b else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def _normalise_message(text: str) -> str:
    return text.strip().lower()[:MAX_MESSAGE_CHARS]


def message_similarity(a: str, b: str) -> float:
    """1 - normalised edit distance of the (truncated, lower-cased) messages."""
    a_norm = _normalise_message(a)
    b_norm = _normalise_message(b)

    if a_norm == b_norm:
        return 1.0
    if not a_norm or not b_norm:
        return 0.0

    longest = max(len(a_norm), len(b_norm))
    return 1.0 - levenshtein_distance(a_norm, b_norm) / longest


def location_similarity(a: Finding, b: Finding) -> float:
    """Score file and line proximity."""
    if not a.file and not b.file:
        return 0.5
    if not a.file or not b.file or a.file != b.file:
        return 0.0

    if a.line is None and b.line is None:
        return 1.0
    if a.line is None or b.line is None:
        return 0.8

    distance = abs(a.line - b.line)
    if distance == 0:
        return 1.0
    if distance <= 5:
        return 0.9
    if distance <= 10:
        return 0.7
    if distance <= 20:
        return 0.5
    return 0.3


def category_similarity(a: Finding, b: Finding) -> float:
    """1 for equal categories, 0.7 for related ones, else 0."""
    if a.category == b.category:
        return 1.0
    if b.category in RELATED_CATEGORIES.get(a.category, ()) or a.category in RELATED_CATEGORIES.get(
        b.category, ()
    ):
        return 0.7
    return 0.0


def _same_report(a: Finding, b: Finding) -> bool:
    return (a.message, a.file, a.line, a.category) == (b.message, b.file, b.line, b.category)


def calculate_similarity(a: Finding, b: Finding) -> float:
    """Combined similarity from 0 (unrelated) to 1 (identical)."""
    if _same_report(a, b):
        return 1.0
    return (
        MESSAGE_WEIGHT * message_similarity(a.message, b.message)
        + LOCATION_WEIGHT * location_similarity(a, b)
        + CATEGORY_WEIGHT * category_similarity(a, b)
    )


# =============================================================================
# DEDUPLICATION
# =============================================================================
def _insert(
    accepted: list[Finding],
    finding: Finding,
    threshold: float,
    position: int | None = None,
) -> None:
    """Merge *finding* into the first duplicate, or add it at *position*."""
    for index, existing in enumerate(accepted):
        if calculate_similarity(finding, existing) >= threshold:
            if severity_rank(finding.severity) < severity_rank(existing.severity):
                # The new survivor may duplicate other accepted findings
                accepted.pop(index)
                _insert(accepted, finding, threshold, position=index)
            return

    if position is None:
        accepted.append(finding)
    else:
        accepted.insert(position, finding)


def _merge_pass(findings: Sequence[Finding], threshold: float) -> list[Finding]:
    """
    First-match merge in input order; the strictly more severe one wins.

    Accepted findings stay pairwise below *threshold*, so running the pass
    again on its own output changes nothing.
    """
    accepted: list[Finding] = []
    for finding in findings:
        _insert(accepted, finding, threshold)
    return accepted


def _group_by_file(findings: Sequence[Finding]) -> list[Finding]:
    buckets: dict[str | None, list[Finding]] = {}
    for finding in findings:
        buckets.setdefault(finding.file or None, []).append(finding)
    return [f for group in buckets.values() for f in group]


def deduplicate_findings(
    findings: Sequence[Finding],
    threshold: float = DEFAULT_DEDUP_THRESHOLD,
) -> list[Finding]:
    """
    Merge near-duplicate findings.

    Args:
        findings: Findings in reporting order
        threshold: Minimum combined similarity treated as a duplicate

    Returns:
        New list; input order is kept within each file bucket
    """
    if not 0.0 <= threshold <= 1.0:
        raise ValueError(f"threshold must be between 0 and 1, got {threshold!r}")
    if not findings:
        return []

    # Bucket by file; general findings share the None bucket
    buckets: dict[str | None, list[Finding]] = {}
    for finding in findings:
        buckets.setdefault(finding.file or None, []).append(finding)

    per_bucket = [f for group in buckets.values() for f in _merge_pass(group, threshold)]

    # Cross-bucket pass catches general findings that repeat file-specific ones.
    # A merge can move a survivor into another file's slot, so regroup.
    unique = _group_by_file(_merge_pass(per_bucket, threshold))

    removed = len(findings) - len(unique)
    if removed:
        logger.debug("Deduplication removed %d of %d finding(s)", removed, len(findings))
    return unique
