"""
Result aggregation - turns a PipelineResult into the final review.

Steps:
1. Drop findings that point at files outside the change set (grounding)
2. Merge near-duplicates
3. Sort CRITICAL → HIGH → MEDIUM, then by file
4. Keep the top findings
Escalation is evaluated on the raw, unfiltered findings.
"""

import logging
from collections.abc import Iterable, Sequence

from config import PipelineConfig
from deduplication import deduplicate_findings
from diff_parser import ChangedFile, changed_filenames
from models import AggregatedResult, Finding, PipelineResult, TaskOutput, severity_rank

logger = logging.getLogger(__name__)

MAX_FINDINGS = 10
LOW_CONFIDENCE_THRESHOLD = 0.5
SECURITY_TASK = "security"

_SEVERITY_ICONS = {"critical": "🔴", "high": "🟠", "medium": "🟡"}


# =============================================================================
# GROUNDING
# =============================================================================
def filter_ungrounded_findings(
    findings: Sequence[Finding],
    files: Iterable[ChangedFile | str],
) -> list[Finding]:
    """
    Drop findings that reference a file not present in the change set.

    General findings (no file) are always kept. An empty change set
    disables the filter.
    """
    filenames = changed_filenames(files)
    if not filenames:
        return list(findings)

    kept = [f for f in findings if not f.file or f.file in filenames]

    dropped = len(findings) - len(kept)
    if dropped:
        logger.info("   Dropped %d finding(s) referencing files not in the diff", dropped)
    return kept


# =============================================================================
# RANKING
# =============================================================================
def sort_findings(findings: Iterable[Finding]) -> list[Finding]:
    """Sort by severity (most severe first), then file name."""
    return sorted(findings, key=lambda f: (severity_rank(f.severity), f.file or ""))


# =============================================================================
# ESCALATION
# =============================================================================
def check_escalation(
    findings: Sequence[Finding],
    task_outputs: Sequence[TaskOutput],
) -> tuple[bool, list[str]]:
    """
    Decide whether a human has to look at the change.

    Returns:
        (should_escalate, reasons) - one reason per triggered rule
    """
    reasons: list[str] = []

    critical_count = sum(1 for f in findings if f.severity == "critical")
    if critical_count:
        reasons.append(f"{critical_count} critical issue(s) detected")

    low_confidence = [o.task_name for o in task_outputs if o.confidence < LOW_CONFIDENCE_THRESHOLD]
    if low_confidence:
        reasons.append(f"Low confidence from: {', '.join(low_confidence)}")

    security_count = sum(
        1 for f in findings if f.source_task == SECURITY_TASK and f.severity != "medium"
    )
    if security_count:
        reasons.append(f"{security_count} security concern(s)")

    return bool(reasons), reasons


# =============================================================================
# AGGREGATION
# =============================================================================
def aggregate(
    result: PipelineResult,
    files: Iterable[ChangedFile | str] | None = None,
    config: PipelineConfig | None = None,
) -> AggregatedResult:
    """
    Aggregate pipeline results into the final review.

    Args:
        result: Output of ``run_pipeline`` (not modified)
        files: Change set used for grounding; omitted or empty skips it
        config: Supplies the dedup threshold
    """
    config = config or PipelineConfig()

    findings = list(result.findings)
    if files is not None:
        findings = filter_ungrounded_findings(findings, files)

    unique = deduplicate_findings(findings, config.dedup_threshold)
    top = sort_findings(unique)[:MAX_FINDINGS]

    should_escalate, reasons = check_escalation(result.findings, result.task_outputs)

    if config.verbose:
        logger.info(
            "🔀 Aggregated %d raw finding(s) into %d (escalate: %s)",
            len(result.findings),
            len(top),
            should_escalate,
        )

    return AggregatedResult(
        findings=top,
        summary=result.summary,
        confidence=result.confidence,
        should_escalate=should_escalate,
        escalation_reasons=reasons,
    )


# =============================================================================
# FORMATTING
# =============================================================================
def format_as_markdown(result: AggregatedResult) -> str:
    """Format the aggregated review as GitHub-flavoured markdown."""
    sections: list[str] = ["## 🤖 PRLens Review", result.summary]

    if result.findings:
        sections.append("### Issues Found\n")
        for finding in result.findings:
            icon = _SEVERITY_ICONS.get(finding.severity, "🟡")
            location = f" in `{finding.location}`" if finding.location else ""
            line = (
                f"{icon} **[{finding.source_task}/{finding.category}]** "
                f"{finding.message}{location}"
            )
            if finding.suggestion:
                line += f"\n   💡 *Suggestion: {finding.suggestion}*"
            sections.append(line)
    else:
        sections.append("✅ No issues detected across all review areas.")

    if result.should_escalate:
        sections.append(
            f"\n---\n⚠️ **Needs human review**: {', '.join(result.escalation_reasons)}"
        )

    sections.append("\n---")
    sections.append(f"Confidence: {result.confidence * 100:.0f}%")
    sections.append("*Generated by [PRLens](https://github.com/kulbir/PRLens) 🤖*")

    return "\n\n".join(sections)


def format_compact_summary(result: AggregatedResult) -> str:
    """One-line severity tally, for logs."""
    parts = []
    for severity in ("critical", "high", "medium"):
        count = sum(1 for f in result.findings if f.severity == severity)
        if count:
            parts.append(f"{_SEVERITY_ICONS[severity]} {count} {severity}")
    return ", ".join(parts) if parts else "✅ No issues found"
