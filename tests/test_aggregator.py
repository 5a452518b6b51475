"""
Tests for grounding, ranking, escalation and the aggregate() entry point.
"""

import pytest

from aggregator import (
    MAX_FINDINGS,
    aggregate,
    check_escalation,
    filter_ungrounded_findings,
    format_as_markdown,
    format_compact_summary,
    sort_findings,
)
from config import PipelineConfig
from diff_parser import ChangedFile
from models import AggregatedResult, PipelineResult, TaskOutput
from pipeline import run_pipeline


def _outputs(*confidences, names=None):
    names = names or [f"task{i}" for i in range(len(confidences))]
    return [TaskOutput(task_name=n, confidence=c) for n, c in zip(names, confidences)]


# =============================================================================
# Grounding
# =============================================================================


class TestGrounding:
    def test_file_outside_change_set_dropped(self, make_finding):
        finding = make_finding(file="x.ts")
        assert filter_ungrounded_findings([finding], {"y.ts"}) == []

    def test_file_in_change_set_kept(self, make_finding):
        finding = make_finding(file="x.ts")
        assert filter_ungrounded_findings([finding], {"x.ts", "y.ts"}) == [finding]

    def test_general_finding_always_kept(self, make_finding):
        finding = make_finding(file=None, line=None)
        assert filter_ungrounded_findings([finding], {"y.ts"}) == [finding]

    def test_empty_change_set_is_noop(self, make_finding):
        findings = [make_finding(file="anything.py")]
        assert filter_ungrounded_findings(findings, []) == findings

    def test_accepts_changed_files(self, make_finding):
        files = [ChangedFile(filename="app/db.py", status="modified", additions=1, deletions=0)]
        kept = make_finding(file="app/db.py")
        dropped = make_finding(file="app/other.py")
        assert filter_ungrounded_findings([kept, dropped], files) == [kept]

    def test_exact_filename_match_only(self, make_finding):
        finding = make_finding(file="./app/db.py")
        assert filter_ungrounded_findings([finding], {"app/db.py"}) == []


# =============================================================================
# Ranking
# =============================================================================


class TestSorting:
    def test_severity_then_file(self, make_finding):
        m_b = make_finding(severity="medium", file="b.py")
        c_z = make_finding(severity="critical", file="z.py")
        h_a = make_finding(severity="high", file="a.py")
        c_a = make_finding(severity="critical", file="a.py")
        general = make_finding(severity="high", file=None)

        ordered = sort_findings([m_b, c_z, h_a, c_a, general])

        assert ordered == [c_a, c_z, general, h_a, m_b]


# =============================================================================
# Escalation
# =============================================================================


class TestEscalation:
    def test_critical_security_finding(self, make_finding):
        findings = [make_finding(severity="critical", source_task="security")]

        escalate, reasons = check_escalation(findings, _outputs(0.9, 0.9, 0.9, 0.9, 0.9))

        assert escalate is True
        assert any("1 critical" in r for r in reasons)
        assert "1 security concern(s)" in reasons

    def test_nothing_to_escalate(self):
        escalate, reasons = check_escalation([], _outputs(0.9, 0.9, 0.9, 0.9, 0.9))

        assert escalate is False
        assert reasons == []

    def test_low_confidence_names_tasks(self):
        outputs = _outputs(0.9, 0.49, 0.5, 0.0, names=["security", "breaking", "quality", "perf"])

        escalate, reasons = check_escalation([], outputs)

        assert escalate is True
        assert reasons == ["Low confidence from: breaking, perf"]

    def test_medium_security_finding_does_not_escalate(self, make_finding):
        findings = [make_finding(severity="medium", source_task="security")]

        escalate, _ = check_escalation(findings, _outputs(0.9))

        assert escalate is False

    def test_high_security_finding_escalates(self, make_finding):
        findings = [make_finding(severity="high", source_task="security")]

        escalate, reasons = check_escalation(findings, _outputs(0.9))

        assert escalate is True
        assert reasons == ["1 security concern(s)"]

    def test_all_reasons_accumulate(self, make_finding):
        findings = [
            make_finding(severity="critical", source_task="quality"),
            make_finding(severity="high", source_task="security", message="other"),
        ]

        _, reasons = check_escalation(findings, _outputs(0.1, names=["breaking"]))

        assert reasons == [
            "1 critical issue(s) detected",
            "Low confidence from: breaking",
            "1 security concern(s)",
        ]


# =============================================================================
# aggregate()
# =============================================================================


class TestAggregate:
    def test_escalation_uses_unfiltered_findings(self, make_finding):
        ungrounded = make_finding(severity="critical", file="ghost.py", source_task="security")
        result = PipelineResult(
            findings=[ungrounded],
            task_outputs=_outputs(0.9, names=["security"]),
            confidence=0.9,
        )

        aggregated = aggregate(result, {"app/db.py"})

        assert aggregated.findings == []
        assert aggregated.should_escalate is True

    def test_does_not_mutate_pipeline_result(self, make_finding):
        findings = [make_finding(), make_finding(source_task="other")]
        result = PipelineResult(findings=findings, task_outputs=_outputs(0.9))

        aggregate(result, {"app/db.py"})

        assert result.findings == findings

    def test_threshold_from_config(self, make_finding):
        a = make_finding(message="SQL injection risk", line=42)
        b = make_finding(message="SQL injection issue found", line=42)
        result = PipelineResult(findings=[a, b], task_outputs=_outputs(0.9))

        assert len(aggregate(result, config=PipelineConfig(dedup_threshold=0.5)).findings) == 1
        assert len(aggregate(result, config=PipelineConfig(dedup_threshold=0.99)).findings) == 2

    def test_copies_summary_and_confidence(self):
        result = PipelineResult(summary="All good", confidence=0.75, task_outputs=_outputs(0.75))

        aggregated = aggregate(result)

        assert aggregated.summary == "All good"
        assert aggregated.confidence == 0.75

    def test_truncates_to_top_ten(self, make_finding):
        severities = ["medium", "high", "critical"]
        findings = [
            make_finding(
                file=f"src/file_{i:02d}.py",
                severity=severities[i % 3],
                message=f"Distinct problem number {i}",
            )
            for i in range(15)
        ]
        files = {f.file for f in findings}
        result = PipelineResult(findings=findings, task_outputs=_outputs(0.9))

        aggregated = aggregate(result, files)

        assert len(aggregated.findings) == MAX_FINDINGS
        expected = sort_findings(findings)[:MAX_FINDINGS]
        assert aggregated.findings == expected
        # 5 critical, 5 high; every medium is cut
        assert {f.severity for f in aggregated.findings} == {"critical", "high"}
        assert aggregated.findings[0].file == "src/file_02.py"

    @pytest.mark.asyncio
    async def test_end_to_end_five_distinct_findings(self, stub_task, make_finding):
        files = [
            ChangedFile(filename=name, status="modified", additions=5, deletions=1)
            for name in ("api/routes.py", "api/models.py", "core/cache.py", "core/jobs.py", "ui/view.py")
        ]
        messages = [
            "Endpoint returns 500 when the body is empty",
            "Migration drops a column still read by reports",
            "Cache key ignores the tenant identifier",
            "Retry loop never backs off between attempts",
            "Template renders unescaped user names",
        ]
        tasks = [
            stub_task(
                name,
                priority,
                findings=[
                    make_finding(source_task=name, file=files[i].filename, message=messages[i], line=3)
                ],
            )
            for i, (name, priority) in enumerate(
                [("security", 1), ("breaking", 2), ("test-coverage", 3), ("performance", 4), ("quality", 5)]
            )
        ]

        result = await run_pipeline(tasks, files, mode="concurrent")
        aggregated = aggregate(result, files)

        assert len(aggregated.findings) == 5
        assert all(f.severity == "medium" for f in aggregated.findings)
        assert [f.file for f in aggregated.findings] == sorted(f.filename for f in files)
        assert aggregated.should_escalate is False
        assert aggregated.escalation_reasons == []

    def test_survives_malformed_findings(self, make_finding):
        weird = [
            make_finding(message="", severity="bogus", category=None, line="abc"),
            make_finding(file=None, line=7, message=None),
        ]
        result = PipelineResult(findings=weird, task_outputs=_outputs(0.2))

        aggregated = aggregate(result, {"app/db.py"})

        assert all(f.message == "No details" for f in aggregated.findings)
        assert aggregated.should_escalate is True


# =============================================================================
# Formatting
# =============================================================================


class TestFormatting:
    def test_markdown_lists_findings_and_escalation(self, make_finding):
        result = AggregatedResult(
            findings=[
                make_finding(
                    severity="critical",
                    source_task="security",
                    category="injection",
                    message="SQL built from user input",
                    suggestion="Use parameters",
                    line=12,
                )
            ],
            summary="Found 1 critical issue.",
            confidence=0.8,
            should_escalate=True,
            escalation_reasons=["1 critical issue(s) detected"],
        )

        text = format_as_markdown(result)

        assert "🔴 **[security/injection]** SQL built from user input in `app/db.py:12`" in text
        assert "Suggestion: Use parameters" in text
        assert "Needs human review**: 1 critical issue(s) detected" in text
        assert "Confidence: 80%" in text

    def test_markdown_without_findings(self):
        text = format_as_markdown(AggregatedResult(summary="Nothing", confidence=1.0))

        assert "No issues detected" in text
        assert "Needs human review" not in text

    def test_compact_summary(self, make_finding):
        result = AggregatedResult(
            findings=[make_finding(severity="high"), make_finding(severity="medium", message="x")]
        )

        assert format_compact_summary(result) == "🟠 1 high, 🟡 1 medium"
        assert format_compact_summary(AggregatedResult()) == "✅ No issues found"
