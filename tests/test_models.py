"""
Tests for finding normalisation and result models.
"""

import pytest
from pydantic import ValidationError

from models import ChangeDelta, Finding, PipelineResult, RiskFactor, TaskOutput, severity_rank


class TestFinding:
    def test_defaults(self):
        finding = Finding()

        assert finding.source_task == "unknown"
        assert finding.severity == "medium"
        assert finding.category == "general"
        assert finding.file is None
        assert finding.line is None
        assert finding.message == "No details"
        assert finding.suggestion is None

    @pytest.mark.parametrize(
        "raw,expected",
        [("CRITICAL", "critical"), (" High ", "high"), ("low", "medium"), (None, "medium"), (3, "medium")],
    )
    def test_severity(self, raw, expected):
        assert Finding(severity=raw).severity == expected

    @pytest.mark.parametrize(
        "raw,expected",
        [(12, 12), ("7", 7), (3.0, 3), (3.5, None), (0, None), (-1, None), (True, None), ("x", None)],
    )
    def test_line(self, raw, expected):
        assert Finding(line=raw).line == expected

    def test_file_normalisation(self):
        assert Finding(file="  app/x.py ").file == "app/x.py"
        assert Finding(file="   ").file is None
        assert Finding(file=["a.py"]).file is None

    def test_text_fields(self):
        finding = Finding(category="  ", message="  Leak  ", suggestion="")

        assert finding.category == "general"
        assert finding.message == "Leak"
        assert finding.suggestion is None

    def test_location(self):
        assert Finding(file="a.py", line=3).location == "a.py:3"
        assert Finding(file="a.py").location == "a.py"
        assert Finding(line=3).location == ""

    def test_frozen(self):
        finding = Finding(message="x")

        with pytest.raises(ValidationError):
            finding.message = "y"


class TestTaskOutput:
    @pytest.mark.parametrize(
        "raw,expected",
        [(0.4, 0.4), (2, 1.0), (-1, 0.0), ("0.6", 0.6), ("bad", 0.0), (float("nan"), 0.0)],
    )
    def test_confidence_clamped(self, raw, expected):
        assert TaskOutput(task_name="t", confidence=raw).confidence == expected


def test_severity_rank_order():
    assert severity_rank("critical") < severity_rank("high") < severity_rank("medium")
    assert severity_rank("unknown") > severity_rank("medium")


def test_pipeline_result_defaults():
    result = PipelineResult()

    assert result.findings == []
    assert result.mode == "sequential"
    assert result.has_critical is False


def test_change_delta_risks_of():
    delta = ChangeDelta(
        risk_factors=[
            RiskFactor(type="scope", description="25 files changed"),
            RiskFactor(type="security", description="Touches auth"),
            RiskFactor(type="scope", description="900 lines changed"),
        ]
    )

    assert [r.description for r in delta.risks_of("scope")] == ["25 files changed", "900 lines changed"]
    assert delta.risks_of("breaking") == []
