"""Data models for reviewer findings and pipeline results."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

Severity = Literal["critical", "high", "medium"]
ExecutionMode = Literal["sequential", "concurrent"]
CapabilityTier = Literal["security", "code-review", "reasoning", "fast", "smart"]

SEVERITIES: tuple[str, ...] = ("critical", "high", "medium")

# Lower rank = more severe
SEVERITY_ORDER: dict[str, int] = {"critical": 0, "high": 1, "medium": 2}


def severity_rank(severity: str) -> int:
    """Return the sort rank of *severity* (unknown values sort last)."""
    return SEVERITY_ORDER.get(severity, len(SEVERITY_ORDER))


class Finding(BaseModel):
    """A single issue reported by a reviewer task.

    Field values coming from a model reply are never rejected: anything
    malformed is normalised to a safe default when the Finding is built.
    """

    model_config = ConfigDict(frozen=True)

    source_task: str = Field(default="unknown", description="Task that produced it")
    severity: Severity = Field(default="medium", description="critical, high, medium")
    category: str = Field(default="general", description="Task-defined label")
    file: str | None = Field(default=None, description="File path in the change set")
    line: int | None = Field(default=None, description="Line number in the file")
    message: str = Field(default="No details", description="What the issue is")
    suggestion: str | None = Field(default=None, description="Suggested fix")

    @field_validator("severity", mode="before")
    @classmethod
    def _normalise_severity(cls, value: Any) -> str:
        if isinstance(value, str) and value.strip().lower() in SEVERITIES:
            return value.strip().lower()
        return "medium"

    @field_validator("category", mode="before")
    @classmethod
    def _normalise_category(cls, value: Any) -> str:
        if value is None:
            return "general"
        text = str(value).strip()
        return text or "general"

    @field_validator("file", mode="before")
    @classmethod
    def _normalise_file(cls, value: Any) -> str | None:
        if not isinstance(value, str):
            return None
        return value.strip() or None

    @field_validator("line", mode="before")
    @classmethod
    def _normalise_line(cls, value: Any) -> int | None:
        # bool is an int subclass; "true" is not a line number
        if isinstance(value, bool):
            return None
        if isinstance(value, float):
            value = int(value) if value.is_integer() else None
        elif isinstance(value, str):
            value = int(value.strip()) if value.strip().isdigit() else None
        if isinstance(value, int) and value > 0:
            return value
        return None

    @field_validator("message", mode="before")
    @classmethod
    def _normalise_message(cls, value: Any) -> str:
        if value is None:
            return "No details"
        text = str(value).strip()
        return text or "No details"

    @field_validator("suggestion", mode="before")
    @classmethod
    def _normalise_suggestion(cls, value: Any) -> str | None:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @property
    def location(self) -> str:
        """Human-readable ``file:line`` reference (empty for general findings)."""
        if not self.file:
            return ""
        return f"{self.file}:{self.line}" if self.line else self.file


class TaskBenchmark(BaseModel):
    """Latency and token telemetry for one model call."""

    model_config = ConfigDict(frozen=True)

    latency_ms: int = 0
    input_tokens: int | None = None
    output_tokens: int | None = None
    model: str = ""


class TaskOutput(BaseModel):
    """Result of one reviewer task invocation."""

    model_config = ConfigDict(frozen=True)

    task_name: str
    findings: list[Finding] = Field(default_factory=list)
    summary: str = ""
    confidence: float = Field(default=0.0, description="0-1")
    benchmark: TaskBenchmark | None = None

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> float:
        try:
            number = float(value)
        except (TypeError, ValueError):
            return 0.0
        if number != number:  # NaN
            return 0.0
        return min(1.0, max(0.0, number))


class PipelineResult(BaseModel):
    """Everything the scheduler collected during one pipeline run."""

    model_config = ConfigDict(frozen=True)

    findings: list[Finding] = Field(default_factory=list)
    task_outputs: list[TaskOutput] = Field(default_factory=list)
    summary: str = ""
    confidence: float = 0.0
    total_latency_ms: int = 0
    has_critical: bool = False
    mode: ExecutionMode = "sequential"


class AggregatedResult(BaseModel):
    """Final, externally-facing review result."""

    model_config = ConfigDict(frozen=True)

    findings: list[Finding] = Field(default_factory=list)
    summary: str = ""
    confidence: float = 0.0
    should_escalate: bool = False
    escalation_reasons: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Review inputs shared by every task
# ---------------------------------------------------------------------------
class ReviewContext(BaseModel):
    """Shared textual context handed to every reviewer task."""

    title: str = ""
    description: str = ""
    conventions: str = Field(default="", description="Repository guidance")
    security_preamble: str = ""


class RiskFactor(BaseModel):
    """A risk identified for the change set."""

    type: Literal["security", "complexity", "scope", "breaking"]
    description: str
    severity: Literal["high", "medium", "low"] = "medium"


class ChangeDelta(BaseModel):
    """Change-specific risk summary."""

    risk_factors: list[RiskFactor] = Field(default_factory=list)
    change_signature: str = ""

    def risks_of(self, risk_type: str) -> list[RiskFactor]:
        return [r for r in self.risk_factors if r.type == risk_type]
