"""Reviewer tasks - one run contract, five prompt strategies."""

import logging
import os
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from config import DEFAULT_MODEL, call_gemini, extract_json_object, use_mock
from diff_parser import ChangedFile, extract_added_code
from mock_data import MOCK_RESPONSE
from models import (
    CapabilityTier,
    ChangeDelta,
    Finding,
    ReviewContext,
    TaskBenchmark,
    TaskOutput,
)
from prompts import (
    BREAKING_FOCUS,
    BREAKING_ROLE,
    PERFORMANCE_FOCUS,
    PERFORMANCE_ROLE,
    QUALITY_FOCUS,
    QUALITY_ROLE,
    SECURITY_FOCUS,
    SECURITY_ROLE,
    TEST_COVERAGE_FOCUS,
    TEST_COVERAGE_ROLE,
    build_system_prompt,
)

logger = logging.getLogger(__name__)

MAX_FINDINGS_PER_TASK = 5
MAX_PREVIOUS_FINDINGS_IN_PROMPT = 5
MAX_PATCH_CHARS = 8000
DEFAULT_CONFIDENCE = 0.8


# ---------------------------------------------------------------------------
# Task input / output contracts
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class TaskInput:
    """Everything a reviewer task sees for one invocation."""

    files: tuple[ChangedFile, ...]
    context: ReviewContext
    delta: ChangeDelta
    previous_findings: tuple[Finding, ...] = ()


@runtime_checkable
class ReviewerTask(Protocol):
    """Capability every reviewer task exposes to the pipeline."""

    @property
    def name(self) -> str: ...

    @property
    def execution_priority(self) -> int: ...

    @property
    def capability_tier(self) -> CapabilityTier: ...

    async def run(self, task_input: TaskInput) -> TaskOutput: ...


# ---------------------------------------------------------------------------
# Model providers
# ---------------------------------------------------------------------------
@dataclass
class ModelReply:
    """Raw text of a model reply plus token usage when reported."""

    content: str
    input_tokens: int | None = None
    output_tokens: int | None = None


class ModelProvider(Protocol):
    """Async request/response model call. May raise on any failure."""

    name: str

    def model_name(self, tier: CapabilityTier) -> str: ...

    async def complete(self, system: str, user: str, tier: CapabilityTier) -> ModelReply: ...


@dataclass
class GeminiProvider:
    """Gemini-backed provider with per-tier model routing."""

    default_model: str = field(default_factory=lambda: os.getenv("GEMINI_MODEL", DEFAULT_MODEL))
    tier_models: dict[str, str] = field(default_factory=dict)
    name: str = "gemini"

    def model_name(self, tier: CapabilityTier) -> str:
        return self.tier_models.get(tier, self.default_model)

    async def complete(self, system: str, user: str, tier: CapabilityTier) -> ModelReply:
        response = await call_gemini(user, system=system, model=self.model_name(tier))
        usage = getattr(response, "usage_metadata", None)
        return ModelReply(
            content=response.text or "",
            input_tokens=getattr(usage, "prompt_token_count", None),
            output_tokens=getattr(usage, "candidates_token_count", None),
        )


@dataclass
class MockProvider:
    """Answers every request with a canned reply (no API call)."""

    response: str = MOCK_RESPONSE
    name: str = "mock"

    def model_name(self, tier: CapabilityTier) -> str:
        return "mock"

    async def complete(self, system: str, user: str, tier: CapabilityTier) -> ModelReply:
        return ModelReply(content=self.response)


def get_provider() -> ModelProvider:
    """Return the mock provider when USE_MOCK=true, Gemini otherwise."""
    if use_mock():
        logger.info("[MOCK MODE - No API calls made]")
        return MockProvider()
    return GeminiProvider()


# ---------------------------------------------------------------------------
# Reply normalisation
# ---------------------------------------------------------------------------
@dataclass
class ParsedReply:
    findings: list[Finding]
    summary: str
    confidence: float


def _parse_confidence(value) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_CONFIDENCE
    if value != value:  # NaN
        return DEFAULT_CONFIDENCE
    return min(1.0, max(0.0, float(value)))


def parse_task_response(text: str, task_name: str) -> ParsedReply:
    """
    Turn a raw model reply into normalised findings.

    Never raises: a reply without a usable JSON object yields no findings
    and confidence 0. Individual fields are normalised by ``Finding``.
    """
    parsed = extract_json_object(text)
    if parsed is None:
        return ParsedReply(findings=[], summary="Failed to parse response", confidence=0.0)

    raw_findings = parsed.get("findings")
    findings: list[Finding] = []
    if isinstance(raw_findings, list):
        for raw in raw_findings[:MAX_FINDINGS_PER_TASK]:
            if not isinstance(raw, dict):
                logger.warning("%s: skipping non-object finding %r", task_name, raw)
                continue
            findings.append(
                Finding(
                    source_task=task_name,
                    severity=raw.get("severity", raw.get("priority")),
                    category=raw.get("category"),
                    file=raw.get("file"),
                    line=raw.get("line"),
                    message=raw.get("message"),
                    suggestion=raw.get("suggestion"),
                )
            )

    summary = parsed.get("summary")
    return ParsedReply(
        findings=findings,
        summary=str(summary).strip() if summary else "Analysis complete",
        confidence=_parse_confidence(parsed.get("confidence")),
    )


# ---------------------------------------------------------------------------
# Prompt building
# ---------------------------------------------------------------------------
_STATUS_MARKERS = {"added": "(new)", "deleted": "(deleted)", "renamed": "(renamed)"}


def _truncate_patch(patch: str, limit: int = MAX_PATCH_CHARS) -> str:
    if len(patch) <= limit:
        return patch
    cut = patch.rfind("\n", 0, limit)
    cut = cut if cut > 0 else limit
    return patch[:cut] + f"\n... ({len(patch) - cut} characters truncated)"


def build_user_prompt(task_input: TaskInput) -> str:
    """Render the PR header, earlier findings and per-file diffs."""
    sections: list[str] = []

    context = task_input.context
    sections.append(f"## PR: {context.title or '(untitled)'}")
    if context.description:
        sections.append(context.description)

    if task_input.previous_findings:
        shown = task_input.previous_findings[:MAX_PREVIOUS_FINDINGS_IN_PROMPT]
        lines = "\n".join(f"- [{f.source_task}/{f.severity}] {f.message}" for f in shown)
        sections.append(f"## Previous Findings\n{lines}")

    sections.append("## Changed Files")
    for file in task_input.files:
        marker = _STATUS_MARKERS.get(file.status, "")
        header = f"### {file.filename} {marker}".rstrip()
        patch = file.patch or extract_added_code(file) or "(binary or too large)"
        sections.append(
            f"{header}\n+{file.additions} -{file.deletions}\n\n"
            f"```diff\n{_truncate_patch(patch)}\n```"
        )

    return "\n\n".join(sections)


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class ReviewerStrategy:
    """What distinguishes one reviewer variant from another."""

    name: str
    execution_priority: int
    capability_tier: CapabilityTier
    role: str
    focus: str
    categories: tuple[str, ...]
    # Delta risk types surfaced in this reviewer's system prompt
    risk_types: tuple[str, ...] = ()

    def system_prompt(self, context: ReviewContext, delta: ChangeDelta) -> str:
        sections = [build_system_prompt(self.role, self.focus, self.categories)]

        if context.conventions:
            sections.append(f"REPOSITORY CONVENTIONS:\n{context.conventions}")
        if self.capability_tier == "security" and context.security_preamble:
            sections.append(f"REPO-SPECIFIC SECURITY PATTERNS:\n{context.security_preamble}")

        risks = [r for risk_type in self.risk_types for r in delta.risks_of(risk_type)]
        if risks:
            lines = "\n".join(f"- [{r.severity}] {r.description}" for r in risks)
            sections.append(f"IDENTIFIED RISK AREAS:\n{lines}")

        return "\n\n".join(sections)


SECURITY = ReviewerStrategy(
    name="security",
    execution_priority=1,  # Runs first
    capability_tier="security",
    role=SECURITY_ROLE,
    focus=SECURITY_FOCUS,
    categories=("injection", "auth", "secrets", "deserialization", "csrf", "other"),
    risk_types=("security",),
)

BREAKING = ReviewerStrategy(
    name="breaking",
    execution_priority=2,
    capability_tier="code-review",
    role=BREAKING_ROLE,
    focus=BREAKING_FOCUS,
    categories=("api", "export", "rename", "behavior", "config", "other"),
    risk_types=("breaking",),
)

TEST_COVERAGE = ReviewerStrategy(
    name="test-coverage",
    execution_priority=3,
    capability_tier="code-review",
    role=TEST_COVERAGE_ROLE,
    focus=TEST_COVERAGE_FOCUS,
    categories=("untested", "edge-case", "test-quality", "integration", "regression", "other"),
    risk_types=("scope",),
)

PERFORMANCE = ReviewerStrategy(
    name="performance",
    execution_priority=4,
    capability_tier="code-review",
    role=PERFORMANCE_ROLE,
    focus=PERFORMANCE_FOCUS,
    categories=("resource-leak", "n+1", "memory", "algorithm", "blocking", "other"),
    risk_types=("complexity",),
)

QUALITY = ReviewerStrategy(
    name="quality",
    execution_priority=5,  # Runs last
    capability_tier="code-review",
    role=QUALITY_ROLE,
    focus=QUALITY_FOCUS,
    categories=("complexity", "duplication", "dead-code", "naming", "error-handling", "other"),
    risk_types=("complexity",),
)

STRATEGIES: dict[str, ReviewerStrategy] = {
    s.name: s for s in (SECURITY, BREAKING, TEST_COVERAGE, PERFORMANCE, QUALITY)
}


class StrategyReviewer:
    """A reviewer task driven by a ``ReviewerStrategy``."""

    def __init__(self, provider: ModelProvider, strategy: ReviewerStrategy):
        self.provider = provider
        self.strategy = strategy

    @property
    def name(self) -> str:
        return self.strategy.name

    @property
    def execution_priority(self) -> int:
        return self.strategy.execution_priority

    @property
    def capability_tier(self) -> CapabilityTier:
        return self.strategy.capability_tier

    async def run(self, task_input: TaskInput) -> TaskOutput:
        """Call the model once and normalise its reply.

        Provider failures propagate; the pipeline isolates them.
        """
        system = self.strategy.system_prompt(task_input.context, task_input.delta)
        user = build_user_prompt(task_input)

        started = time.perf_counter()
        reply = await self.provider.complete(system, user, self.capability_tier)
        latency_ms = round((time.perf_counter() - started) * 1000)

        parsed = parse_task_response(reply.content, self.name)

        return TaskOutput(
            task_name=self.name,
            findings=parsed.findings,
            summary=parsed.summary,
            confidence=parsed.confidence,
            benchmark=TaskBenchmark(
                latency_ms=latency_ms,
                input_tokens=reply.input_tokens,
                output_tokens=reply.output_tokens,
                model=self.provider.model_name(self.capability_tier),
            ),
        )


def create_reviewer(provider: ModelProvider, name: str) -> StrategyReviewer:
    """Create the reviewer task registered under *name*."""
    try:
        return StrategyReviewer(provider, STRATEGIES[name])
    except KeyError:
        raise ValueError(
            f"Unknown reviewer {name!r}. Available: {', '.join(STRATEGIES)}"
        ) from None


def default_reviewers(
    provider: ModelProvider, names: Sequence[str] | None = None
) -> list[StrategyReviewer]:
    """All built-in reviewers (or the named subset), in priority order."""
    selected = names or list(STRATEGIES)
    return [create_reviewer(provider, n) for n in selected]
