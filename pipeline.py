"""
PRLens Pipeline - schedules reviewer tasks over one change set.

Two execution modes:
- sequential: tasks run one after another in priority order; each task
  sees the findings of the tasks that ran before it.
- concurrent: all tasks start together with no cross-visibility and are
  joined before the result is built.

A failing task never aborts the pipeline. Its output is replaced by a
degraded TaskOutput (no findings, confidence 0).
"""

import asyncio
import logging
import time
from collections.abc import Iterable, Sequence

from config import PipelineConfig, parse_mode
from diff_parser import ChangedFile
from models import (
    ChangeDelta,
    ExecutionMode,
    Finding,
    PipelineResult,
    ReviewContext,
    TaskOutput,
)
from reviewer import ReviewerTask, TaskInput

logger = logging.getLogger(__name__)


# =============================================================================
# TASK EXECUTION
# =============================================================================
def order_tasks(tasks: Iterable[ReviewerTask]) -> list[ReviewerTask]:
    """Sort tasks by execution priority (lower first, stable)."""
    return sorted(tasks, key=lambda t: t.execution_priority)


def failed_output(task_name: str, reason: str) -> TaskOutput:
    """Degraded output substituted for a task that could not finish."""
    return TaskOutput(
        task_name=task_name,
        findings=[],
        summary=f"Task failed: {reason}",
        confidence=0.0,
    )


def _task_input(
    files: Sequence[ChangedFile],
    context: ReviewContext,
    delta: ChangeDelta,
    previous: Sequence[Finding],
) -> TaskInput:
    # Each task gets its own copies; previous findings are a snapshot
    return TaskInput(
        files=tuple(files),
        context=context.model_copy(deep=True),
        delta=delta.model_copy(deep=True),
        previous_findings=tuple(previous),
    )


async def run_task(
    task: ReviewerTask,
    task_input: TaskInput,
    timeout: float | None = None,
) -> TaskOutput:
    """Run one task, converting any failure into a degraded output."""
    try:
        if timeout is None:
            return await task.run(task_input)
        return await asyncio.wait_for(task.run(task_input), timeout)
    except Exception as e:
        if timeout is not None and isinstance(e, asyncio.TimeoutError):
            reason = f"timed out after {timeout:g}s"
        else:
            reason = str(e) or type(e).__name__
        logger.error("❌ %s task failed: %s", task.name, reason)
        return failed_output(task.name, reason)


# =============================================================================
# SCHEDULING MODES
# =============================================================================
async def _run_sequential(
    tasks: list[ReviewerTask],
    files: Sequence[ChangedFile],
    context: ReviewContext,
    delta: ChangeDelta,
    config: PipelineConfig,
) -> list[TaskOutput]:
    log = logger.info if config.verbose else logger.debug
    log("🔄 Pipeline starting (sequential) with %d task(s)", len(tasks))
    log("   Order: %s", " → ".join(t.name for t in tasks))

    outputs: list[TaskOutput] = []
    findings: list[Finding] = []

    for index, task in enumerate(tasks):
        log("🔍 Running %s task...", task.name)

        output = await run_task(
            task, _task_input(files, context, delta, findings), config.task_timeout
        )
        outputs.append(output)
        findings.extend(output.findings)

        log("   Found %d finding(s)", len(output.findings))
        log("   Confidence: %.0f%%", output.confidence * 100)
        if output.benchmark:
            log("   Latency: %.1fs", output.benchmark.latency_ms / 1000)

        if config.stop_on_critical and any(f.severity == "critical" for f in output.findings):
            skipped = len(tasks) - index - 1
            logger.warning(
                "⚠️  Critical finding from %s, skipping %d remaining task(s)",
                task.name,
                skipped,
            )
            break

    return outputs


async def _run_concurrent(
    tasks: list[ReviewerTask],
    files: Sequence[ChangedFile],
    context: ReviewContext,
    delta: ChangeDelta,
    config: PipelineConfig,
) -> list[TaskOutput]:
    log = logger.info if config.verbose else logger.debug
    log("🔄 Pipeline starting (concurrent) with %d task(s)", len(tasks))
    log("   Tasks: %s", ", ".join(t.name for t in tasks))

    async def worker(task: ReviewerTask) -> TaskOutput:
        log("🔍 Starting %s task...", task.name)
        output = await run_task(
            task, _task_input(files, context, delta, ()), config.task_timeout
        )
        log(
            "✓ %s: %d finding(s), %.0f%% confidence",
            task.name,
            len(output.findings),
            output.confidence * 100,
        )
        return output

    # gather preserves input order regardless of completion order
    return list(await asyncio.gather(*(worker(t) for t in tasks)))


# =============================================================================
# RESULT BUILDING
# =============================================================================
def build_summary(outputs: Sequence[TaskOutput], findings: Sequence[Finding]) -> str:
    """Severity overview followed by one line per task summary."""
    critical = sum(1 for f in findings if f.severity == "critical")
    high = sum(1 for f in findings if f.severity == "high")
    medium = sum(1 for f in findings if f.severity == "medium")

    if critical:
        overview = f"Found {critical} critical, {high} high, and {medium} medium priority issues."
    elif high:
        overview = f"Found {high} high and {medium} medium priority issues. No critical issues detected."
    elif medium:
        overview = f"Found {medium} medium priority issues. No critical or high priority issues."
    else:
        overview = "No issues detected across all review areas."

    task_lines = "\n".join(f"**{o.task_name}**: {o.summary}" for o in outputs if o.summary)
    return f"{overview}\n\n{task_lines}" if task_lines else overview


def build_result(
    outputs: Sequence[TaskOutput],
    elapsed_ms: float,
    mode: ExecutionMode,
    verbose: bool = False,
) -> PipelineResult:
    """Combine task outputs into a PipelineResult."""
    findings = [f for o in outputs for f in o.findings]
    confidence = sum(o.confidence for o in outputs) / max(len(outputs), 1)
    has_critical = any(f.severity == "critical" for f in findings)

    log = logger.info if verbose else logger.debug
    log("✅ Pipeline complete (%s)", mode)
    log("   Total findings: %d", len(findings))
    for severity in ("critical", "high", "medium"):
        log("   %s: %d", severity.capitalize(), sum(1 for f in findings if f.severity == severity))
    log("   Total time: %.1fs", elapsed_ms / 1000)

    return PipelineResult(
        findings=findings,
        task_outputs=list(outputs),
        summary=build_summary(outputs, findings),
        confidence=confidence,
        total_latency_ms=round(elapsed_ms),
        has_critical=has_critical,
        mode=mode,
    )


async def run_pipeline(
    tasks: Iterable[ReviewerTask],
    files: Sequence[ChangedFile],
    context: ReviewContext | None = None,
    delta: ChangeDelta | None = None,
    config: PipelineConfig | None = None,
    *,
    mode: str | None = None,
    stop_on_critical: bool | None = None,
) -> PipelineResult:
    """
    Run every reviewer task over the change set.

    Args:
        tasks: Reviewer tasks, in any order
        files: The change set
        context: Shared review context
        delta: Change-specific risk summary
        config: Pipeline options (defaults to ``PipelineConfig()``)
        mode: Overrides ``config.mode`` (``parallel`` means concurrent)
        stop_on_critical: Overrides ``config.stop_on_critical``

    Returns:
        PipelineResult with one TaskOutput per task that was started
    """
    config = config or PipelineConfig()
    updates = {}
    if mode is not None:
        updates["mode"] = parse_mode(mode)
    if stop_on_critical is not None:
        updates["stop_on_critical"] = stop_on_critical
    if updates:
        # model_copy(update=...) would skip validation
        config = PipelineConfig.model_validate({**config.model_dump(), **updates})

    context = context or ReviewContext()
    delta = delta or ChangeDelta()
    ordered = order_tasks(tasks)

    started = time.perf_counter()
    if config.mode == "concurrent":
        outputs = await _run_concurrent(ordered, files, context, delta, config)
    else:
        outputs = await _run_sequential(ordered, files, context, delta, config)
    elapsed_ms = (time.perf_counter() - started) * 1000

    return build_result(outputs, elapsed_ms, config.mode, config.verbose)
