"""PRLens command line: review a GitHub PR or a local diff file."""

import asyncio
import logging
from pathlib import Path

import typer

from agent import ReviewState, run_review
from config import PipelineConfig, parse_mode
from reviewer import STRATEGIES

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="prlens",
    help="PRLens - multi-reviewer AI code review",
    add_completion=False,
)

EXIT_ERROR = 1
EXIT_ESCALATED = 2


def _build_config(
    mode: str | None,
    stop_on_critical: bool,
    threshold: float | None,
    verbose: bool,
    timeout: float | None,
) -> PipelineConfig:
    overrides = {
        "mode": parse_mode(mode) if mode else None,
        "stop_on_critical": stop_on_critical or None,
        "dedup_threshold": threshold,
        "verbose": verbose or None,
        "task_timeout": timeout or None,
    }
    return PipelineConfig.from_env(**overrides)


def _check_reviewers(reviewers: list[str] | None) -> list[str]:
    unknown = [r for r in reviewers or [] if r not in STRATEGIES]
    if unknown:
        raise typer.BadParameter(
            f"Unknown reviewer(s): {', '.join(unknown)}. Available: {', '.join(STRATEGIES)}"
        )
    return list(reviewers or [])


def _finish(final_state: dict, fail_on_escalate: bool) -> None:
    error = final_state.get("error")
    if error:
        logger.error("❌ %s", error)
        raise typer.Exit(EXIT_ERROR)

    report = final_state.get("report")
    if report:
        typer.echo(report)
    else:
        typer.echo("No reviewable files in this change set.")

    result = final_state.get("result")
    if fail_on_escalate and result is not None and result.should_escalate:
        raise typer.Exit(EXIT_ESCALATED)


# Shared options
_MODE = typer.Option(None, "--mode", "-m", help="sequential or parallel (default: PIPELINE_MODE)")
_STOP = typer.Option(False, "--stop-on-critical", help="Skip remaining reviewers after a critical finding")
_THRESHOLD = typer.Option(None, "--threshold", min=0.0, max=1.0, help="Dedup similarity threshold")
_VERBOSE = typer.Option(False, "--verbose", "-v", help="Log every pipeline step")
_TIMEOUT = typer.Option(None, "--timeout", min=0.0, help="Per-reviewer deadline in seconds")
_REVIEWERS = typer.Option(None, "--reviewer", "-r", help="Run only these reviewers (repeatable)")
_FAIL = typer.Option(False, "--fail-on-escalate", help="Exit with code 2 when human review is needed")


@app.command()
def review(
    repo: str = typer.Argument(..., help="Repository as owner/repo"),
    pr_number: int = typer.Argument(..., help="Pull request number"),
    post: bool = typer.Option(False, "--post", help="Post the review to GitHub"),
    mode: str | None = _MODE,
    stop_on_critical: bool = _STOP,
    threshold: float | None = _THRESHOLD,
    verbose: bool = _VERBOSE,
    timeout: float | None = _TIMEOUT,
    reviewers: list[str] | None = _REVIEWERS,
    fail_on_escalate: bool = _FAIL,
) -> None:
    """Review a GitHub pull request."""
    state = ReviewState(
        repo=repo,
        pr_number=pr_number,
        post=post,
        pipeline_config=_build_config(mode, stop_on_critical, threshold, verbose, timeout),
        reviewers=_check_reviewers(reviewers),
    )
    logger.info("🤖 Running PRLens agent on %s PR #%d", repo, pr_number)
    _finish(asyncio.run(run_review(state)), fail_on_escalate)


@app.command()
def diff(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Unified diff file"),
    mode: str | None = _MODE,
    stop_on_critical: bool = _STOP,
    threshold: float | None = _THRESHOLD,
    verbose: bool = _VERBOSE,
    timeout: float | None = _TIMEOUT,
    reviewers: list[str] | None = _REVIEWERS,
    fail_on_escalate: bool = _FAIL,
) -> None:
    """Review a local diff file (nothing is posted)."""
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        logger.error("❌ %s is empty", path)
        raise typer.Exit(EXIT_ERROR)

    state = ReviewState(
        diff=text,
        pipeline_config=_build_config(mode, stop_on_critical, threshold, verbose, timeout),
        reviewers=_check_reviewers(reviewers),
    )
    _finish(asyncio.run(run_review(state)), fail_on_escalate)


if __name__ == "__main__":
    app()
