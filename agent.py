"""
PRLens Agent - LangGraph-based PR Review Agent

This module wires the review workflow as a state machine using LangGraph:
the PR diff is fetched, every reviewer task runs through the pipeline,
the findings are aggregated, and the review is optionally posted to GitHub.
"""

import logging
from dataclasses import dataclass, field

from langgraph.graph import END, START, StateGraph

from aggregator import aggregate, format_as_markdown, format_compact_summary
from config import PipelineConfig
from diff_parser import ChangedFile, filter_files, parse_diff
from github_client import (
    build_review_submission,
    fetch_pr_metadata,
    fetch_raw_diff,
    post_review_with_fallback,
)
from models import AggregatedResult, ChangeDelta, PipelineResult, ReviewContext, RiskFactor
from pipeline import run_pipeline
from reviewer import default_reviewers, get_provider

logger = logging.getLogger(__name__)

# Change-set size that on its own is worth flagging to reviewers
MAX_FILES_CHANGED = 20
MAX_LINES_CHANGED = 500


# =============================================================================
# STATE DEFINITION
# =============================================================================
@dataclass
class ReviewState:
    """
    State that flows through the review graph.

    Each node can read any field and return updates to specific fields.
    LangGraph automatically merges the updates into the state.
    """

    # Input
    repo: str = ""  # e.g., "kulbir/PRLens"; empty for local diffs
    pr_number: int = 0
    diff: str = ""  # Pre-supplied diff skips the GitHub fetch
    post: bool = False  # Whether to post the review to GitHub
    pipeline_config: PipelineConfig = field(default_factory=PipelineConfig)
    reviewers: list[str] = field(default_factory=list)  # empty = all

    # Intermediate data (populated by nodes)
    changed_files: list[ChangedFile] = field(default_factory=list)
    files_to_review: list[ChangedFile] = field(default_factory=list)
    context: ReviewContext = field(default_factory=ReviewContext)
    delta: ChangeDelta = field(default_factory=ChangeDelta)
    pipeline_result: PipelineResult | None = None

    # Output
    result: AggregatedResult | None = None
    report: str = ""  # Markdown review body
    review_posted: bool = False
    review_id: int | None = None
    error: str | None = None


# =============================================================================
# HELPERS
# =============================================================================
def summarize_delta(files: list[ChangedFile]) -> ChangeDelta:
    """Compact change signature plus scope risks for oversized change sets."""
    added = sum(f.additions for f in files)
    removed = sum(f.deletions for f in files)
    risks: list[RiskFactor] = []

    if len(files) > MAX_FILES_CHANGED:
        risks.append(
            RiskFactor(
                type="scope",
                description=f"{len(files)} files changed (threshold: {MAX_FILES_CHANGED})",
                severity="high",
            )
        )
    if added + removed > MAX_LINES_CHANGED:
        risks.append(
            RiskFactor(
                type="scope",
                description=f"{added + removed} lines changed (threshold: {MAX_LINES_CHANGED})",
                severity="medium",
            )
        )

    return ChangeDelta(
        risk_factors=risks,
        change_signature=f"+{added} -{removed} across {len(files)} file(s)",
    )


# =============================================================================
# NODE FUNCTIONS
# =============================================================================
def fetch_pr_data(state: ReviewState) -> dict:
    """
    Node 1: Fetch the PR diff (unless one was supplied) and parse it.

    Reads: repo, pr_number, diff
    Updates: diff, changed_files, files_to_review, context, delta, error
    """
    try:
        raw_diff = state.diff
        context = state.context
        if not raw_diff:
            logger.info("📥 Fetching PR #%d from %s...", state.pr_number, state.repo)
            metadata = fetch_pr_metadata(state.repo, state.pr_number)
            raw_diff = fetch_raw_diff(state.repo, state.pr_number)
            context = context.model_copy(
                update={"title": metadata.title, "description": metadata.description or ""}
            )

        changed_files = parse_diff(raw_diff)
        files_to_review = filter_files(changed_files)

    except Exception as e:
        logger.error("Failed to fetch PR: %s", e)
        return {"error": str(e), "diff": "", "files_to_review": []}

    logger.info(
        "   Found %d files, %d to review",
        len(changed_files),
        len(files_to_review),
    )
    return {
        "diff": raw_diff,
        "changed_files": changed_files,
        "files_to_review": files_to_review,
        "context": context,
        "delta": summarize_delta(changed_files),
    }


async def run_reviewers(state: ReviewState) -> dict:
    """
    Node 2: Run every reviewer task through the pipeline.

    Reads: files_to_review, context, delta, pipeline_config, reviewers
    Updates: pipeline_result
    """
    if state.error or not state.files_to_review:
        return {}

    tasks = default_reviewers(get_provider(), state.reviewers or None)
    logger.info("🔍 Running %d reviewer(s) (%s)...", len(tasks), state.pipeline_config.mode)

    result = await run_pipeline(
        tasks,
        state.files_to_review,
        state.context,
        state.delta,
        state.pipeline_config,
    )
    logger.info("   %d raw finding(s) in %.1fs", len(result.findings), result.total_latency_ms / 1000)
    return {"pipeline_result": result}


def aggregate_findings(state: ReviewState) -> dict:
    """
    Node 3: Ground, deduplicate, rank and escalate.

    Reads: pipeline_result, changed_files, pipeline_config
    Updates: result, report
    """
    if state.error or state.pipeline_result is None:
        return {}

    logger.info("🔀 Aggregating findings...")
    result = aggregate(state.pipeline_result, state.changed_files, state.pipeline_config)
    logger.info("   %s", format_compact_summary(result))
    if result.should_escalate:
        logger.warning("⚠️  Needs human review: %s", ", ".join(result.escalation_reasons))

    return {"result": result, "report": format_as_markdown(result)}


def post_review_node(state: ReviewState) -> dict:
    """
    Node 4: Post the review to GitHub.

    Reads: repo, pr_number, result, report, diff
    Updates: review_posted, review_id, error
    """
    logger.info("📝 Posting review to GitHub...")

    try:
        review = build_review_submission(state.result, state.report, state.diff)
        posted = post_review_with_fallback(state.repo, state.pr_number, review)
    except Exception as e:
        logger.error("   ❌ Failed to post review: %s", e)
        return {"review_posted": False, "error": str(e)}

    review_id = posted.get("review_id") or posted.get("comment_id")
    logger.info("   ✅ Posted review #%s", review_id)
    return {"review_posted": True, "review_id": review_id}


# =============================================================================
# DECISION FUNCTIONS (for conditional edges)
# =============================================================================
def should_post_review(state: ReviewState) -> str:
    """
    Decide whether to post a review or end.

    Returns:
        "post_review" when posting is enabled and there is something to say
        "end" otherwise
    """
    # LangGraph may pass state as dict or dataclass
    get = state.get if isinstance(state, dict) else lambda k, d=None: getattr(state, k, d)
    result = get("result")

    if not get("post") or get("error") or result is None:
        return "end"
    if result.findings or result.should_escalate:
        logger.info("🔀 Decision: %d issue(s) found → posting review", len(result.findings))
        return "post_review"

    logger.info("🔀 Decision: No issues found → ending")
    return "end"


# =============================================================================
# GRAPH CONSTRUCTION
# =============================================================================
def build_review_graph() -> StateGraph:
    """Build the review workflow graph."""
    graph = StateGraph(ReviewState)

    graph.add_node("fetch_pr_data", fetch_pr_data)
    graph.add_node("run_reviewers", run_reviewers)
    graph.add_node("aggregate_findings", aggregate_findings)
    graph.add_node("post_review", post_review_node)

    graph.add_edge(START, "fetch_pr_data")
    graph.add_edge("fetch_pr_data", "run_reviewers")
    graph.add_edge("run_reviewers", "aggregate_findings")
    graph.add_conditional_edges(
        "aggregate_findings",
        should_post_review,
        {
            "post_review": "post_review",
            "end": END,
        },
    )
    graph.add_edge("post_review", END)

    return graph


def create_agent():
    """Create and compile the review agent."""
    return build_review_graph().compile()


async def run_review(initial_state: ReviewState) -> dict:
    """Run the compiled graph and return the final state values."""
    agent = create_agent()
    return await agent.ainvoke(initial_state)
