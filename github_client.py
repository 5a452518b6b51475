"""GitHub API client: read a PR's diff, write the review back."""

import functools
import logging
import os
from dataclasses import dataclass, field

import requests
import requests.exceptions
from github import Auth, Github
from github.GithubException import GithubException

from config import validate_repo, with_retry
from diff_parser import build_line_mapping, map_findings_to_lines
from models import AggregatedResult, Finding

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------
@dataclass
class PRMetadata:
    """Pull Request metadata."""

    number: int
    title: str
    author: str
    draft: bool
    state: str
    base_branch: str
    head_branch: str
    description: str | None


@dataclass
class ReviewComment:
    """An inline comment on one line of the new version of a file."""

    path: str
    line: int
    body: str
    side: str = "RIGHT"


@dataclass
class ReviewSubmission:
    """A complete review to submit to a PR."""

    body: str = ""
    event: str = "COMMENT"  # APPROVE, REQUEST_CHANGES, COMMENT
    comments: list[ReviewComment] = field(default_factory=list)


def _github_message(e: GithubException) -> str:
    data = e.data if isinstance(getattr(e, "data", None), dict) else {}
    return data.get("message", str(e))


# ---------------------------------------------------------------------------
# Cached GitHub client
# ---------------------------------------------------------------------------
@functools.lru_cache(maxsize=1)
def get_github_client() -> Github:
    """Create or return a cached GitHub client."""
    token = os.getenv("GITHUB_TOKEN")
    if not token:
        raise ValueError(
            "GITHUB_TOKEN not found. Set it in .env file.\n"
            "Get your token at: https://github.com/settings/tokens"
        )
    return Github(auth=Auth.Token(token))


# ---------------------------------------------------------------------------
# Read operations
# ---------------------------------------------------------------------------
def fetch_pr_metadata(repo: str, pr_number: int) -> PRMetadata:
    """
    Fetch PR title, author, branches and description.

    Raises:
        ValueError: If PR not found or access denied
    """
    repo = validate_repo(repo)
    client = get_github_client()

    try:
        pr = client.get_repo(repo).get_pull(pr_number)
    except GithubException as e:
        if e.status == 404:
            raise ValueError(f"PR #{pr_number} not found in {repo}") from e
        raise ValueError(f"GitHub API error: {_github_message(e)}") from e

    return PRMetadata(
        number=pr.number,
        title=pr.title,
        author=pr.user.login,
        draft=pr.draft,
        state=pr.state,
        base_branch=pr.base.ref,
        head_branch=pr.head.ref,
        description=pr.body,
    )


@with_retry(
    max_retries=3,
    base_delay=1.0,
    retryable=(
        requests.exceptions.ConnectionError,
        requests.exceptions.Timeout,
    ),
)
def fetch_raw_diff(repo: str, pr_number: int) -> str:
    """
    Fetch the raw unified diff for the entire PR.

    PyGithub doesn't expose the diff media type, so this goes through
    the REST API directly.

    Raises:
        ValueError: If PR not found or the token is missing
    """
    repo = validate_repo(repo)

    token = os.getenv("GITHUB_TOKEN")
    if not token:
        raise ValueError("GITHUB_TOKEN not found")

    response = requests.get(
        f"https://api.github.com/repos/{repo}/pulls/{pr_number}",
        headers={
            "Authorization": f"token {token}",
            "Accept": "application/vnd.github.v3.diff",
        },
        timeout=30,
    )

    if response.status_code == 404:
        raise ValueError(f"PR #{pr_number} not found in {repo}")
    response.raise_for_status()

    return response.text


# ---------------------------------------------------------------------------
# Write operations
# ---------------------------------------------------------------------------
def post_pr_comment(repo: str, pr_number: int, body: str) -> int:
    """Post a conversation comment (not attached to a line). Returns its ID."""
    repo = validate_repo(repo)
    client = get_github_client()

    try:
        comment = client.get_repo(repo).get_pull(pr_number).create_issue_comment(body)
    except GithubException as e:
        raise ValueError(f"Failed to post comment: {_github_message(e)}") from e

    logger.info("Posted comment %d on PR #%d", comment.id, pr_number)
    return comment.id


def post_review(repo: str, pr_number: int, review: ReviewSubmission) -> int:
    """
    Post a review with inline comments on the latest commit.

    Returns:
        Review ID

    Raises:
        ValueError: If posting fails
    """
    repo = validate_repo(repo)
    client = get_github_client()

    try:
        pr = client.get_repo(repo).get_pull(pr_number)
        commit = pr.get_commits().reversed[0]
        github_review = pr.create_review(
            commit=commit,
            body=review.body,
            event=review.event,
            comments=[
                {"path": c.path, "line": c.line, "side": c.side, "body": c.body}
                for c in review.comments
            ],
        )
    except GithubException as e:
        error_msg = _github_message(e)
        logger.error("Failed to post review: %s", error_msg)
        raise ValueError(f"Failed to post review: {error_msg}") from e

    logger.info(
        "Posted review %d on PR #%d with %d comments",
        github_review.id,
        pr_number,
        len(review.comments),
    )
    return github_review.id


# ---------------------------------------------------------------------------
# Aggregated result -> review
# ---------------------------------------------------------------------------
def _comment_body(finding: Finding) -> str:
    body = f"**[{finding.severity.upper()}] {finding.source_task}/{finding.category}**\n\n{finding.message}"
    if finding.suggestion:
        body += f"\n\n💡 {finding.suggestion}"
    return body


def build_review_submission(
    result: AggregatedResult,
    summary_markdown: str,
    raw_diff: str = "",
) -> ReviewSubmission:
    """
    Turn an aggregated result into a review.

    Findings that land on a diff line become inline comments; the rest
    stay in the markdown body. Escalated reviews request changes.
    """
    comments: list[ReviewComment] = []
    if raw_diff:
        inline, _ = map_findings_to_lines(result.findings, build_line_mapping(raw_diff))
        comments = [ReviewComment(path=f.file, line=line, body=_comment_body(f)) for f, line in inline]

    return ReviewSubmission(
        body=summary_markdown,
        event="REQUEST_CHANGES" if result.should_escalate else "COMMENT",
        comments=comments,
    )


def post_review_with_fallback(repo: str, pr_number: int, review: ReviewSubmission) -> dict:
    """
    Post a review, falling back to a conversation comment on failure.

    Returns:
        Dict with 'review_id' and/or 'comment_id', plus 'fallback' boolean
    """
    repo = validate_repo(repo)
    result: dict = {"fallback": False}

    try:
        result["review_id"] = post_review(repo, pr_number, review)
        return result
    except ValueError as e:
        logger.warning("Review failed, falling back to general comment: %s", e)
        result["fallback"] = True

    fallback_body = review.body
    if review.comments:
        fallback_body += "\n\n## Inline Comments\n\n"
        for comment in review.comments:
            fallback_body += f"**{comment.path}** (line {comment.line}):\n> {comment.body}\n\n"

    result["comment_id"] = post_pr_comment(repo, pr_number, fallback_body)
    return result
