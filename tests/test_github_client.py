"""
Tests for turning an aggregated result into a GitHub review.
"""

import github_client
from github_client import ReviewComment, ReviewSubmission, build_review_submission, post_review_with_fallback
from models import AggregatedResult


class TestBuildReviewSubmission:
    def test_inline_comments_for_diff_lines(self, sample_diff, make_finding):
        on_diff = make_finding(file="app/db.py", line=3, severity="high", suggestion="Close it")
        outside = make_finding(file="app/db.py", line=80, message="Far away")
        general = make_finding(file=None, line=None, message="Overall design")
        result = AggregatedResult(findings=[on_diff, outside, general])

        review = build_review_submission(result, "## body", sample_diff)

        assert review.body == "## body"
        assert review.event == "COMMENT"
        [comment] = review.comments
        assert (comment.path, comment.line, comment.side) == ("app/db.py", 3, "RIGHT")
        assert comment.body.startswith("**[HIGH] quality/bug**")
        assert "💡 Close it" in comment.body

    def test_without_diff_everything_stays_in_body(self, make_finding):
        result = AggregatedResult(findings=[make_finding()], should_escalate=True)

        review = build_review_submission(result, "body")

        assert review.comments == []
        assert review.event == "REQUEST_CHANGES"


class TestPostReviewWithFallback:
    def test_review_posted(self, monkeypatch):
        monkeypatch.setattr(github_client, "post_review", lambda repo, pr, review: 11)

        posted = post_review_with_fallback("kulbir/PRLens", 3, ReviewSubmission(body="b"))

        assert posted == {"fallback": False, "review_id": 11}

    def test_falls_back_to_comment(self, monkeypatch):
        bodies = []

        def failing_review(repo, pr_number, review):
            raise ValueError("Failed to post review: Unprocessable Entity")

        def comment(repo, pr_number, body):
            bodies.append(body)
            return 99

        monkeypatch.setattr(github_client, "post_review", failing_review)
        monkeypatch.setattr(github_client, "post_pr_comment", comment)
        review = ReviewSubmission(
            body="Summary",
            comments=[ReviewComment(path="app/db.py", line=2, body="Leak")],
        )

        posted = post_review_with_fallback("kulbir/PRLens", 3, review)

        assert posted == {"fallback": True, "comment_id": 99}
        [body] = bodies
        assert body.startswith("Summary\n\n## Inline Comments")
        assert "**app/db.py** (line 2):\n> Leak" in body
