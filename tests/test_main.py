"""
Tests for the command line entry point.
"""

import json

import pytest
from typer.testing import CliRunner

import agent
from main import app
from reviewer import MockProvider

runner = CliRunner()

CRITICAL_REPLY = json.dumps(
    {
        "findings": [
            {
                "severity": "critical",
                "category": "secrets",
                "file": "app/new.py",
                "line": 1,
                "message": "API key committed in source",
            }
        ],
        "summary": "Secret committed.",
        "confidence": 0.95,
    }
)


@pytest.fixture
def diff_file(tmp_path, sample_diff):
    path = tmp_path / "change.diff"
    path.write_text(sample_diff, encoding="utf-8")
    return path


@pytest.fixture
def critical_provider(monkeypatch):
    monkeypatch.setattr(agent, "get_provider", lambda: MockProvider(response=CRITICAL_REPLY))


def test_diff_prints_report(diff_file, critical_provider):
    result = runner.invoke(app, ["diff", str(diff_file)])

    assert result.exit_code == 0
    assert "PRLens Review" in result.output
    assert "API key committed in source" in result.output


def test_fail_on_escalate(diff_file, critical_provider):
    result = runner.invoke(app, ["diff", str(diff_file), "--fail-on-escalate", "--mode", "parallel"])

    assert result.exit_code == 2


def test_clean_review_passes_gate(diff_file, monkeypatch):
    clean = json.dumps({"findings": [], "summary": "Looks fine", "confidence": 0.9})
    monkeypatch.setattr(agent, "get_provider", lambda: MockProvider(response=clean))

    result = runner.invoke(app, ["diff", str(diff_file), "--fail-on-escalate", "-r", "quality"])

    assert result.exit_code == 0
    assert "No issues detected" in result.output


def test_empty_diff_file(tmp_path):
    path = tmp_path / "empty.diff"
    path.write_text("  \n", encoding="utf-8")

    result = runner.invoke(app, ["diff", str(path)])

    assert result.exit_code == 1
