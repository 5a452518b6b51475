"""
Pytest configuration and shared fixtures for PRLens tests.
"""

import asyncio

import pytest

from models import Finding, TaskOutput

SAMPLE_DIFF = """\
diff --git a/app/db.py b/app/db.py
index 83db48f..bf269f4 100644
--- a/app/db.py
+++ b/app/db.py
@@ -1,3 +1,4 @@
 import sqlite3
+import os
 DB_PATH = "app.db"
 def get_user(conn, user_id):
diff --git a/app/new.py b/app/new.py
new file mode 100644
index 0000000..e69de29
--- /dev/null
+++ b/app/new.py
@@ -0,0 +1,2 @@
+def hello():
+    return "hi"
diff --git a/README.md b/README.md
index 1111111..2222222 100644
--- a/README.md
+++ b/README.md
@@ -1 +1,2 @@
 # Title
+More docs
"""


class StubTask:
    """Reviewer task double that records every input it receives."""

    def __init__(
        self,
        name: str,
        priority: int = 1,
        findings: list[Finding] | None = None,
        confidence: float = 0.9,
        error: Exception | None = None,
        delay: float = 0.0,
        tier: str = "code-review",
    ):
        self.name = name
        self.execution_priority = priority
        self.capability_tier = tier
        self.findings = findings or []
        self.confidence = confidence
        self.error = error
        self.delay = delay
        self.inputs = []

    async def run(self, task_input):
        self.inputs.append(task_input)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return TaskOutput(
            task_name=self.name,
            findings=list(self.findings),
            summary=f"{self.name} done",
            confidence=self.confidence,
        )


@pytest.fixture
def sample_diff() -> str:
    return SAMPLE_DIFF


@pytest.fixture
def make_finding():
    """Factory for findings with sensible defaults."""

    def _make(**overrides) -> Finding:
        values = {
            "source_task": "quality",
            "severity": "medium",
            "category": "bug",
            "file": "app/db.py",
            "line": 10,
            "message": "Something is wrong here",
        }
        values.update(overrides)
        return Finding(**values)

    return _make


@pytest.fixture
def stub_task():
    """Factory for StubTask instances."""
    return StubTask
