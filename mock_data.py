"""Mock responses for running reviewers without API calls."""

# Shape of a real Gemini reply for the security reviewer
MOCK_RESPONSE = """```json
{
  "findings": [
    {
      "severity": "medium",
      "category": "other",
      "file": "app/stats.py",
      "line": 3,
      "message": "calculate_average raises ZeroDivisionError when the input list is empty.",
      "suggestion": "Guard the division: if not numbers: return 0"
    }
  ],
  "summary": "One edge-case bug in the averaging helper.",
  "confidence": 0.85
}
```"""

MOCK_EMPTY_RESPONSE = '{"findings": [], "summary": "No issues found", "confidence": 0.9}'
