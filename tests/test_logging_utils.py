"""Tests for logging_utils module."""

from __future__ import annotations

from kanban_sync.logging_utils import configure_logging, pretty, summarize_assignments


class TestSummarizeAssignments:
    def test_empty(self):
        assert summarize_assignments([]) == "(none)"

    def test_pairs(self):
        assert summarize_assignments([(3, 0), (7, 1)]) == "3->0, 7->1"

    def test_truncates_long_lists(self):
        """Only the first ``max_items`` pairs are shown, plus a count of the rest."""
        result = summarize_assignments([(i, i) for i in range(20)], max_items=3)
        assert result.startswith("0->0, 1->1, 2->2, ")
        assert result.endswith("(+17)")


class TestPretty:
    def test_dict(self):
        assert pretty({"a": 1}, indent=None) == '{"a": 1}'

    def test_falls_back_to_str(self):
        circular: list = []
        circular.append(circular)
        assert pretty(circular) == str(circular)


def test_configure_logging_accepts_lowercase_level():
    configure_logging("debug")
    configure_logging("INFO")
