"""Tests for covers_fixer/reports/changes.py"""

from covers_fixer.engine import ClassChange, FileResult
from covers_fixer.reports.changes import build_report

CHANGE = ClassChange(
    class_name="\\Tests\\Unit\\FooTest",
    line=5,
    rule="fix-missing-cover-class",
    tested_class="\\App\\Foo",
)


def _results() -> list[FileResult]:
    return [
        FileResult(path="tests/Unit/FooTest.php", original="a", updated="b", changes=[CHANGE]),
        FileResult(path="tests/Unit/BarTest.php", original="same", updated="same"),
        FileResult(path="tests/Unit/BrokenTest.php", original="x", updated="x", error="line 1: boom"),
    ]


class TestBuildReport:
    def test_report_type_and_timestamp(self):
        report = build_report([])
        assert report["report_type"] == "covers_fix"
        assert "generated_at" in report
        assert report["dry_run"] is False

    def test_dry_run_flag(self):
        assert build_report([], dry_run=True)["dry_run"] is True

    def test_summary_counts(self):
        summary = build_report(_results())["summary"]
        assert summary == {
            "files_scanned": 3,
            "files_changed": 1,
            "classes_changed": 1,
            "files_with_errors": 1,
        }

    def test_unchanged_files_are_omitted(self):
        paths = [f["path"] for f in build_report(_results())["files"]]
        assert paths == ["tests/Unit/FooTest.php", "tests/Unit/BrokenTest.php"]

    def test_change_entry(self):
        entry = build_report(_results())["files"][0]
        assert entry["error"] is None
        assert entry["changes"] == [{
            "class": "\\Tests\\Unit\\FooTest",
            "line": 5,
            "rule": "fix-missing-cover-class",
            "tested_class": "\\App\\Foo",
            "covered_method": None,
        }]

    def test_error_entry(self):
        entry = build_report(_results())["files"][1]
        assert entry["error"] == "line 1: boom"
        assert entry["changes"] == []
