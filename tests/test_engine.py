"""Tests for covers_fixer/engine.py"""

import textwrap
from pathlib import Path

import pytest

from covers_fixer.engine import Engine, discover
from covers_fixer.errors import PathNotFoundError
from covers_fixer.models import NO_CHANGE
from covers_fixer.rules.cover_class import CoverageAnnotationResolver

DELETE_TEST = textwrap.dedent("""\
    <?php

    namespace Tests\\Feature\\Http\\Controllers\\TeamController;

    use Tests\\TestCase;

    class DeleteTest extends TestCase
    {
    }
    """)

DELETE_TEST_FIXED = textwrap.dedent("""\
    <?php

    namespace Tests\\Feature\\Http\\Controllers\\TeamController;

    use Tests\\TestCase;

    #[\\PHPUnit\\Framework\\Attributes\\CoversClass(\\App\\Http\\Controllers\\TeamController::class)]
    #[\\PHPUnit\\Framework\\Attributes\\CoversMethod(\\App\\Http\\Controllers\\TeamController::class, 'Delete')]
    class DeleteTest extends TestCase
    {
    }
    """)

ALREADY_COVERED = textwrap.dedent("""\
    <?php

    namespace Tests\\Unit\\Services;

    use App\\Services\\InvoiceService;
    use PHPUnit\\Framework\\Attributes\\CoversClass;

    #[CoversClass(InvoiceService::class)]
    final class InvoiceServiceTest extends TestCase
    {
    }
    """)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

@pytest.fixture
def engine() -> Engine:
    return Engine([CoverageAnnotationResolver()])


def write(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


class RecordingRule:
    """Rule stub that records what it was given."""

    name = "recording"

    def __init__(self) -> None:
        self.seen = []

    def resolve(self, decl):
        self.seen.append(decl)
        return NO_CHANGE


# ---------------------------------------------------------------------------
# process_source()
# ---------------------------------------------------------------------------

class TestProcessSource:
    def test_adds_class_and_method_attributes(self, engine):
        result = engine.process_source(DELETE_TEST, "DeleteTest.php")
        assert result.updated == DELETE_TEST_FIXED
        assert result.changed
        [change] = result.changes
        assert change.class_name == "\\Tests\\Feature\\Http\\Controllers\\TeamController\\DeleteTest"
        assert change.tested_class == "\\App\\Http\\Controllers\\TeamController"
        assert change.covered_method == "Delete"
        assert change.rule == "fix-missing-cover-class"
        assert change.line == 7

    def test_fixed_source_is_stable(self, engine):
        result = engine.process_source(DELETE_TEST_FIXED)
        assert not result.changed
        assert result.changes == []
        assert result.updated == DELETE_TEST_FIXED

    def test_imported_attribute_already_correct(self, engine):
        result = engine.process_source(ALREADY_COVERED)
        assert not result.changed

    def test_non_test_classes_untouched(self, engine):
        source = "<?php\nnamespace Tests\\Unit;\nclass Helper {}\n"
        assert engine.process_source(source).updated == source

    def test_wrong_target_corrected(self, engine):
        source = ALREADY_COVERED.replace("InvoiceService::class", "\\App\\Services\\OldService::class")
        result = engine.process_source(source)
        assert (
            "#[\\PHPUnit\\Framework\\Attributes\\CoversClass(\\App\\Services\\InvoiceService::class)]\n"
            "final class InvoiceServiceTest"
        ) in result.updated
        assert "OldService" not in result.updated

    def test_every_rule_sees_every_class(self):
        rule = RecordingRule()
        Engine([rule]).process_source("<?php\nclass ATest {}\nclass B {}\n")
        assert [d.simple_name for d in rule.seen] == ["ATest", "B"]

    def test_later_rule_sees_earlier_groups(self):
        rule = RecordingRule()
        Engine([CoverageAnnotationResolver(), rule]).process_source("<?php\nclass FooTest {}\n")
        [seen] = rule.seen
        assert len(seen.groups) == 1


# ---------------------------------------------------------------------------
# process_file() / process_paths()
# ---------------------------------------------------------------------------

class TestProcessFiles:
    def test_writes_changes(self, engine, tmp_path):
        path = write(tmp_path / "DeleteTest.php", DELETE_TEST)
        result = engine.process_file(path)
        assert result.changed
        assert path.read_text(encoding="utf-8") == DELETE_TEST_FIXED

    def test_dry_run_writes_nothing(self, engine, tmp_path):
        path = write(tmp_path / "DeleteTest.php", DELETE_TEST)
        result = engine.process_file(path, dry_run=True)
        assert result.changed
        assert path.read_text(encoding="utf-8") == DELETE_TEST

    def test_syntax_error_recorded(self, engine, tmp_path):
        path = write(tmp_path / "BrokenTest.php", "<?php\nclass BrokenTest { $a = 'x; }\n")
        result = engine.process_file(path)
        assert result.error is not None
        assert "unterminated string" in result.error
        assert not result.changed
        assert path.read_text(encoding="utf-8") == "<?php\nclass BrokenTest { $a = 'x; }\n"

    def test_process_paths_continues_after_error(self, engine, tmp_path):
        write(tmp_path / "tests" / "A" / "BrokenTest.php", "<?php /* open")
        write(tmp_path / "tests" / "B" / "DeleteTest.php", DELETE_TEST)
        results = engine.process_paths([tmp_path / "tests"])
        assert [r.error is not None for r in results] == [True, False]
        assert results[1].changed

    def test_undecodable_file_warns(self, engine, tmp_path):
        path = tmp_path / "LatinTest.php"
        path.write_bytes(b"<?php\n// \xff\xfe\n")
        with pytest.warns(UserWarning, match="not valid UTF-8"):
            assert engine.process_paths([path]) == []

    def test_crlf_line_endings_preserved(self, engine, tmp_path):
        path = tmp_path / "FooTest.php"
        path.write_bytes(
            b"<?php\r\nnamespace Tests\\Unit;\r\n\r\nclass FooTest extends TestCase\r\n{\r\n}\r\n"
        )
        result = engine.process_file(path)
        assert result.changed
        written = path.read_bytes()
        assert written == (
            b"<?php\r\nnamespace Tests\\Unit;\r\n\r\n"
            b"#[\\PHPUnit\\Framework\\Attributes\\CoversClass(\\App\\Foo::class)]\r\n"
            b"class FooTest extends TestCase\r\n{\r\n}\r\n"
        )
        assert written.count(b"\r\n") == 7
        assert b"\n" not in written.replace(b"\r\n", b"")

    def test_unchanged_crlf_file_not_rewritten(self, engine, tmp_path):
        path = tmp_path / "Helper.php"
        path.write_bytes(b"<?php\r\nclass Helper\r\n{\r\n}\r\n")
        result = engine.process_file(path)
        assert not result.changed
        assert result.original == "<?php\r\nclass Helper\r\n{\r\n}\r\n"

    def test_diff(self, engine):
        result = engine.process_source(DELETE_TEST, "tests/DeleteTest.php")
        diff = result.diff()
        assert diff.startswith("--- a/tests/DeleteTest.php\n+++ b/tests/DeleteTest.php\n")
        assert "+#[\\PHPUnit\\Framework\\Attributes\\CoversClass(" in diff


# ---------------------------------------------------------------------------
# discover()
# ---------------------------------------------------------------------------

class TestDiscover:
    def test_recurses_and_sorts(self, tmp_path):
        b = write(tmp_path / "b" / "BTest.php", "")
        a = write(tmp_path / "a" / "ATest.php", "")
        write(tmp_path / "a" / "notes.txt", "")
        assert discover([tmp_path]) == [a, b]

    def test_explicit_file_kept(self, tmp_path):
        path = write(tmp_path / "FooTest.inc", "")
        assert discover([path]) == [path]

    def test_duplicates_removed(self, tmp_path):
        path = write(tmp_path / "FooTest.php", "")
        assert discover([tmp_path, path]) == [path]

    def test_skip_patterns(self, tmp_path):
        write(tmp_path / "Fixtures" / "FooTest.php", "")
        kept = write(tmp_path / "Unit" / "BarTest.php", "")
        assert discover([tmp_path], skip=["*/Fixtures/*"]) == [kept]

    def test_missing_path_raises(self, tmp_path):
        with pytest.raises(PathNotFoundError, match="no-such-dir"):
            discover([tmp_path / "no-such-dir"])
