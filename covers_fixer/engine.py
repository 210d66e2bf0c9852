"""Run rules over PHP files.

Usage:
    engine  = Engine(build_rules(config))
    results = engine.process_paths(["tests"], skip=["tests/Fixtures/*"], dry_run=True)
"""

import difflib
import fnmatch
import warnings
from dataclasses import dataclass, field
from pathlib import Path

from covers_fixer import php
from covers_fixer.errors import CoversFixerError, PathNotFoundError
from covers_fixer.models import Replace

PHP_SUFFIX = ".php"


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ClassChange:
    class_name: str
    line: int
    rule: str
    tested_class: str
    covered_method: str | None = None

    def to_dict(self) -> dict:
        return {
            "class": self.class_name,
            "line": self.line,
            "rule": self.rule,
            "tested_class": self.tested_class,
            "covered_method": self.covered_method,
        }


@dataclass
class FileResult:
    path: str
    original: str = ""
    updated: str = ""
    changes: list[ClassChange] = field(default_factory=list)
    error: str | None = None

    @property
    def changed(self) -> bool:
        return self.error is None and self.updated != self.original

    def diff(self) -> str:
        """Unified diff between the original and the rewritten text."""
        return "".join(difflib.unified_diff(
            self.original.splitlines(keepends=True),
            self.updated.splitlines(keepends=True),
            fromfile=f"a/{self.path}",
            tofile=f"b/{self.path}",
        ))


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class Engine:
    """Apply a list of rule instances to PHP sources."""

    def __init__(self, rules) -> None:
        self.rules = list(rules)

    def process_source(self, source: str, path: str = "<string>") -> FileResult:
        """Run every rule on every class of *source*.

        Raises:
            PhpSyntaxError: if *source* cannot be scanned.
        """
        result = FileResult(path=path, original=source, updated=source)
        edits = []
        for site in php.scan(source):
            decl = site.declaration
            final = None
            for rule in self.rules:
                decision = rule.resolve(decl)
                if not isinstance(decision, Replace):
                    continue
                final = decision
                decl = decl.with_groups(decision.groups)
                result.changes.append(ClassChange(
                    class_name=site.declaration.fqn,
                    line=site.line,
                    rule=rule.name,
                    tested_class=decision.target.tested_class_fqn,
                    covered_method=decision.target.covered_method_name,
                ))
            if final is not None:
                edits.append((site, Replace(decl.groups, final.target)))

        if edits:
            result.updated = php.apply(source, edits)
        return result

    def process_file(self, path: Path, dry_run: bool = False) -> FileResult:
        """Process one file, writing it back unless *dry_run* or unchanged.

        Syntax errors are recorded on the result instead of being raised.
        Line endings are read and written untranslated.
        """
        with path.open(encoding="utf-8", newline="") as f:
            source = f.read()
        try:
            result = self.process_source(source, str(path))
        except CoversFixerError as exc:
            return FileResult(path=str(path), original=source, updated=source, error=str(exc))

        if result.changed and not dry_run:
            with path.open("w", encoding="utf-8", newline="") as f:
                f.write(result.updated)
        return result

    def process_paths(self, paths, skip=(), dry_run: bool = False) -> list[FileResult]:
        results = []
        for path in discover(paths, skip):
            try:
                results.append(self.process_file(path, dry_run=dry_run))
            except UnicodeDecodeError:
                warnings.warn(f"Skipping '{path}': not valid UTF-8", UserWarning, stacklevel=2)
        return results


# ---------------------------------------------------------------------------
# File discovery
# ---------------------------------------------------------------------------

def discover(paths, skip=()) -> list[Path]:
    """Expand *paths* into a sorted, de-duplicated list of PHP files.

    Directories are searched recursively for ``*.php``; explicit files are
    kept whatever their suffix. Paths matching any *skip* glob are dropped.

    Raises:
        PathNotFoundError: if one of *paths* does not exist.
    """
    found: set[Path] = set()
    for raw in paths:
        path = Path(raw)
        if not path.exists():
            raise PathNotFoundError(f"Path not found: '{raw}'")
        if path.is_dir():
            found.update(p for p in path.rglob(f"*{PHP_SUFFIX}") if p.is_file())
        else:
            found.add(path)

    return sorted(p for p in found if not _is_skipped(p, skip))


def _is_skipped(path: Path, skip) -> bool:
    posix = path.as_posix()
    return any(fnmatch.fnmatch(posix, pattern) for pattern in skip)
