"""Change report generator.

Functions:
    build_report(results, dry_run) -> dict

The report lists every file that was (or, in dry-run mode, would be)
rewritten, plus every file that could not be scanned.
"""

from datetime import datetime, timezone

from covers_fixer.engine import FileResult


def build_report(results: list[FileResult], dry_run: bool = False) -> dict:
    files = [_file_entry(r) for r in results if r.changed or r.error]
    return {
        "report_type": "covers_fix",
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "dry_run": dry_run,
        "summary": _build_summary(results),
        "files": files,
    }


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _file_entry(result: FileResult) -> dict:
    return {
        "path": result.path,
        "changes": [c.to_dict() for c in result.changes],
        "error": result.error,
    }


def _build_summary(results: list[FileResult]) -> dict:
    return {
        "files_scanned":     len(results),
        "files_changed":     sum(1 for r in results if r.changed),
        "classes_changed":   sum(len(r.changes) for r in results if r.changed),
        "files_with_errors": sum(1 for r in results if r.error),
    }
