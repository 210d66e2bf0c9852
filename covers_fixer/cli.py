"""CLI entry point — command definitions using Click.

Commands:
    init          Generate a template config file
    process       Add or fix CoversClass / CoversMethod attributes in PHP tests
    rules         List the available rules with a before/after sample
"""

import json
import sys
from typing import Any

import click

from covers_fixer import __version__


# ---------------------------------------------------------------------------
# Helpers shared by all commands
# ---------------------------------------------------------------------------

def _load_config(ctx: click.Context):
    """Load the config file. Exits on error."""
    from covers_fixer.config import ConfigError, load

    obj = ctx.obj
    try:
        config = load(obj["config_path"])
    except ConfigError as exc:
        click.echo(f"Configuration error: {exc}", err=True)
        sys.exit(1)

    if obj["verbose"]:
        click.echo(f"[verbose] Loaded {obj['config_path']} (rules: {', '.join(config.rules)})", err=True)

    return config


def _emit_json(data: Any, ctx: click.Context) -> None:
    """Write JSON to stdout or to the file specified by --output."""
    obj = ctx.obj
    indent = 2 if obj["pretty"] else None
    text = json.dumps(data, indent=indent, ensure_ascii=False)

    output_path: str | None = obj["output_path"]
    if output_path:
        with open(output_path, "w", encoding="utf-8") as f:
            f.write(text)
        click.echo(f"Report written to '{output_path}'", err=True)
    else:
        click.echo(text)


def _handle_errors(func):
    """Decorator that catches covers-fixer exceptions and exits cleanly."""
    import functools

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        from covers_fixer.config import ConfigError
        from covers_fixer.errors import CoversFixerError, PathNotFoundError

        try:
            return func(*args, **kwargs)
        except ConfigError as exc:
            click.echo(f"Configuration error: {exc}", err=True)
            sys.exit(1)
        except PathNotFoundError as exc:
            click.echo(f"Not found: {exc}", err=True)
            sys.exit(1)
        except CoversFixerError as exc:
            click.echo(f"Error: {exc}", err=True)
            sys.exit(1)

    return wrapper


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------

@click.group()
@click.option("--config", "config_path", default="covers-fixer.yaml", show_default=True,
              help="Path to the configuration file.")
@click.option("--output", "output_path", default=None,
              help="Write the JSON report to a file instead of stdout.")
@click.option("--pretty", is_flag=True, default=False,
              help="Pretty-print the JSON output.")
@click.option("--verbose", is_flag=True, default=False,
              help="Enable verbose logging.")
@click.version_option(__version__, prog_name="covers-fixer")
@click.pass_context
def cli(ctx: click.Context, config_path: str, output_path: str | None,
        pretty: bool, verbose: bool) -> None:
    """Add missing PHPUnit CoversClass / CoversMethod attributes to test classes."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["output_path"] = output_path
    ctx.obj["pretty"] = pretty
    ctx.obj["verbose"] = verbose


# ---------------------------------------------------------------------------
# init
# ---------------------------------------------------------------------------

@cli.command("init")
@click.option("--output", "output_path", default="covers-fixer.yaml", show_default=True,
              help="Path where the template config file will be written.")
def init_command(output_path: str) -> None:
    """Generate a template covers-fixer.yaml file."""
    from covers_fixer.config import ConfigError, generate_template
    try:
        generate_template(output_path)
        click.echo(f"Template written to '{output_path}'.")
        click.echo("Edit it with your test paths and namespace mappings.")
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


# ---------------------------------------------------------------------------
# process
# ---------------------------------------------------------------------------

@cli.command("process")
@click.argument("paths", nargs=-1, type=click.Path())
@click.option("--dry-run", is_flag=True, default=False,
              help="Report what would change without writing any file.")
@click.option("--diff", "show_diff", is_flag=True, default=False,
              help="Print a unified diff of every changed file to stderr.")
@click.pass_context
@_handle_errors
def process_command(ctx: click.Context, paths: tuple[str, ...], dry_run: bool,
                    show_diff: bool) -> None:
    """Process PATHS (default: the configured paths) and report the changes."""
    from covers_fixer.config import ConfigError
    from covers_fixer.engine import Engine
    from covers_fixer.reports.changes import build_report
    from covers_fixer.rules import build_rules

    config = _load_config(ctx)
    targets = list(paths) or config.paths
    if not targets:
        raise ConfigError(
            "No paths to process: pass them as arguments or set 'paths' in the config."
        )

    engine = Engine(build_rules(config))
    if ctx.obj["verbose"]:
        mode = "dry run" if dry_run else "writing changes"
        click.echo(f"[verbose] Processing {', '.join(targets)} ({mode})", err=True)

    results = engine.process_paths(targets, skip=config.skip, dry_run=dry_run)

    for result in results:
        if result.error:
            click.echo(f"PHP syntax error in {result.path}: {result.error}", err=True)
        elif result.changed:
            if ctx.obj["verbose"]:
                click.echo(f"[verbose] {result.path}: {len(result.changes)} class(es) updated", err=True)
            if show_diff:
                click.echo(result.diff(), err=True, nl=False)

    _emit_json(build_report(results, dry_run=dry_run), ctx)

    if any(r.error for r in results):
        sys.exit(1)


# ---------------------------------------------------------------------------
# rules
# ---------------------------------------------------------------------------

@cli.command("rules")
def rules_command() -> None:
    """List the available rules."""
    from covers_fixer.rules import RULE_CLASSES

    for name, rule_class in sorted(RULE_CLASSES.items()):
        before, after = rule_class.sample
        click.echo(name)
        click.echo(f"    {rule_class.description}")
        click.echo("")
        click.echo("    Before:")
        click.echo(_indent(before, 8))
        click.echo("    After:")
        click.echo(_indent(after, 8))


def _indent(text: str, width: int) -> str:
    pad = " " * width
    return "\n".join(pad + line if line else line for line in text.rstrip("\n").split("\n"))
