"""Configuration loading and validation.

Usage:
    config = load("covers-fixer.yaml")        # raises ConfigError on bad config
    rules  = build_rules(config)              # see covers_fixer.rules
    generate_template("covers-fixer.yaml")    # writes example file to disk
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from covers_fixer.errors import CoversFixerError
from covers_fixer.models import split_name
from covers_fixer.rules import RULE_CLASSES
from covers_fixer.rules.cover_class import DEFAULT_NAMESPACE, DEFAULT_NAMESPACE_MAP

DEFAULT_CONFIG_PATH = "covers-fixer.yaml"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class ConfigError(CoversFixerError):
    """Raised when the configuration is missing or invalid."""


# ---------------------------------------------------------------------------
# Config dataclass
# ---------------------------------------------------------------------------

@dataclass
class Config:
    rules: list[str] = field(default_factory=list)
    paths: list[str] = field(default_factory=list)
    skip: list[str] = field(default_factory=list)
    namespace_map: tuple = DEFAULT_NAMESPACE_MAP
    default_namespace: str = DEFAULT_NAMESPACE
    verify_covers_method: bool = False


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

def load(config_path: str = DEFAULT_CONFIG_PATH) -> Config:
    """Load and validate configuration from a YAML file.

    The COVERS_FIXER_PATHS environment variable (``os.pathsep``-separated)
    overrides ``paths``.

    Raises:
        ConfigError: if the file is missing, malformed, or invalid.
    """
    path = Path(config_path)

    if not path.exists():
        raise ConfigError(
            f"Config file not found: '{config_path}'\n"
            "Run `python -m covers_fixer init` to generate a template."
        )

    try:
        with path.open(encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse '{config_path}': {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigError(f"'{config_path}' must be a YAML mapping at the top level.")

    env_paths = os.environ.get("COVERS_FIXER_PATHS")
    if env_paths:
        paths = [p for p in env_paths.split(os.pathsep) if p]
    else:
        paths = raw.get("paths") or []

    errors: list[str] = []
    config = Config(
        rules=_string_list(raw.get("rules"), "rules", errors),
        paths=_string_list(paths, "paths", errors),
        skip=_string_list(raw.get("skip"), "skip", errors),
        namespace_map=_namespace_map(raw.get("namespace_map"), errors),
        default_namespace=str(raw.get("default_namespace") or DEFAULT_NAMESPACE).strip(),
        verify_covers_method=raw.get("verify_covers_method", False),
    )
    _validate(config, errors)
    return config


def _string_list(value, key: str, errors: list[str]) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        errors.append(f"  - '{key}' must be a list of strings")
        return []
    return [v.strip() for v in value if v.strip()]


def _namespace_map(value, errors: list[str]) -> tuple:
    """Turn ``{"Tests\\\\Feature": "App"}`` into ``((("Tests", "Feature"), "App"),)``."""
    if value is None:
        return DEFAULT_NAMESPACE_MAP
    if not isinstance(value, dict) or not value:
        errors.append("  - 'namespace_map' must be a non-empty mapping of prefix: replacement")
        return DEFAULT_NAMESPACE_MAP

    entries = []
    for prefix, replacement in value.items():
        prefix_segments = split_name(str(prefix))
        if not prefix_segments or not isinstance(replacement, str) or not split_name(replacement):
            errors.append(f"  - 'namespace_map' entry {prefix!r}: {replacement!r} is invalid")
            continue
        entries.append((prefix_segments, replacement))
    return tuple(entries)


def _validate(config: Config, errors: list[str]) -> None:
    """Raise ConfigError if required fields are missing or invalid."""
    if not config.rules:
        errors.append("  - 'rules' is empty; enable at least one rule")
    unknown = [name for name in config.rules if name not in RULE_CLASSES]
    if unknown:
        available = ", ".join(sorted(RULE_CLASSES))
        errors.append(
            f"  - unknown rule(s): {', '.join(unknown)} (available: {available})"
        )
    if not split_name(config.default_namespace):
        errors.append("  - 'default_namespace' must not be empty")
    if not isinstance(config.verify_covers_method, bool):
        errors.append("  - 'verify_covers_method' must be true or false")

    if errors:
        raise ConfigError("Invalid configuration:\n" + "\n".join(errors))


# ---------------------------------------------------------------------------
# Template generator (used by `init` command)
# ---------------------------------------------------------------------------

TEMPLATE = """\
rules:
  - fix-missing-cover-class

# Directories or files to process (overridable with COVERS_FIXER_PATHS)
paths:
  - tests

# Glob patterns of files to leave alone
skip:
  - "tests/Fixtures/*"

# Test namespace prefix: production namespace root, checked in order
namespace_map:
  "Tests\\\\Feature": "App"
  "Tests\\\\Unit": "App"

# Used when a test namespace matches none of the prefixes above
default_namespace: "App"

# Also require a matching CoversMethod for Create/Update/Delete/Show/Index/Destroy tests
verify_covers_method: false
"""


def generate_template(output_path: str = DEFAULT_CONFIG_PATH) -> None:
    """Write a template covers-fixer.yaml to *output_path*.

    Raises:
        ConfigError: if the file already exists.
    """
    path = Path(output_path)
    if path.exists():
        raise ConfigError(
            f"'{output_path}' already exists. Remove it first or choose a different path."
        )
    path.write_text(TEMPLATE, encoding="utf-8")
