# Copyright 2025 Lars Marowsky-Brée <lars@marowsky-bree.eu>
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Configuration loading for secret patterns and default locations."""

import os
import re
from pathlib import Path
from typing import Any

import yaml

from .models import PatternRule
from .patterns import SECRET_GROUP, PatternRegistry, default_registry

VALID_CONFIDENCE = {"high", "medium", "low"}

PROJECT_PATTERNS_FILE = ".secret_patterns"
GLOBAL_CONFIG_DIR = Path.home() / ".claude"
GLOBAL_PATTERNS_FILE = GLOBAL_CONFIG_DIR / ".secret_patterns"

DEFAULT_SECRETS_DIR = GLOBAL_CONFIG_DIR / "secrets"
DEFAULT_LOG_DIR = GLOBAL_CONFIG_DIR / "projects"
SESSION_LOG_GLOB = "*.jsonl"


class ConfigError(Exception):
    """A pattern file could not be loaded."""


def _parse_rule(data: dict[str, Any]) -> PatternRule:
    """Parse a pattern dictionary into a PatternRule."""
    return PatternRule(
        name=data["name"],
        pattern=data["pattern"],
        description=data.get("description", ""),
        confidence=data.get("confidence", "high"),
    )


def load_patterns_file(path: Path) -> list[PatternRule]:
    """Load pattern rules from a YAML file.

    Raises ConfigError if the file exists but is not a valid pattern file.
    """
    if not path.exists():
        return []
    errors = validate_patterns_file(path)
    if errors:
        raise ConfigError(f"{path}: {'; '.join(errors)}")
    with path.open() as f:
        data = yaml.safe_load(f)
    if not data or "patterns" not in data:
        return []
    return [_parse_rule(r) for r in data["patterns"]]


def load_patterns(project_dir: Path | None = None) -> list[PatternRule]:
    """Load and merge user patterns from global and project files.

    Project patterns override global patterns with the same name.
    """
    global_rules = load_patterns_file(GLOBAL_PATTERNS_FILE)
    if project_dir is None:
        project_dir = Path.cwd()
    project_rules = load_patterns_file(project_dir / PROJECT_PATTERNS_FILE)

    rules_by_name: dict[str, PatternRule] = {}
    for rule in global_rules:
        rules_by_name[rule.name] = rule
    for rule in project_rules:
        rules_by_name[rule.name] = rule

    return list(rules_by_name.values())


def build_registry(
    patterns_file: Path | None = None, project_dir: Path | None = None
) -> PatternRegistry:
    """Built-in rules extended by user patterns.

    With ``patterns_file`` only that file is layered over the built-ins.
    """
    if patterns_file is not None:
        extra = load_patterns_file(patterns_file)
    else:
        extra = load_patterns(project_dir)
    if not extra:
        return default_registry()
    return default_registry().extended(extra)


def get_patterns_path(global_: bool = False, project_dir: Path | None = None) -> Path:
    """Get the path to the patterns file."""
    if global_:
        return GLOBAL_PATTERNS_FILE
    if project_dir is None:
        project_dir = Path.cwd()
    return project_dir / PROJECT_PATTERNS_FILE


def secrets_dir() -> Path:
    """Directory holding per-service secret files."""
    override = os.environ.get("SECRETS_DIR")
    return Path(override).expanduser() if override else DEFAULT_SECRETS_DIR


def log_dir() -> Path:
    """Directory holding recorded session logs."""
    override = os.environ.get("SECRETS_LOG_DIR")
    return Path(override).expanduser() if override else DEFAULT_LOG_DIR


def default_log_paths() -> list[Path]:
    """All session logs below the log directory, sorted."""
    root = log_dir()
    if not root.is_dir():
        return []
    return sorted(p for p in root.rglob(SESSION_LOG_GLOB) if p.is_file())


def _validate_rule(rule: dict[str, Any], index: int, seen_names: set[str]) -> list[str]:
    """Validate a single pattern dict, return list of errors."""
    errors: list[str] = []
    prefix = f"Pattern {index + 1}"

    if "name" not in rule:
        errors.append(f"{prefix}: missing required field 'name'")
    else:
        name = rule["name"]
        prefix = f"Pattern '{name}'"
        if name in seen_names:
            errors.append(f"{prefix}: duplicate name")
        seen_names.add(name)

    if "pattern" not in rule:
        errors.append(f"{prefix}: missing required field 'pattern'")
    elif not isinstance(rule["pattern"], str):
        errors.append(f"{prefix}: pattern must be a string")
    else:
        try:
            compiled = re.compile(rule["pattern"])
        except re.error as e:
            errors.append(f"{prefix}: invalid regex pattern: {e}")
        else:
            if rule.get("group") == SECRET_GROUP and SECRET_GROUP not in compiled.groupindex:
                errors.append(f"{prefix}: pattern has no '(?P<{SECRET_GROUP}>...)' group")

    if "confidence" in rule and rule["confidence"] not in VALID_CONFIDENCE:
        valid = ", ".join(sorted(VALID_CONFIDENCE))
        errors.append(
            f"{prefix}: invalid confidence '{rule['confidence']}' (must be: {valid})"
        )

    return errors


def validate_patterns_file(path: Path) -> list[str]:
    """Validate a patterns file, return list of error messages (empty if valid)."""
    if not path.exists():
        return []

    try:
        with path.open() as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        return [f"YAML syntax error: {e}"]

    if data is None:
        return []

    if not isinstance(data, dict):
        return ["Invalid format: expected a mapping with 'patterns' key"]

    if "patterns" not in data:
        return []

    if not isinstance(data["patterns"], list):
        return ["Invalid format: 'patterns' must be a list"]

    errors: list[str] = []
    seen_names: set[str] = set()
    for i, rule in enumerate(data["patterns"]):
        if not isinstance(rule, dict):
            errors.append(f"Pattern {i + 1}: must be a mapping")
            continue
        errors.extend(_validate_rule(rule, i, seen_names))

    return errors
