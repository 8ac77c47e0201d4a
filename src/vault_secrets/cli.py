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

"""Command-line interface for scanning and redacting session logs."""

import argparse
import sys
from pathlib import Path
from typing import NoReturn

from .audit import audit
from .config import (
    ConfigError,
    build_registry,
    default_log_paths,
    get_patterns_path,
    secrets_dir,
    validate_patterns_file,
)
from .inventory import has_secret, list_secrets
from .models import RedactionResult, ScanReport
from .patterns import PatternRegistry
from .redactor import redact
from .scanner import scan

EXIT_OK = 0
EXIT_FOUND = 1
EXIT_FAILED = 1
EXIT_NOTHING_READ = 2
EXIT_CONFIG = 3


def _load_registry(args: argparse.Namespace) -> PatternRegistry | None:
    """Build the active registry, printing config errors to stderr."""
    try:
        return build_registry(Path(args.rules) if args.rules else None)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return None


def _target_paths(args: argparse.Namespace) -> list[Path]:
    if args.paths:
        return [Path(p) for p in args.paths]
    return default_log_paths()


def _print_errors(errors: list[str]) -> None:
    for err in errors:
        print(f"Error: {err}", file=sys.stderr)


def _get_scan_exit_code(report: ScanReport) -> int:
    """Matches win over unreadable paths; unreadable only counts if nothing was read."""
    if report.matches:
        return EXIT_FOUND
    if report.sources and not report.processed:
        return EXIT_NOTHING_READ
    return EXIT_OK


def cmd_scan(args: argparse.Namespace) -> int:
    """Report secret-shaped text in session logs."""
    registry = _load_registry(args)
    if registry is None:
        return EXIT_CONFIG

    paths = _target_paths(args)
    if not paths:
        if not args.quiet:
            print("No session logs found", file=sys.stderr)
        return EXIT_OK

    report = scan(paths, verbose=args.verbose, registry=registry, jobs=args.jobs)
    for line in report.lines():
        print(line)
    _print_errors([str(e) for e in report.errors])

    if not args.quiet:
        files = len({m.path for m in report.matches})
        if report.matches:
            print(f"{len(report.matches)} match(es) in {files} file(s)", file=sys.stderr)
        elif report.processed:
            print("No matches found", file=sys.stderr)
    return _get_scan_exit_code(report)


def _get_redact_exit_code(results: list[RedactionResult]) -> int:
    if any(r.error and r.error.kind == "unwritable" for r in results):
        return EXIT_FAILED
    if results and all(not r.success for r in results):
        return EXIT_NOTHING_READ
    return EXIT_OK


def cmd_redact(args: argparse.Namespace) -> int:
    """Replace secrets in session logs with a placeholder."""
    registry = _load_registry(args)
    if registry is None:
        return EXIT_CONFIG

    paths = _target_paths(args)
    if not paths:
        print("No session logs found", file=sys.stderr)
        return EXIT_OK

    results = redact(paths, dry_run=args.dry_run, registry=registry, jobs=args.jobs)
    verb = "would redact" if args.dry_run else "redacted"
    for result in results:
        if result.error:
            _print_errors([str(result.error)])
        elif result.count:
            print(f"{result.path}: {verb} {result.count} secret(s)")
    total = sum(r.count for r in results if r.success)
    print(f"Total: {verb} {total} secret(s)", file=sys.stderr)
    return _get_redact_exit_code(results)


def cmd_audit(args: argparse.Namespace) -> int:
    """Check permissions of secret storage and vault scripts."""
    paths = [Path(p) for p in args.paths] if args.paths else [secrets_dir()]
    entries = audit(paths)
    for entry in entries:
        if entry.actual_mode is None:
            print(f"FAIL {entry.path}: {entry.error}")
            continue
        status = "OK  " if entry.ok else "FAIL"
        modes = f"expected {entry.expected_mode:04o}, actual {entry.actual_mode:04o}"
        line = f"{status} {entry.path} ({modes})"
        if entry.error:
            line += f": {entry.error}"
        print(line)
    return EXIT_OK if all(e.ok for e in entries) else EXIT_FAILED


def cmd_list(args: argparse.Namespace) -> int:
    """List stored secret files."""
    names = list_secrets()
    if not names:
        print(f"No secrets in {secrets_dir()}", file=sys.stderr)
        return EXIT_OK
    for name in names:
        print(name)
    return EXIT_OK


def cmd_test(args: argparse.Namespace) -> int:
    """Report whether a service has a stored secret."""
    try:
        found = has_secret(args.service)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILED
    if found:
        print(f"{args.service}: present")
        return EXIT_OK
    print(f"{args.service}: missing", file=sys.stderr)
    return EXIT_FAILED


def cmd_patterns(args: argparse.Namespace) -> int:
    """List the active detection patterns."""
    registry = _load_registry(args)
    if registry is None:
        return EXIT_CONFIG
    for rule in registry.rules:
        desc = f" - {rule.description}" if rule.description else ""
        print(f"{rule.name} [{rule.confidence}]{desc}")
    return EXIT_OK


def cmd_validate(args: argparse.Namespace) -> int:
    """Validate patterns file syntax."""
    path = Path(args.rules) if args.rules else get_patterns_path(global_=args.glob)
    errors = validate_patterns_file(path)
    if errors:
        print(f"Validation errors in {path}:", file=sys.stderr)
        for err in errors:
            print(f"  {err}", file=sys.stderr)
        return EXIT_FAILED
    print(f"{path}: OK")
    return EXIT_OK


def _jobs(value: str) -> int:
    jobs = int(value)
    if jobs < 1:
        raise argparse.ArgumentTypeError("must be at least 1")
    return jobs


def main() -> int | NoReturn:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="secrets", description="Find and redact leaked secrets in session logs"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # scan subcommand
    scan_parser = subparsers.add_parser("scan", help="Report secrets in session logs")
    scan_parser.add_argument("paths", nargs="*", help="Log files (default: all session logs)")
    scan_parser.add_argument(
        "-v", "--verbose", action="store_true", help="Show matched text"
    )
    scan_parser.add_argument("-q", "--quiet", action="store_true", help="Only output matches")
    scan_parser.add_argument("-j", "--jobs", type=_jobs, default=1, help="Files in parallel")
    scan_parser.add_argument("--rules", help="Custom patterns file")

    # redact subcommand
    redact_parser = subparsers.add_parser("redact", help="Redact secrets in place")
    redact_parser.add_argument("paths", nargs="*", help="Log files (default: all session logs)")
    redact_parser.add_argument(
        "--dry-run", action="store_true", help="Count matches without writing"
    )
    redact_parser.add_argument("-j", "--jobs", type=_jobs, default=1, help="Files in parallel")
    redact_parser.add_argument("--rules", help="Custom patterns file")

    # audit subcommand
    audit_parser = subparsers.add_parser("audit", help="Check secret storage permissions")
    audit_parser.add_argument("paths", nargs="*", help="Paths (default: secrets directory)")

    # list / test subcommands
    subparsers.add_parser("list", help="List stored secrets")
    test_parser = subparsers.add_parser("test", help="Check that a service secret exists")
    test_parser.add_argument("service", help="Service name")

    # patterns subcommand
    patterns_parser = subparsers.add_parser("patterns", help="List detection patterns")
    patterns_parser.add_argument("--rules", help="Custom patterns file")

    # validate subcommand
    validate_parser = subparsers.add_parser("validate", help="Validate patterns file syntax")
    validate_parser.add_argument(
        "--global", dest="glob", action="store_true", help="Global patterns"
    )
    validate_parser.add_argument("--rules", help="Custom patterns file")

    args = parser.parse_args()

    if args.command == "scan":
        return cmd_scan(args)
    if args.command == "redact":
        return cmd_redact(args)
    if args.command == "audit":
        return cmd_audit(args)
    if args.command == "list":
        return cmd_list(args)
    if args.command == "test":
        return cmd_test(args)
    if args.command == "patterns":
        return cmd_patterns(args)
    if args.command == "validate":
        return cmd_validate(args)

    parser.print_help()
    return 1
