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

"""Read-only scanning of session logs for leaked secrets."""

import stat
from collections.abc import Callable, Iterator, Sequence
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import IO, TypeVar

from .models import Hit, Match, ScanReport, SourceScan, SourceUnreadable
from .patterns import PatternRegistry, default_registry

# Undecodable bytes round-trip unchanged through surrogateescape.
ENCODING = "utf-8"
ENCODING_ERRORS = "surrogateescape"

PathLike = str | Path
T = TypeVar("T")


def open_source(path: Path) -> IO[str]:
    """Open a log file for line reading, raising SourceUnreadable on failure.

    Line terminators are left untranslated so they can be written back as-is.
    """
    try:
        st = path.stat()
    except FileNotFoundError:
        raise SourceUnreadable(str(path), "not found") from None
    except OSError as e:
        raise SourceUnreadable(str(path), e.strerror or "cannot stat") from None
    if not stat.S_ISREG(st.st_mode):
        raise SourceUnreadable(str(path), "not a regular file")
    try:
        return path.open(encoding=ENCODING, errors=ENCODING_ERRORS, newline="")
    except OSError as e:
        raise SourceUnreadable(str(path), e.strerror or "cannot open") from None


def split_terminator(line: str) -> tuple[str, str]:
    """Split a raw line into its body and its line terminator."""
    body = line.rstrip("\r\n")
    return body, line[len(body) :]


def iter_line_hits(
    path: Path, registry: PatternRegistry
) -> Iterator[tuple[int, str, str, list[Hit]]]:
    """Yield ``(lineno, body, terminator, hits)`` for every line of ``path``."""
    with open_source(path) as f:
        lineno = 0
        while True:
            try:
                line = f.readline()
            except OSError as e:
                raise SourceUnreadable(str(path), e.strerror or "read failed") from None
            if not line:
                return
            lineno += 1
            body, terminator = split_terminator(line)
            yield lineno, body, terminator, registry.match_all(body)


def count_hits(path: Path, registry: PatternRegistry) -> int:
    return sum(len(hits) for _, _, _, hits in iter_line_hits(path, registry))


def map_paths(func: Callable[[Path], T], paths: Sequence[Path], jobs: int = 1) -> list[T]:
    """Apply ``func`` to each path, keeping input order whatever the job count."""
    if jobs <= 1 or len(paths) <= 1:
        return [func(p) for p in paths]
    with ThreadPoolExecutor(max_workers=min(jobs, len(paths))) as executor:
        return list(executor.map(func, paths))


def scan_file(path: Path, registry: PatternRegistry) -> SourceScan:
    """Scan a single file; unreadable files are reported, not raised."""
    source = SourceScan(path=str(path))
    try:
        for lineno, _body, _term, hits in iter_line_hits(path, registry):
            source.matches.extend(
                Match(
                    rule_name=hit.rule.name,
                    path=str(path),
                    line=lineno,
                    start=hit.start,
                    end=hit.end,
                    text=hit.text,
                )
                for hit in hits
            )
    except SourceUnreadable as e:
        source.matches = []
        source.error = e.to_source_error()
    return source


def scan(
    paths: Sequence[PathLike],
    verbose: bool = False,
    registry: PatternRegistry | None = None,
    jobs: int = 1,
) -> ScanReport:
    """Scan log files for secret-shaped text.

    Args:
        paths: Files to scan; each is reported in the order given
        verbose: Recorded on the report for presentation; matched text is always
            populated and callers decide whether to display it
        registry: Rules to apply (None = built-in rules)
        jobs: Number of files scanned concurrently
    """
    if registry is None:
        registry = default_registry()
    sources = map_paths(lambda p: scan_file(p, registry), [Path(p) for p in paths], jobs)
    return ScanReport(sources=sources, verbose=verbose)
