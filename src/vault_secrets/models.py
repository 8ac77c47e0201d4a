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

"""Data models for secret patterns, matches and per-file results."""

from dataclasses import dataclass, field
from typing import Literal

Confidence = Literal["high", "medium", "low"]
ErrorKind = Literal["unreadable", "unwritable"]


class SecretsError(Exception):
    """Base class for per-path operational errors.

    The detail is an OS-level reason only, never file content.
    """

    kind: ErrorKind

    def __init__(self, path: str, detail: str) -> None:
        super().__init__(f"{path}: {detail}")
        self.path = path
        self.detail = detail

    def to_source_error(self) -> "SourceError":
        return SourceError(path=self.path, kind=self.kind, detail=self.detail)


class SourceUnreadable(SecretsError):
    """Path is missing, not a regular file, or cannot be read."""

    kind: ErrorKind = "unreadable"


class SourceUnwritable(SecretsError):
    """Redacted content could not be persisted."""

    kind: ErrorKind = "unwritable"


@dataclass(frozen=True)
class PatternRule:
    """A named secret shape.

    If ``pattern`` defines a group named ``secret``, only that group is the
    matched text; otherwise the whole match is.
    """

    name: str
    pattern: str
    description: str = ""
    confidence: Confidence = "high"


@dataclass(frozen=True)
class Hit:
    """A rule hit within a single line, as returned by ``match_all``."""

    rule: PatternRule
    start: int
    end: int
    text: str


@dataclass(frozen=True)
class Match:
    """A located secret occurrence in a source file."""

    rule_name: str
    path: str
    line: int
    start: int
    end: int
    text: str

    def display(self, verbose: bool = False) -> str:
        """Render a report line, revealing the matched text only if verbose."""
        location = f"{self.path}:{self.line}:{self.start + 1}: {self.rule_name}"
        if verbose:
            return f"{location} {self.text}"
        return location

    # Matched text stays out of repr so tracebacks never carry it.
    def __repr__(self) -> str:
        return (
            f"Match(rule_name={self.rule_name!r}, path={self.path!r}, "
            f"line={self.line}, start={self.start}, end={self.end})"
        )


@dataclass(frozen=True)
class SourceError:
    """A per-path failure recorded in a report."""

    path: str
    kind: ErrorKind
    detail: str

    def __str__(self) -> str:
        return f"{self.path}: {self.kind}: {self.detail}"


@dataclass
class SourceScan:
    """Scan outcome for one supplied path."""

    path: str
    matches: list[Match] = field(default_factory=list)
    error: SourceError | None = None


@dataclass
class ScanReport:
    """Matches grouped by source, in the order sources were supplied."""

    sources: list[SourceScan] = field(default_factory=list)
    verbose: bool = False

    @property
    def matches(self) -> list[Match]:
        return [m for source in self.sources for m in source.matches]

    @property
    def errors(self) -> list[SourceError]:
        return [s.error for s in self.sources if s.error is not None]

    @property
    def processed(self) -> list[str]:
        """Paths that were read successfully."""
        return [s.path for s in self.sources if s.error is None]

    def count_for(self, path: str) -> int:
        return sum(len(s.matches) for s in self.sources if s.path == path)

    def lines(self) -> list[str]:
        """Report lines, honouring the verbose flag."""
        return [m.display(self.verbose) for m in self.matches]


@dataclass
class RedactionResult:
    """Outcome of redacting one file."""

    path: str
    count: int = 0
    success: bool = True
    written: bool = False
    error: SourceError | None = None


@dataclass
class AuditEntry:
    """Permission check result for one path."""

    path: str
    expected_mode: int
    actual_mode: int | None
    ok: bool
    error: str | None = None
