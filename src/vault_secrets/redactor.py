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

"""In-place redaction of leaked secrets in session logs.

Files are rewritten through a temporary file in the same directory that is
renamed over the original. No backup of the original content is ever kept.
"""

import os
import stat
import tempfile
import threading
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path

from .models import Hit, RedactionResult, SourceError, SourceUnreadable, SourceUnwritable
from .patterns import PLACEHOLDER, PatternRegistry, default_registry
from .scanner import ENCODING, ENCODING_ERRORS, PathLike, count_hits, iter_line_hits, map_paths

__all__ = ["PLACEHOLDER", "redact", "redact_file", "redact_line"]


class _PathLock:
    """A lock plus the number of callers holding or waiting on it."""

    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


_locks_guard = threading.Lock()
_path_locks: dict[Path, _PathLock] = {}


@contextmanager
def _locked(path: Path) -> Iterator[None]:
    """Serialise rewrites of the same file; the entry is dropped with its last user."""
    with _locks_guard:
        entry = _path_locks.setdefault(path, _PathLock())
        entry.users += 1
    try:
        with entry.lock:
            yield
    finally:
        with _locks_guard:
            entry.users -= 1
            if entry.users == 0:
                del _path_locks[path]


def redact_line(text: str, hits: Sequence[Hit], placeholder: str = PLACEHOLDER) -> str:
    """Replace every hit span in ``text`` with the placeholder."""
    result = text
    # Apply in reverse order to preserve positions
    for hit in sorted(hits, key=lambda h: h.start, reverse=True):
        result = result[: hit.start] + placeholder + result[hit.end :]
    return result


def _write_redacted(path: Path, registry: PatternRegistry) -> int:
    """Rewrite ``path`` with all hits replaced, return the number replaced."""
    directory = path.parent
    try:
        mode = stat.S_IMODE(path.stat().st_mode)
        tmp = tempfile.NamedTemporaryFile(
            mode="w",
            encoding=ENCODING,
            errors=ENCODING_ERRORS,
            newline="",
            dir=directory,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
        )
    except OSError as e:
        raise SourceUnwritable(str(path), e.strerror or "cannot create temporary file") from None

    tmp_path = Path(tmp.name)
    count = 0
    try:
        with tmp:
            for _lineno, body, terminator, hits in iter_line_hits(path, registry):
                if hits:
                    count += len(hits)
                    body = redact_line(body, hits)
                try:
                    tmp.write(body + terminator)
                except OSError as e:
                    raise SourceUnwritable(str(path), e.strerror or "write failed") from None
            try:
                tmp.flush()
                os.fsync(tmp.fileno())
            except OSError as e:
                raise SourceUnwritable(str(path), e.strerror or "flush failed") from None
        try:
            os.chmod(tmp_path, mode)
            os.replace(tmp_path, path)
        except OSError as e:
            raise SourceUnwritable(str(path), e.strerror or "rename failed") from None
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
    return count


def redact_file(
    path: Path, dry_run: bool = False, registry: PatternRegistry | None = None
) -> RedactionResult:
    """Redact a single file, reporting failures instead of raising them.

    Symlinks are followed: the file they point to is rewritten and the link
    is left in place.
    """
    if registry is None:
        registry = default_registry()
    result = RedactionResult(path=str(path))
    target = path.resolve()
    try:
        with _locked(target):
            result.count = count_hits(target, registry)
            if result.count and not dry_run:
                result.count = _write_redacted(target, registry)
                result.written = True
    except (SourceUnreadable, SourceUnwritable) as e:
        result.success = False
        result.error = SourceError(path=str(path), kind=e.kind, detail=e.detail)
    return result


def _unique(paths: Sequence[PathLike]) -> list[Path]:
    """Drop repeated paths that resolve to the same file, keeping first order."""
    seen: set[Path] = set()
    unique: list[Path] = []
    for p in paths:
        path = Path(p)
        key = path.resolve()
        if key in seen:
            continue
        seen.add(key)
        unique.append(path)
    return unique


def redact(
    paths: Sequence[PathLike],
    dry_run: bool = False,
    registry: PatternRegistry | None = None,
    jobs: int = 1,
) -> list[RedactionResult]:
    """Redact secrets in log files in place.

    Args:
        paths: Files to redact; one result per distinct file, in input order
        dry_run: Count matches without writing anything
        registry: Rules to apply (None = built-in rules)
        jobs: Number of files processed concurrently
    """
    if registry is None:
        registry = default_registry()
    rules = registry
    return map_paths(lambda p: redact_file(p, dry_run, rules), _unique(paths), jobs)
