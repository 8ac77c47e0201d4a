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

"""Permission audit for secret storage and vault scripts."""

import stat
from collections.abc import Iterator, Sequence
from pathlib import Path

from .models import AuditEntry
from .scanner import PathLike

DIR_MODE = 0o700
FILE_MODE = 0o600
SCRIPT_MODE = 0o700
SCRIPT_SUFFIXES = {".sh"}


def expected_mode(path: Path, st_mode: int) -> int:
    """Most permissive mode allowed for a path."""
    if stat.S_ISDIR(st_mode):
        return DIR_MODE
    if path.suffix in SCRIPT_SUFFIXES:
        return SCRIPT_MODE
    return FILE_MODE


def check_path(path: Path) -> AuditEntry:
    """Check a single path without following symlinks."""
    try:
        st = path.lstat()
    except OSError as e:
        return AuditEntry(
            path=str(path),
            expected_mode=FILE_MODE,
            actual_mode=None,
            ok=False,
            error=e.strerror or "cannot stat",
        )
    expected = expected_mode(path, st.st_mode)
    actual = stat.S_IMODE(st.st_mode)
    return AuditEntry(
        path=str(path),
        expected_mode=expected,
        actual_mode=actual,
        ok=actual & ~expected == 0,
    )


def _audit_tree(path: Path) -> Iterator[AuditEntry]:
    entry = check_path(path)
    yield entry
    if entry.actual_mode is None or not path.is_dir() or path.is_symlink():
        return
    try:
        children = sorted(path.iterdir())
    except OSError as e:
        entry.ok = False
        entry.error = f"cannot list directory: {e.strerror}"
        return
    for child in children:
        yield from _audit_tree(child)


def audit(paths: Sequence[PathLike]) -> list[AuditEntry]:
    """Check that paths grant no access beyond owner-only modes.

    Directories are audited along with everything below them. A path is ok
    when its permission bits are a subset of the expected mode.
    """
    return [entry for root in paths for entry in _audit_tree(Path(root))]
