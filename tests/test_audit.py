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

"""Tests for the permission auditor."""

from pathlib import Path

import pytest

from vault_secrets.audit import DIR_MODE, FILE_MODE, SCRIPT_MODE, audit


@pytest.fixture
def secrets_dir(tmp_path: Path) -> Path:
    """Create a secret store with owner-only permissions."""
    root = tmp_path / "secrets"
    root.mkdir(mode=0o700)
    root.chmod(0o700)
    key = root / "openai"
    key.write_text("not read by the auditor")
    key.chmod(0o600)
    return root


def test_audit_restrictive_tree_ok(secrets_dir: Path) -> None:
    """Test that a 0700 directory with 0600 files passes."""
    entries = audit([secrets_dir])
    assert [Path(e.path).name for e in entries] == ["secrets", "openai"]
    assert all(e.ok for e in entries)
    assert entries[0].expected_mode == DIR_MODE
    assert entries[1].expected_mode == FILE_MODE
    assert entries[1].actual_mode == 0o600


def test_audit_world_readable_file_fails(secrets_dir: Path) -> None:
    """Test that group/other access is flagged."""
    (secrets_dir / "openai").chmod(0o644)
    entries = audit([secrets_dir])
    bad = [e for e in entries if not e.ok]
    assert len(bad) == 1
    assert bad[0].path == str(secrets_dir / "openai")
    assert bad[0].actual_mode == 0o644


def test_audit_open_directory_fails(secrets_dir: Path) -> None:
    """Test that a group-readable directory is flagged."""
    secrets_dir.chmod(0o750)
    entries = audit([secrets_dir])
    assert entries[0].ok is False
    assert entries[0].actual_mode == 0o750


def test_audit_stricter_mode_ok(secrets_dir: Path) -> None:
    """Test that stricter than expected still passes."""
    (secrets_dir / "openai").chmod(0o400)
    assert all(e.ok for e in audit([secrets_dir]))


def test_audit_script_expects_owner_exec(tmp_path: Path) -> None:
    """Test vault scripts may be owner-executable but nothing more."""
    script = tmp_path / "vault-call.sh"
    script.write_text("#!/bin/sh\n")
    script.chmod(0o700)
    entry = audit([script])[0]
    assert entry.expected_mode == SCRIPT_MODE
    assert entry.ok is True

    script.chmod(0o755)
    assert audit([script])[0].ok is False


def test_audit_missing_path(tmp_path: Path) -> None:
    """Test that a missing path fails with an error."""
    entry = audit([tmp_path / "nope"])[0]
    assert entry.ok is False
    assert entry.actual_mode is None
    assert entry.error
