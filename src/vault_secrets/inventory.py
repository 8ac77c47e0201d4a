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

"""Inventory of stored service secrets. File contents are never read."""

from pathlib import Path

from .config import secrets_dir as default_secrets_dir


def list_secrets(secrets_dir: Path | None = None) -> list[str]:
    """Names of secret files below the secrets directory, relative and sorted."""
    root = secrets_dir or default_secrets_dir()
    if not root.is_dir():
        return []
    return sorted(str(p.relative_to(root)) for p in root.rglob("*") if p.is_file())


def has_secret(service: str, secrets_dir: Path | None = None) -> bool:
    """Whether a secret file exists for ``service`` (``<service>`` or ``<service>.<ext>``)."""
    if not service or "/" in service or "\\" in service or service in (".", ".."):
        raise ValueError(f"Invalid service name: {service!r}")
    root = secrets_dir or default_secrets_dir()
    if not root.is_dir():
        return False
    if (root / service).is_file():
        return True
    return any(p.is_file() and p.stem == service for p in root.glob(f"{service}.*"))
