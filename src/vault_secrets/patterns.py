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

"""Built-in secret shapes and the matching engine shared by scan and redact."""

import re
from collections.abc import Iterable
from functools import lru_cache

from .models import Hit, PatternRule

SECRET_GROUP = "secret"

PLACEHOLDER = "[REDACTED]"

_CONFIDENCE_RANK = {"high": 0, "medium": 1, "low": 2}

# Prefix must not continue an existing token ("task-manager" is not "sk-...").
_BOUNDARY = r"(?<![A-Za-z0-9_-])"

# Optional plain or JSON-escaped quote around keys and values.
_QUOTE = r"""(?:\\?["'])?"""

# Value characters exclude quotes, whitespace, backslash and brackets, so the
# placeholder itself can never be captured as a value.
_VALUE = r"""[^\s"'`\\\[\]<>,;&]+"""

_KV_KEYS = (
    r"api[_-]?key|api[_-]?secret|client[_-]?secret|secret[_-]?key"
    r"|access[_-]?key|access[_-]?token|auth[_-]?token|refresh[_-]?token"
    r"|private[_-]?key|password|passwd"
)

# Key names must start a word or follow "_", so "MY_PASSWORD" matches and "dbpassword" does not.
_KV_KEY_START = r"(?<![A-Za-z0-9])"

# Type annotations such as "api_key: str" are not values.
_NOT_TYPE_NAME = r"(?!(?:str|bytes|int|float|bool|None|Any|Optional|SecretStr)\b)"

BUILTIN_RULES: tuple[PatternRule, ...] = (
    PatternRule(
        name="anthropic-key",
        pattern=_BOUNDARY + r"sk-ant-[A-Za-z0-9_-]{8,}",
        description="Anthropic API key",
    ),
    PatternRule(
        name="openai-key",
        pattern=_BOUNDARY + r"sk-(?!ant-)(?:proj-)?[A-Za-z0-9_-]{8,}",
        description="OpenAI API key",
    ),
    PatternRule(
        name="github-token",
        pattern=_BOUNDARY + r"gh[pousr]_[A-Za-z0-9]{20,}",
        description="GitHub token",
    ),
    PatternRule(
        name="npm-token",
        pattern=_BOUNDARY + r"npm_[A-Za-z0-9]{20,}",
        description="npm access token",
    ),
    PatternRule(
        name="aws-access-key",
        pattern=r"(?<![A-Z0-9])AKIA[0-9A-Z]{16}(?![0-9A-Z])",
        description="AWS access key ID",
    ),
    PatternRule(
        name="stripe-key",
        pattern=_BOUNDARY + r"[sp]k_(?:live|test)_[A-Za-z0-9]{10,}",
        description="Stripe API key",
    ),
    PatternRule(
        name="slack-token",
        pattern=_BOUNDARY + r"xox[bpa]-[A-Za-z0-9-]{10,}",
        description="Slack token",
    ),
    PatternRule(
        name="discord-token",
        pattern=(
            r"(?<![A-Za-z0-9_.-])[MNO][A-Za-z0-9_-]{23,27}"
            r"\.[A-Za-z0-9_-]{6}\.[A-Za-z0-9_-]{27,}"
        ),
        description="Discord bot token",
    ),
    PatternRule(
        name="bearer-token",
        pattern=(
            r"(?i)authorization" + _QUOTE + r"\s*:\s*" + _QUOTE
            + r"bearer\s+(?P<secret>[A-Za-z0-9._~+/-]+=*)"
        ),
        description="HTTP Authorization bearer token",
        confidence="medium",
    ),
    PatternRule(
        name="key-value-secret",
        pattern=(
            r"(?i)" + _KV_KEY_START + r"(?:" + _KV_KEYS + r")[\w-]*" + _QUOTE
            + r"\s*[:=]\s*" + _QUOTE + _NOT_TYPE_NAME + r"(?P<secret>" + _VALUE + ")"
        ),
        description="Secret-looking key/value assignment",
        confidence="low",
    ),
)


class PatternRegistry:
    """An ordered, read-only set of secret rules behind one matching call."""

    def __init__(self, rules: Iterable[PatternRule]) -> None:
        self.rules: tuple[PatternRule, ...] = tuple(rules)
        self._compiled: tuple[re.Pattern[str], ...] = tuple(
            re.compile(rule.pattern) for rule in self.rules
        )

    def __len__(self) -> int:
        return len(self.rules)

    def names(self) -> list[str]:
        return [rule.name for rule in self.rules]

    def extended(self, rules: Iterable[PatternRule]) -> "PatternRegistry":
        """Return a new registry with extra rules; same-name rules replace earlier ones."""
        by_name: dict[str, PatternRule] = {rule.name: rule for rule in self.rules}
        for rule in rules:
            by_name[rule.name] = rule
        return PatternRegistry(by_name.values())

    def _candidates(self, text: str) -> list[tuple[int, int, int, int, Hit]]:
        candidates: list[tuple[int, int, int, int, Hit]] = []
        for index, (rule, pattern) in enumerate(zip(self.rules, self._compiled, strict=True)):
            has_group = SECRET_GROUP in pattern.groupindex
            for m in pattern.finditer(text):
                start, end = m.span(SECRET_GROUP) if has_group else m.span()
                if start < 0 or start == end:
                    continue
                hit = Hit(rule=rule, start=start, end=end, text=text[start:end])
                rank = _CONFIDENCE_RANK.get(rule.confidence, len(_CONFIDENCE_RANK))
                candidates.append((start, start - end, rank, index, hit))
        return candidates

    @staticmethod
    def _resolve(candidates: Iterable[tuple[int, int, int, int, Hit]]) -> list[Hit]:
        hits: list[Hit] = []
        last_end = -1
        for start, _neg_len, _rank, _index, hit in sorted(candidates, key=lambda c: c[:4]):
            if start < last_end:
                continue
            hits.append(hit)
            last_end = hit.end
        return hits

    def match_all(self, text: str) -> list[Hit]:
        """Return every non-overlapping hit in ``text``, left to right.

        Candidates starting at the same position resolve to the longest span,
        then to the higher confidence rule, then to registration order. A
        candidate starting inside an accepted span is dropped.

        Hits are also looked for in the line as it reads once accepted hits are
        replaced by the placeholder, so redacting every hit leaves a line with
        no hits. ``text`` is expected to be a single line.
        """
        hits = self._resolve(self._candidates(text))
        while hits:
            masked, regions = _mask(text, hits)
            exposed = self._resolve(
                c for c in self._candidates(masked) if not _overlaps(c[4], regions)
            )
            if not exposed:
                break
            hits = sorted(hits + [_unmask(h, text, regions) for h in exposed], key=_start)
        return hits


# (start, end, total shift after this region) of each placeholder in a masked line
Regions = list[tuple[int, int, int]]


def _start(hit: Hit) -> int:
    return hit.start


def _mask(text: str, hits: list[Hit]) -> tuple[str, Regions]:
    """Replace sorted, non-overlapping hits with the placeholder."""
    pieces: list[str] = []
    regions: Regions = []
    pos = shift = 0
    for hit in hits:
        pieces.append(text[pos : hit.start])
        pieces.append(PLACEHOLDER)
        start = hit.start + shift
        shift += len(PLACEHOLDER) - (hit.end - hit.start)
        regions.append((start, start + len(PLACEHOLDER), shift))
        pos = hit.end
    pieces.append(text[pos:])
    return "".join(pieces), regions


def _overlaps(hit: Hit, regions: Regions) -> bool:
    return any(hit.start < end and start < hit.end for start, end, _ in regions)


def _unmask(hit: Hit, text: str, regions: Regions) -> Hit:
    """Map a hit in the masked line back to offsets in the original line."""
    shift = 0
    for _region_start, end, after in regions:
        if end > hit.start:
            break
        shift = after
    start, end = hit.start - shift, hit.end - shift
    return Hit(rule=hit.rule, start=start, end=end, text=text[start:end])


@lru_cache(maxsize=1)
def default_registry() -> PatternRegistry:
    """Registry of built-in rules, built once per process."""
    return PatternRegistry(BUILTIN_RULES)
