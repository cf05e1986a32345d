"""Bypass rules: URLs that must never be rewritten."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional, Sequence

from urlfixer.core.utils import strip_scheme

logger = logging.getLogger(__name__)

_EXPLICIT_SCHEME = re.compile(r"^https?://", re.IGNORECASE)
_SCHEME_OR_ROOT = re.compile(r"^(?:https?://|/)", re.IGNORECASE)


class BypassKind(str, Enum):
    EXACT = "exact"
    SCHEME_AGNOSTIC = "scheme-agnostic"
    WILDCARD = "wildcard"
    REGEX = "regex"


@dataclass(frozen=True)
class BypassRule:
    pattern: str
    kind: BypassKind
    _regex: Optional[re.Pattern] = field(default=None, compare=False, repr=False)

    @classmethod
    def from_pattern(cls, pattern: str) -> "BypassRule":
        pattern = pattern.strip()
        if len(pattern) > 2 and pattern.startswith("/") and pattern.endswith("/"):
            try:
                compiled = re.compile(pattern[1:-1])
            except re.error as exc:
                logger.warning("Ignoring invalid bypass expression %s: %s", pattern, exc)
                compiled = None
            return cls(pattern, BypassKind.REGEX, compiled)
        if pattern.endswith("/*"):
            return cls(pattern, BypassKind.WILDCARD)
        if _is_scheme_agnostic(pattern):
            return cls(pattern, BypassKind.SCHEME_AGNOSTIC)
        return cls(pattern, BypassKind.EXACT)

    def matches(self, url: str) -> bool:
        normalized = url.rstrip("/")
        agnostic = strip_scheme(normalized)

        if self.pattern.rstrip("/") == normalized:
            return True

        if _is_scheme_agnostic(self.pattern) and strip_scheme(self.pattern).rstrip("/") == agnostic:
            return True

        if self.pattern.endswith("/*"):
            wildcard_base = self.pattern[:-1]
            if _EXPLICIT_SCHEME.match(wildcard_base):
                if normalized.startswith(wildcard_base):
                    return True
            elif agnostic.startswith(strip_scheme(wildcard_base)):
                return True

        if self.kind is BypassKind.REGEX and self._regex is not None:
            if self._regex.search(normalized):
                return True

        return False


def _is_scheme_agnostic(pattern: str) -> bool:
    return pattern.startswith("//") or not _SCHEME_OR_ROOT.match(pattern)


def parse_bypass_rules(patterns: Iterable[str] | str | None) -> tuple[BypassRule, ...]:
    """Build rules in declaration order from a list or comma-separated string."""
    if not patterns:
        return ()
    if isinstance(patterns, str):
        patterns = patterns.split(",")
    return tuple(BypassRule.from_pattern(p) for p in patterns if p and p.strip())


def is_bypassed(url: str, rules: Sequence[BypassRule]) -> bool:
    """True on the first rule matching url."""
    if not rules or not url:
        return False
    return any(rule.matches(url) for rule in rules)
