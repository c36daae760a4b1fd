"""
Matcher resolution: which configured hooks apply to a subject.

A matcher without a pattern applies unconditionally. A pattern is tried as a
regular expression (search semantics); a pattern that does not compile is
compared to the subject by string equality instead. Events without a subject
(anything that is not tool-scoped) only run unconditional matchers.
"""

import re
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import List, Optional, Pattern, Sequence

from .types import HookConfig, HookMatcher


class MatchMode(Enum):
    UNCONDITIONAL = "unconditional"
    REGEX = "regex"
    EXACT = "exact"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class MatchResult:
    """Whether a matcher applies, and which rule decided it."""
    matched: bool
    mode: MatchMode


@lru_cache(maxsize=256)
def compile_pattern(pattern: str) -> Optional[Pattern]:
    """Compile ``pattern`` or return None if it is not a valid regex."""
    try:
        return re.compile(pattern)
    except re.error:
        return None


def match_subject(pattern: Optional[str], subject: Optional[str]) -> MatchResult:
    """
    Decide whether one matcher pattern applies to ``subject``.

    Args:
        pattern: Matcher pattern; None or empty means match-all
        subject: Tool name, or None for events without a subject

    Returns:
        MatchResult with the decision and the rule that made it
    """
    if not pattern:
        return MatchResult(True, MatchMode.UNCONDITIONAL)
    if subject is None:
        return MatchResult(False, MatchMode.SKIPPED)

    compiled = compile_pattern(pattern)
    if compiled is None:
        return MatchResult(subject == pattern, MatchMode.EXACT)
    return MatchResult(compiled.search(subject) is not None, MatchMode.REGEX)


def find_matching_hooks(
    matchers: Sequence[HookMatcher],
    subject: Optional[str] = None,
) -> List[HookConfig]:
    """
    Collect the hooks of every applicable matcher, in configuration order.

    Hooks listed under several applicable matchers appear once per matcher.
    """
    hooks: List[HookConfig] = []
    for matcher in matchers:
        if match_subject(matcher.matcher, subject).matched:
            hooks.extend(matcher.hooks)
    return hooks
