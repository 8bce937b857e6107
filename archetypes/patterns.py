"""Compile-once cache for the regex patterns authored in the taxonomy."""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass
from typing import Dict, Iterable, List, Union

_LOG = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompiledPattern:
    source: str
    regex: "re.Pattern[str]"

    valid = True

    def search(self, text: str) -> bool:
        return self.regex.search(text) is not None


@dataclass(frozen=True)
class InvalidPattern:
    """A pattern that failed to compile. Never matches."""

    source: str
    error: str

    valid = False

    def search(self, text: str) -> bool:
        return False


Pattern = Union[CompiledPattern, InvalidPattern]

_cache: Dict[str, Pattern] = {}
_cache_lock = threading.Lock()


def compile_pattern(source: str) -> Pattern:
    with _cache_lock:
        cached = _cache.get(source)
        if cached is not None:
            return cached
        try:
            compiled: Pattern = CompiledPattern(source, re.compile(source, re.IGNORECASE))
        except (re.error, TypeError) as exc:
            _LOG.warning("Invalid archetype pattern %r treated as non-matching: %s", source, exc)
            compiled = InvalidPattern(source, str(exc))
        _cache[source] = compiled
        return compiled


def compile_patterns(sources: Iterable[str]) -> List[Pattern]:
    return [compile_pattern(src) for src in sources]


def clear_pattern_cache() -> None:
    with _cache_lock:
        _cache.clear()


__all__ = [
    "CompiledPattern",
    "InvalidPattern",
    "Pattern",
    "clear_pattern_cache",
    "compile_pattern",
    "compile_patterns",
]
