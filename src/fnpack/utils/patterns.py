"""Glob matching for package patterns.

Package patterns follow the hosting framework's conventions:

- ``*`` matches within one path segment, ``**`` across segments
  (``src/**/*.json`` matches ``src/a.json`` and ``src/x/y/a.json``).
- ``{a,b}`` brace groups expand.
- A leading ``!`` negates a pattern in a pattern list.

Example:
    from fnpack.utils.patterns import matches_any_pattern, split_patterns

    include, exclude = split_patterns(["assets/**", "!assets/*.psd"])
    matches_any_pattern("assets/logo.png", include)  # True
"""

from __future__ import annotations

import re
from functools import lru_cache
from pathlib import PurePath, PurePosixPath


def to_posix(path: str | PurePath) -> str:
    """Normalise a relative path to forward slashes."""
    return PurePosixPath(*PurePath(path).parts).as_posix() if str(path) else ""


def split_patterns(patterns: list[str]) -> tuple[list[str], list[str]]:
    """Split a pattern list into (include, exclude) by the ``!`` prefix."""
    include = [p for p in patterns if not p.startswith("!")]
    exclude = [p[1:] for p in patterns if p.startswith("!")]
    return include, exclude


def matches_any_pattern(file_path: str, patterns: list[str] | tuple[str, ...]) -> bool:
    """Check if ``file_path`` matches at least one glob pattern."""
    if not patterns:
        return False
    posix = to_posix(file_path)
    return any(_compile(pattern).match(posix) for pattern in patterns)


def _expand_braces(pattern: str) -> list[str]:
    """Expand brace groups like 'foo.{a,b}' into ['foo.a', 'foo.b']."""
    start = pattern.find("{")
    if start == -1:
        return [pattern]
    end = pattern.find("}", start + 1)
    if end == -1:
        return [pattern]

    before, inside, after = pattern[:start], pattern[start + 1 : end], pattern[end + 1 :]
    parts = [p.strip() for p in inside.split(",") if p.strip()]
    if len(parts) <= 1:
        return [pattern]

    out: list[str] = []
    for part in parts:
        out.extend(_expand_braces(f"{before}{part}{after}"))
    return out


def _translate(pattern: str) -> str:
    pattern = pattern.lstrip("/")
    if pattern.startswith("./"):
        pattern = pattern[2:]

    out: list[str] = []
    i, n = 0, len(pattern)
    while i < n:
        c = pattern[i]
        if c == "*":
            if pattern.startswith("**", i):
                i += 2
                if i < n and pattern[i] == "/":
                    # "**/" also matches zero directories
                    i += 1
                    out.append("(?:.*/)?")
                else:
                    out.append(".*")
                continue
            out.append("[^/]*")
        elif c == "?":
            out.append("[^/]")
        elif c == "[":
            end = pattern.find("]", i + 1)
            if end == -1:
                out.append(re.escape(c))
            else:
                body = pattern[i + 1 : end]
                if body.startswith("!"):
                    body = "^" + body[1:]
                out.append(f"[{body}]")
                i = end
        else:
            out.append(re.escape(c))
        i += 1
    return "".join(out)


@lru_cache(maxsize=512)
def _compile(pattern: str) -> re.Pattern[str]:
    alternatives = [_translate(p) for p in _expand_braces(to_posix(pattern) if pattern else pattern)]
    return re.compile(r"\A(?:" + "|".join(alternatives) + r")\Z")


__all__ = ["matches_any_pattern", "split_patterns", "to_posix"]
