# ABOUTME: Path pattern matcher for monorepo component declarations
# ABOUTME: Segment-wise glob with recursive ** and single-segment * wildcards

"""
Monorepo path pattern matching.

Patterns and paths are split on "/" and matched segment by segment:

    Pattern segment   Matches
    ---------------   ------------------------------------------------
    **                zero or more whole segments (backtracking)
    *                 exactly one segment, any content
    pre*suf           one segment starting with "pre" and ending with "suf"
    anything else     the identical segment

Examples:
    glob_match("apps/api/**", "apps/api/src/main.go")  -> True
    glob_match("apps/api/**", "apps/api")              -> True
    glob_match("apps/*/src", "apps/api/deep/src")      -> False
    glob_match("*.go", "main.go")                      -> True

Smaller than fnmatch: one wildcard per segment,
case-sensitive, no character classes, no escaping. A segment with more than
one embedded "*" is compared literally.
"""

from __future__ import annotations

DOUBLE_STAR = "**"
STAR = "*"


def glob_match(pattern: str, path: str) -> bool:
    """Return True if path matches pattern."""
    return _match_segments(pattern.split("/"), path.split("/"))


def _match_segments(pattern: list[str], path: list[str]) -> bool:
    if not pattern:
        return not path

    head = pattern[0]

    if head == DOUBLE_STAR:
        rest = pattern[1:]
        if not rest:
            return True
        # try every alignment of the remaining pattern, including zero consumed
        return any(_match_segments(rest, path[i:]) for i in range(len(path) + 1))

    if not path:
        return False

    if not _match_segment(head, path[0]):
        return False
    return _match_segments(pattern[1:], path[1:])


def _match_segment(pattern: str, segment: str) -> bool:
    if pattern == STAR:
        return True
    if pattern.count(STAR) == 1:
        prefix, suffix = pattern.split(STAR)
        return (
            len(segment) >= len(prefix) + len(suffix)
            and segment.startswith(prefix)
            and segment.endswith(suffix)
        )
    return pattern == segment
