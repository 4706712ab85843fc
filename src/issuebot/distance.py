"""Levenshtein edit distance used to match title labels to component names."""

from __future__ import annotations

import sys

NO_MATCH = sys.maxsize


def edit_distance(first: str, second: str) -> int:
    """Return the number of single-character edits turning ``first`` into ``second``.

    Insertions, deletions and substitutions each cost 1. An empty input never
    matches anything, so it yields ``NO_MATCH`` rather than the length of the
    other string.
    """
    if not first or not second:
        return NO_MATCH
    previous = list(range(len(second) + 1))
    for i, a in enumerate(first, start=1):
        current = [i]
        for j, b in enumerate(second, start=1):
            if a == b:
                current.append(previous[j - 1])
            else:
                current.append(min(previous[j], current[j - 1], previous[j - 1]) + 1)
        previous = current
    return previous[-1]


def closest_match(target: str, candidates: dict[str, str]) -> tuple[str | None, int]:
    """Pick the candidate whose comparison text is nearest to ``target``.

    ``candidates`` maps a result value to the text compared against ``target``
    (both lowercased). Ties keep the first candidate seen.
    """
    best: str | None = None
    best_dist = NO_MATCH
    needle = target.lower()
    for value, text in candidates.items():
        dist = edit_distance(text.lower(), needle)
        if dist < best_dist:
            best, best_dist = value, dist
    return best, best_dist


__all__ = ["NO_MATCH", "closest_match", "edit_distance"]
