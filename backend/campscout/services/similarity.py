"""Name similarity for matching sessions and camps described slightly differently.

Usage:
    from campscout.services.similarity import similarity, normalize_name

    similarity("Pottery Studio (Grades 3-5)", "Pottery Studio (Grades K-2)")  # 1.0
"""

import re

# Trailing "(Grades 3-5)", "(Ages 6-9)", "(Grade K)", "(Age 5)"
_QUALIFIER_RE = re.compile(r"\s*\((?:grades?|ages?)\b[^)]*\)\s*$", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_name(name: str | None) -> str:
    """Lower-case, collapse whitespace and strip trailing grade/age qualifiers."""
    if not name:
        return ""
    text = name.strip()
    while True:
        stripped = _QUALIFIER_RE.sub("", text)
        if stripped == text:
            break
        text = stripped
    return _WHITESPACE_RE.sub(" ", text.lower()).strip()


def levenshtein(a: str, b: str) -> int:
    """Edit distance between two strings (insert, delete, substitute)."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    # Single rolling row over the shorter string
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (ca != cb),
            ))
        previous = current
    return previous[-1]


def similarity(a: str | None, b: str | None) -> float:
    """Normalized similarity in [0, 1]; 1.0 means equal after normalization."""
    left = normalize_name(a)
    right = normalize_name(b)
    if left == right:
        # Names made only of qualifiers normalize to ""; blank input never matches
        return 1.0 if (a or "").strip() and (b or "").strip() else 0.0
    if not left or not right:
        return 0.0
    return 1.0 - levenshtein(left, right) / max(len(left), len(right))
