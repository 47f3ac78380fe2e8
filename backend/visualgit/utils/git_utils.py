"""Small helpers for the simulated Git engine."""

import secrets


def generate_commit_id() -> str:
    """Return a random 40-character hex id, shaped like a SHA-1."""
    return secrets.token_hex(20)


def short_commit_id(commit_id: str, length: int = 7) -> str:
    return commit_id[:length]


def levenshtein(a: str, b: str) -> int:
    """Edit distance between `a` and `b` (insert, delete, substitute)."""
    prev = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        cur = [i] + [0] * len(b)
        for j, cb in enumerate(b, start=1):
            if ca == cb:
                cur[j] = prev[j - 1]
            else:
                cur[j] = 1 + min(prev[j], cur[j - 1], prev[j - 1])
        prev = cur
    return prev[len(b)]
