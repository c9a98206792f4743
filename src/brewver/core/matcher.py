"""
Version matching over formula history.

Homebrew's bot writes one commit per bottle build ("foo: update 1.2.3 bottle.")
and contributors write version bumps as "foo 1.2.3". Both are read from the
first line of the commit message.
"""

import re
from collections.abc import Iterable

from brewver.models.formula import CommitKind, FormulaRevision


def parse_commit_message(name: str, message: str) -> tuple[str, CommitKind] | None:
    """
    Extract the version a commit message refers to.

    Args:
        name: Formula name, e.g. 'node@20'.
        message: Full commit message.

    Returns:
        (version, kind) or None if the message names no version of this formula.
    """
    first_line = message.strip().splitlines()[0].strip() if message.strip() else ""
    escaped = re.escape(name)

    match = re.match(rf"^{escaped}:? update (\S+?) bottle\.?$", first_line)
    if match:
        return match.group(1), CommitKind.BOTTLE

    match = re.match(rf"^{escaped} (\d\S*)$", first_line)
    if match:
        return match.group(1), CommitKind.BUMP

    return None


def split_revision(version: str) -> tuple[str, int]:
    """'1.2.3_1' -> ('1.2.3', 1); '1.2.3' -> ('1.2.3', 0)."""
    base, sep, revision = version.rpartition("_")
    if sep and revision.isdigit():
        return base, int(revision)
    return version, 0


def find_best_match(target: str, candidates: Iterable[FormulaRevision]) -> FormulaRevision | None:
    """
    Pick the best exact match for a target version.

    Exact string matches win. A target without a revision suffix also accepts
    revisions of the same base version, highest revision first. Ties go to
    bottle commits, then to history order (newest first).
    """
    target_base, target_revision = split_revision(target)
    loose = target_revision == 0 and "_" not in target

    best: FormulaRevision | None = None
    best_score: tuple | None = None

    for position, candidate in enumerate(candidates):
        if candidate.version == target:
            exactness = 2
            revision = split_revision(candidate.version)[1]
        else:
            base, revision = split_revision(candidate.version)
            if not (loose and base == target_base):
                continue
            exactness = 1

        score = (
            exactness,
            revision,
            candidate.kind == CommitKind.BOTTLE,
            -position,
        )
        if best_score is None or score > best_score:
            best, best_score = candidate, score

    return best


def list_versions(candidates: Iterable[FormulaRevision]) -> list[str]:
    """Distinct versions in history order."""
    seen: dict[str, None] = {}
    for candidate in candidates:
        seen.setdefault(candidate.version, None)
    return list(seen)
