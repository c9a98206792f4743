"""
Formula repository client.

Commit history comes from the GitHub REST API through PyGithub; file contents
at a revision come from raw.githubusercontent.com through httpx.
"""

import logging
import os
from collections.abc import Iterator

from github import Auth, Github, GithubException, RateLimitExceededException

from brewver.core.errors import RateLimitError, RepositoryError, RevisionNotFoundError
from brewver.core.http import HttpSession
from brewver.core.matcher import find_best_match, list_versions, parse_commit_message
from brewver.models.formula import CommitKind, FormulaRevision

logger = logging.getLogger(__name__)

DEFAULT_REPO = "Homebrew/homebrew-core"
RAW_BASE_URL = "https://raw.githubusercontent.com"


def formula_paths(name: str) -> list[str]:
    """
    Candidate paths of a formula file, newest layout first.

    homebrew-core shards formulae by first letter (lib* formulae share a
    'lib' shard); before that every formula lived directly under Formula/.
    GitHub's path history does not follow the move, so both are searched.
    """
    if not name:
        raise ValueError("Formula name must not be empty")
    shard = "lib" if name.startswith("lib") else name[0].lower()
    return [f"Formula/{shard}/{name}.rb", f"Formula/{name}.rb"]


class RepositoryClient:
    """Looks up formula history and fetches formula files at a commit."""

    def __init__(
        self,
        repo: str = DEFAULT_REPO,
        token: str | None = None,
        session: HttpSession | None = None,
        gh: Github | None = None,
        max_commits: int = 500,
    ):
        self.repo = repo
        self.token = token or os.environ.get("GITHUB_TOKEN")
        self.session = session or HttpSession()
        self.max_commits = max_commits

        if gh is not None:
            self.gh = gh
        elif self.token:
            self.gh = Github(auth=Auth.Token(self.token))
        else:
            self.gh = Github()
        self._repo = None

    def _auth_headers(self) -> dict:
        if self.token:
            return {"Authorization": f"Bearer {self.token}"}
        return {}

    def _get_repo(self):
        if self._repo is None:
            self._repo = self.gh.get_repo(self.repo, lazy=True)
        return self._repo

    def raw_url(self, revision: FormulaRevision) -> str:
        return f"{RAW_BASE_URL}/{self.repo}/{revision.ref}/{revision.path}"

    # ──────────────────────────────────────────────
    # History
    # ──────────────────────────────────────────────

    def _iter_path_history(self, name: str, path: str) -> Iterator[FormulaRevision]:
        """Yield versioned commits touching one path, newest first."""
        logger.debug(f"Scanning history of {self.repo}/{path}")
        try:
            for index, commit in enumerate(self._get_repo().get_commits(path=path)):
                if index >= self.max_commits:
                    logger.debug(f"Stopped after {self.max_commits} commits on {path}")
                    break
                message = commit.commit.message or ""
                parsed = parse_commit_message(name, message)
                if parsed is None:
                    continue
                version, kind = parsed
                yield FormulaRevision(
                    version=version,
                    ref=commit.sha,
                    kind=kind,
                    message=message.strip().splitlines()[0],
                    path=path,
                )
        except RateLimitExceededException as e:
            raise RateLimitError(self.gh.rate_limiting_resettime) from e
        except GithubException as e:
            raise RepositoryError(f"GitHub API error for {self.repo}/{path}: {e.status} {e.data}") from e

    def iter_history(self, name: str) -> Iterator[FormulaRevision]:
        """Yield versioned commits for a formula across all of its paths."""
        for path in formula_paths(name):
            yield from self._iter_path_history(name, path)

    def find_revision(self, name: str, version: str) -> FormulaRevision:
        """
        Find the commit that best matches a version.

        Paths are searched in order and the first path with a match wins.
        Scanning a path stops early at an exact bottle commit, which no later
        commit can beat.

        Raises:
            RevisionNotFoundError: No commit on any path matches.
        """
        logger.info(f"Looking for {name}@{version}")
        seen: list[FormulaRevision] = []

        for path in formula_paths(name):
            candidates = []
            for candidate in self._iter_path_history(name, path):
                candidates.append(candidate)
                if candidate.version == version and candidate.kind == CommitKind.BOTTLE:
                    break

            match = find_best_match(version, candidates)
            if match:
                logger.info(f"Found commit {match.short_ref} ({match.message})")
                return match
            seen.extend(candidates)

        raise RevisionNotFoundError(name, version, list_versions(seen))

    # ──────────────────────────────────────────────
    # Files
    # ──────────────────────────────────────────────

    async def fetch_formula(self, revision: FormulaRevision) -> str:
        """Return the formula file text at the revision's commit."""
        url = self.raw_url(revision)
        logger.debug(f"Fetching {url}")
        resp = await self.session.get(url, headers=self._auth_headers())
        return resp.text
