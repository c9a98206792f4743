"""Exception hierarchy for brewver."""


class BrewverError(Exception):
    """Base class for all errors reported to the user."""


class RevisionNotFoundError(BrewverError):
    """No commit in the formula history matches the requested version."""

    def __init__(self, name: str, version: str, available: list[str] | None = None):
        self.name = name
        self.version = version
        self.available = available or []
        message = f"No commit found for {name}@{version}"
        if self.available:
            message += f" (recent versions: {', '.join(self.available[:10])})"
        super().__init__(message)


class FormulaParseError(BrewverError):
    """The formula file could not be understood."""


class VersionMismatchError(BrewverError):
    """The formula at the matched commit declares a different version."""


class BottleNotFoundError(BrewverError):
    """The formula has no bottle for the requested platform."""

    def __init__(self, name: str, tag: str, available: list[str]):
        self.name = name
        self.tag = tag
        self.available = available
        tags = ", ".join(available) if available else "none"
        super().__init__(f"No bottle for {name} on {tag} (available: {tags})")


class DownloadError(BrewverError):
    """A file could not be downloaded."""


class ChecksumMismatchError(DownloadError):
    """A downloaded bottle does not match its declared SHA-256."""

    def __init__(self, path, expected: str, actual: str):
        self.path = path
        self.expected = expected
        self.actual = actual
        super().__init__(f"SHA-256 mismatch for {path}: expected {expected}, got {actual}")


class RateLimitError(BrewverError):
    """The GitHub API rate limit was exhausted."""

    def __init__(self, reset_at: float | None = None):
        self.reset_at = reset_at
        message = "GitHub API rate limit exceeded"
        if reset_at:
            message += f" (resets at {reset_at:.0f})"
        message += ". Set GITHUB_TOKEN to raise the limit."
        super().__init__(message)


class InstallError(BrewverError):
    """brew exited with an error."""

    def __init__(self, command: list[str], returncode: int | None, stderr: str = ""):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        detail = stderr.strip().splitlines()[-1] if stderr.strip() else "no output"
        super().__init__(f"`{' '.join(command)}` failed ({returncode}): {detail}")


class RepositoryError(BrewverError):
    """The GitHub API returned an error other than rate limiting."""


class UnsupportedPlatformError(BrewverError):
    """No bottle tag is known for the running machine."""
