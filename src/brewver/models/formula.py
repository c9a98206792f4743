"""
Formula models.

Plain dataclasses describing a formula revision found in history, the bottle
chosen for a platform, and the resolved formula handed to the installer.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum


class CommitKind(Enum):
    """What a matching history commit did to the formula."""

    BOTTLE = "bottle"  # "<name>: update <version> bottle."
    BUMP = "bump"  # "<name> <version>"


@dataclass
class FormulaRevision:
    """A commit in the formula history that names a version."""

    version: str
    ref: str
    kind: CommitKind = CommitKind.BOTTLE
    message: str = ""
    path: str = ""

    @property
    def short_ref(self) -> str:
        return self.ref[:10]


@dataclass
class Bottle:
    """A prebuilt binary for one platform tag."""

    tag: str
    url: str
    sha256: str
    filename: str
    cellar: str | None = None
    rebuild: int = 0


@dataclass
class ResolvedFormula:
    """A formula fetched at a specific commit, ready to install."""

    name: str
    version: str
    revision: FormulaRevision
    source_url: str
    content: str = ""
    fields: dict = field(default_factory=dict)
    bottle: Bottle | None = None

    def to_dict(self) -> dict:
        """Serialize to a JSON-compatible dictionary (formula text omitted)."""
        data = asdict(self)
        data.pop("content")
        data["revision"]["kind"] = self.revision.kind.value
        return data
