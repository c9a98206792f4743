"""
Homebrew Formula Parser.

Extracts version and bottle information from formula files using regex-based
parsing of the Ruby DSL. Nothing is evaluated.
"""

import re
from urllib.parse import urlsplit

from brewver.core.errors import BottleNotFoundError, FormulaParseError
from brewver.models.formula import Bottle

GHCR_ROOT_URL = "https://ghcr.io/v2/homebrew/core"

_ARCHIVE_EXT = re.compile(r"\.(tar\.(gz|bz2|xz|lz|zst)|tgz|tbz2?|txz|zip|tar|gem|crate|jar)$")
_VERSION_RE = re.compile(
    r"(?<![\d.])v?(\d+(?:\.\d+)+(?:[-_.]?(?:alpha|beta|rc|pre)[-_.]?\d*|[a-z]\d*(?![a-z]))?)",
    re.IGNORECASE,
)
_BARE_NUMBER_RE = re.compile(r"[-_]v?(\d+)$")


def parse_formula(content: str) -> dict:
    """
    Parse formula content and extract its metadata.

    Args:
        content: Raw formula (.rb) text.

    Returns:
        Dictionary with keys: class_name, desc, homepage, url, version,
        version_source, revision, pkg_version, bottle. version_source is
        "explicit" for a `version` line, "url" when guessed from the url,
        or None.

    Raises:
        FormulaParseError: The text does not define a Formula subclass.
    """
    class_match = re.search(r"^class\s+(\w+)\s*<\s*Formula\b", content, re.MULTILINE)
    if not class_match:
        raise FormulaParseError("Content does not define a Formula class")

    url = _extract_string(content, "url")
    version = _extract_string(content, "version")
    version_source = "explicit" if version else None
    if not version and url:
        version = version_from_url(url)
        version_source = "url" if version else None
    revision = _extract_int(content, "revision")

    result: dict = {
        "class_name": class_match.group(1),
        "desc": _extract_string(content, "desc"),
        "homepage": _extract_string(content, "homepage"),
        "url": url,
        "version": version,
        "version_source": version_source,
        "revision": revision,
        "pkg_version": None,
        "bottle": _extract_bottle(content),
    }
    if version:
        result["pkg_version"] = f"{version}_{revision}" if revision else version

    return result


def _extract_string(content: str, field_name: str) -> str | None:
    """
    Extract a formula-level string like `url "https://..."`.

    Top-level statements are indented two spaces; a `stable do` block puts
    them at four, which is also where resource blocks live, so two wins.
    """
    for indent in (2, 4):
        match = re.search(rf'^ {{{indent}}}{field_name}\s+"([^"]*)"', content, re.MULTILINE)
        if match:
            return match.group(1)
    return None


def _extract_int(content: str, field_name: str) -> int:
    match = re.search(rf"^  {field_name}\s+(\d+)\s*$", content, re.MULTILINE)
    return int(match.group(1)) if match else 0


def _extract_bottle(content: str) -> dict:
    """
    Extract the `bottle do ... end` block.

    Handles both checksum syntaxes:
        sha256 cellar: :any, arm64_sonoma: "<hex>"
        sha256 "<hex>" => :catalina
    """
    bottle: dict = {"root_url": None, "rebuild": 0, "files": {}}

    match = re.search(r"^\s*bottle do\s*$(.*?)^\s*end\s*$", content, re.MULTILINE | re.DOTALL)
    if not match:
        return bottle
    block = match.group(1)

    root = re.search(r'^\s*root_url\s+"([^"]+)"', block, re.MULTILINE)
    if root:
        bottle["root_url"] = root.group(1)

    rebuild = re.search(r"^\s*rebuild\s+(\d+)", block, re.MULTILINE)
    if rebuild:
        bottle["rebuild"] = int(rebuild.group(1))

    legacy_cellar = re.search(r"^\s*cellar\s+(:\w+|\"[^\"]*\")", block, re.MULTILINE)
    default_cellar = _clean_cellar(legacy_cellar.group(1)) if legacy_cellar else None

    for line in block.splitlines():
        modern = re.match(
            r'^\s*sha256\s+(?:cellar:\s*(:\w+|"[^"]*"),\s*)?(\w+):\s*"([0-9a-fA-F]{64})"', line
        )
        if modern:
            cellar, tag, digest = modern.groups()
            bottle["files"][tag] = {
                "sha256": digest.lower(),
                "cellar": _clean_cellar(cellar) if cellar else default_cellar,
            }
            continue

        legacy = re.match(r'^\s*sha256\s+"([0-9a-fA-F]{64})"\s*=>\s*:(\w+)', line)
        if legacy:
            digest, tag = legacy.groups()
            bottle["files"][tag] = {"sha256": digest.lower(), "cellar": default_cellar}

    return bottle


def _clean_cellar(raw: str) -> str:
    return raw.strip('"').lstrip(":")


def version_from_url(url: str) -> str | None:
    """
    Guess a version from a source URL.

    'https://ftp.gnu.org/gnu/wget/wget-1.24.5.tar.gz' -> '1.24.5'
    'https://github.com/o/r/archive/refs/tags/v2.0.1.tar.gz' -> '2.0.1'
    'https://example.com/releases/download/3.1/tool.tar.gz' -> '3.1'
    'https://go.dev/dl/go1.21.5.src.tar.gz' -> '1.21.5'
    'https://cdn.openbsd.org/.../openssh-9.6p1.tar.gz' -> '9.6p1'
    """
    segments = [s for s in urlsplit(url).path.split("/") if s]
    if not segments:
        return None

    stem = _ARCHIVE_EXT.sub("", segments[-1])
    for text in [stem, *reversed(segments[:-1])]:
        matches = _VERSION_RE.findall(text)
        if matches:
            return matches[-1]

    bare = _BARE_NUMBER_RE.search(stem)
    return bare.group(1) if bare else None


# ──────────────────────────────────────────────
# Bottle resolution
# ──────────────────────────────────────────────


def bottle_repository(name: str) -> str:
    """Image name of a formula on ghcr.io: 'node@20' -> 'node/20'."""
    return name.replace("@", "/").replace("+", "x").lower()


def resolve_bottle(name: str, formula: dict, tag: str) -> Bottle:
    """
    Pick the bottle for a platform tag, falling back to the `all` bottle.

    Args:
        name: Formula name.
        formula: Output of parse_formula().
        tag: Platform tag, e.g. 'arm64_sonoma'.

    Raises:
        BottleNotFoundError: Neither the tag nor `all` has a bottle.
        FormulaParseError: The formula version is unknown.
    """
    bottle = formula["bottle"]
    files = bottle["files"]

    chosen = tag if tag in files else "all" if "all" in files else None
    if chosen is None:
        raise BottleNotFoundError(name, tag, sorted(files))

    pkg_version = formula.get("pkg_version")
    if not pkg_version:
        raise FormulaParseError(f"Cannot name the {name} bottle: formula version is unknown")

    rebuild = bottle.get("rebuild", 0)
    suffix = f".{rebuild}" if rebuild else ""
    sha256 = files[chosen]["sha256"]
    root_url = (bottle.get("root_url") or GHCR_ROOT_URL).rstrip("/")

    filename = f"{name}--{pkg_version}.{chosen}.bottle{suffix}.tar.gz"
    if "ghcr.io/v2/" in root_url:
        url = f"{root_url}/{bottle_repository(name)}/blobs/sha256:{sha256}"
    else:
        # Pre-ghcr hosts used a single dash between name and version.
        url = f"{root_url}/{name}-{pkg_version}.{chosen}.bottle{suffix}.tar.gz"

    return Bottle(
        tag=chosen,
        url=url,
        sha256=sha256,
        filename=filename,
        cellar=files[chosen].get("cellar"),
        rebuild=rebuild,
    )
