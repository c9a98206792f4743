"""
brewver pipeline: find, fetch, download, install.

Drives one formula version through the sequence:
- Look up the commit that bottled the version
- Fetch and parse the formula at that commit
- Download and verify the bottle for this platform
- Hand the bottle (or the formula, to build from source) to brew
"""

import logging
import tempfile
import time
from pathlib import Path

import aiofiles
from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TransferSpeedColumn,
)
from rich.table import Table

from brewver.core.errors import BottleNotFoundError, VersionMismatchError
from brewver.core.github import RepositoryClient
from brewver.core.installer import BrewInstaller
from brewver.core.matcher import split_revision
from brewver.core.platform import current_platform_tag
from brewver.models.formula import Bottle, CommitKind, FormulaRevision, ResolvedFormula
from brewver.parsers.formula import parse_formula, resolve_bottle

logger = logging.getLogger(__name__)

# Anonymous pull token accepted by ghcr.io for public Homebrew bottles.
GHCR_HEADERS = {
    "Authorization": "Bearer QQ==",
    "Accept": "application/vnd.oci.image.layer.v1.tar+gzip",
}


class VersionInstaller:
    """
    Installs one historical version of a formula.

    Collaborators are injectable so the network and brew can be replaced.
    """

    def __init__(
        self,
        repository: RepositoryClient | None = None,
        installer: BrewInstaller | None = None,
        console: Console | None = None,
        platform_tag: str | None = None,
        build_from_source: bool = False,
        pin: bool = False,
    ):
        self.repository = repository or RepositoryClient()
        self.installer = installer or BrewInstaller()
        self.console = console or Console()
        self._platform_tag = platform_tag
        self.build_from_source = build_from_source
        self.pin = pin
        self.start_time = 0.0

    @property
    def platform_tag(self) -> str:
        if self._platform_tag is None:
            self._platform_tag = current_platform_tag()
            logger.debug(f"Platform tag: {self._platform_tag}")
        return self._platform_tag

    async def aclose(self) -> None:
        await self.repository.session.aclose()

    # ──────────────────────────────────────────────
    # Resolution
    # ──────────────────────────────────────────────

    def _check_version(self, name: str, requested: str, fields: dict) -> None:
        """Refuse a formula whose declared version is a different release."""
        declared = fields.get("pkg_version")
        if not declared:
            logger.warning(f"Could not determine the version declared by {name}; continuing")
            return
        if split_revision(declared)[0] == split_revision(requested)[0]:
            return
        if fields.get("version_source") == "url":
            # Only a guess from the source url; the commit message is authoritative.
            logger.warning(f"{name} url suggests version {declared}, expected {requested}; continuing")
            return
        raise VersionMismatchError(f"{name} at the matched commit declares {declared}, not {requested}")

    def _select_bottle(self, name: str, revision: FormulaRevision, fields: dict) -> Bottle | None:
        if self.build_from_source:
            return None
        if revision.kind == CommitKind.BUMP:
            # The bottle block of a bump commit still belongs to the previous version.
            logger.warning(f"{name} {revision.version} has no bottle commit; building from source")
            return None
        try:
            return resolve_bottle(name, fields, self.platform_tag)
        except BottleNotFoundError as e:
            logger.warning(f"{e}; building from source")
            return None

    async def resolve(self, name: str, version: str) -> ResolvedFormula:
        """Find the commit for name@version, fetch the formula and pick a bottle."""
        with self.console.status(f"[bold cyan]Searching {name} history for {version}...[/bold cyan]"):
            revision = self.repository.find_revision(name, version)

        content = await self.repository.fetch_formula(revision)
        fields = parse_formula(content)
        self._check_version(name, version, fields)

        return ResolvedFormula(
            name=name,
            version=revision.version,
            revision=revision,
            source_url=self.repository.raw_url(revision),
            content=content,
            fields=fields,
            bottle=self._select_bottle(name, revision, fields),
        )

    # ──────────────────────────────────────────────
    # Download and install
    # ──────────────────────────────────────────────

    async def _write_formula(self, resolved: ResolvedFormula, directory: Path) -> Path:
        # brew takes the formula name from the file name.
        path = directory / f"{resolved.name}.rb"
        async with aiofiles.open(path, "w") as f:
            await f.write(resolved.content)
        logger.debug(f"Formula file: {path}")
        return path

    async def _download_bottle(self, bottle: Bottle, directory: Path) -> Path:
        dest = directory / bottle.filename
        headers = GHCR_HEADERS if "ghcr.io" in bottle.url else None

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            DownloadColumn(),
            TransferSpeedColumn(),
            console=self.console,
        ) as progress:
            task_id = progress.add_task(f"[green]{bottle.filename}[/green]", total=None)

            def on_progress(advance: int, total: int | None) -> None:
                progress.update(task_id, advance=advance, total=total)

            await self.repository.session.download(
                bottle.url, dest, sha256=bottle.sha256, headers=headers, on_progress=on_progress
            )

        logger.info(f"Downloaded and verified {bottle.filename}")
        return dest

    async def install(self, name: str, version: str) -> ResolvedFormula:
        """
        Install name@version, replacing whatever version is installed.

        Nothing is kept: downloads live in a temporary directory removed on exit.
        """
        self.start_time = time.time()
        resolved = await self.resolve(name, version)

        with tempfile.TemporaryDirectory(prefix="brewver-") as tmp:
            directory = Path(tmp)
            target = await self._write_formula(resolved, directory)
            if resolved.bottle:
                target = await self._download_bottle(resolved.bottle, directory)

            self.installer.uninstall(name)
            self.installer.install(target, build_from_source=resolved.bottle is None)
            if self.pin:
                self.installer.pin(name)

        logger.info(f"Formula {name}@{resolved.version} was installed successfully")
        logger.debug(f"Resolved: {resolved.to_dict()}")
        self.print_summary(resolved)
        return resolved

    def list_versions(self, name: str, limit: int | None = None) -> list[FormulaRevision]:
        """One revision per version found in history, bottle commits preferred."""
        by_version: dict[str, FormulaRevision] = {}
        with self.console.status(f"[bold cyan]Reading {name} history...[/bold cyan]"):
            for revision in self.repository.iter_history(name):
                existing = by_version.get(revision.version)
                if existing is None:
                    if limit and len(by_version) >= limit:
                        break
                    by_version[revision.version] = revision
                elif existing.kind == CommitKind.BUMP and revision.kind == CommitKind.BOTTLE:
                    by_version[revision.version] = revision
        return list(by_version.values())

    # ──────────────────────────────────────────────
    # Output
    # ──────────────────────────────────────────────

    def print_summary(self, resolved: ResolvedFormula) -> None:
        """Print what was resolved and the request statistics."""
        table = Table(show_header=False, box=None)
        table.add_row("Formula", resolved.name)
        table.add_row("Version", resolved.version)
        table.add_row("Commit", f"{resolved.revision.ref} ({resolved.revision.kind.value})")
        table.add_row("Formula URL", resolved.source_url)
        if resolved.bottle:
            table.add_row("Bottle", f"{resolved.bottle.tag}: {resolved.bottle.url}")
            table.add_row("SHA-256", resolved.bottle.sha256)
        else:
            table.add_row("Bottle", "none (build from source)")
        self.console.print(table)

        if self.start_time:
            self.console.print(f"\n[cyan]Stats:[/cyan] {self._get_stats_summary()}")

    def _get_stats_summary(self) -> str:
        stats = self.repository.session.stats
        elapsed = time.time() - self.start_time
        mb_downloaded = stats["bytes_downloaded"] / (1024 * 1024)
        return (
            f"Requests: {stats['successful_requests']}/{stats['total_requests']} | "
            f"Downloaded: {mb_downloaded:.2f} MB | Elapsed: {elapsed:.0f}s"
        )
