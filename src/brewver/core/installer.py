"""
brew invocation.

Runs the host package manager as a subprocess. Failures raise InstallError
with brew's stderr attached.
"""

import logging
import shutil
import subprocess
from pathlib import Path

from brewver.core.errors import InstallError

logger = logging.getLogger(__name__)


class BrewInstaller:
    """Thin wrapper around the `brew` command line."""

    def __init__(self, brew: str = "brew", dry_run: bool = False, runner=subprocess.run):
        self.brew = brew
        self.dry_run = dry_run
        self.runner = runner

    def run_command(self, *args: str, check: bool = True) -> subprocess.CompletedProcess:
        """Run `brew <args>` and capture its output."""
        command = [self.brew, *args]
        if self.dry_run:
            logger.info(f"[dry-run] {' '.join(command)}")
            return subprocess.CompletedProcess(command, 0, stdout="", stderr="")

        if self.runner is subprocess.run and shutil.which(self.brew) is None:
            raise InstallError(command, None, f"{self.brew} not found in PATH")

        logger.debug(f"Running {' '.join(command)}")
        try:
            result = self.runner(command, capture_output=True, text=True)
        except OSError as e:
            raise InstallError(command, None, str(e)) from e

        logger.debug(f"Command output: {result.stdout.strip()}")
        if check and result.returncode != 0:
            raise InstallError(command, result.returncode, result.stderr)
        return result

    def installed_versions(self, name: str) -> list[str]:
        """Versions of a formula currently in the Cellar."""
        result = self.run_command("list", "--formula", "--versions", name, check=False)
        if result.returncode != 0:
            return []
        # "wget 1.21.4 1.24.5"
        parts = result.stdout.split()
        return parts[1:] if parts and parts[0] == name else []

    def uninstall(self, name: str) -> bool:
        """Remove every installed version of a formula. Returns False if none was installed."""
        if not self.dry_run and not self.installed_versions(name):
            logger.debug(f"{name} is not installed, nothing to remove")
            return False
        self.run_command("uninstall", "--ignore-dependencies", name)
        logger.info(f"Removed installed {name}")
        return True

    def install(self, path: Path, build_from_source: bool = False) -> None:
        """Install a bottle tarball or a formula file."""
        args = ["install"]
        if path.suffix == ".rb":
            args.append("--formula")
            if build_from_source:
                args.append("--build-from-source")
        self.run_command(*args, str(path))

    def pin(self, name: str) -> None:
        """Stop `brew upgrade` from replacing the installed version."""
        self.run_command("pin", name)
        logger.info(f"Pinned {name}")
