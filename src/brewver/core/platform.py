"""Bottle platform tags for the running machine."""

import logging
import platform

from brewver.core.errors import UnsupportedPlatformError

logger = logging.getLogger(__name__)

MACOS_CODENAMES = {
    "26": "tahoe",
    "15": "sequoia",
    "14": "sonoma",
    "13": "ventura",
    "12": "monterey",
    "11": "big_sur",
    "10.15": "catalina",
    "10.14": "mojave",
    "10.13": "high_sierra",
}

ARM_MACHINES = {"arm64", "aarch64"}


def macos_codename(release: str) -> str | None:
    """'14.5' -> 'sonoma', '10.15.7' -> 'catalina'."""
    parts = release.split(".")
    key = ".".join(parts[:2]) if parts[0] == "10" else parts[0]
    return MACOS_CODENAMES.get(key)


def current_platform_tag(
    system: str | None = None,
    machine: str | None = None,
    mac_release: str | None = None,
) -> str:
    """
    Bottle tag for this machine, e.g. 'arm64_sonoma', 'ventura', 'x86_64_linux'.

    Arguments default to the values reported by the `platform` module.
    """
    system = system or platform.system()
    machine = (machine or platform.machine()).lower()
    arm = machine in ARM_MACHINES

    if system == "Darwin":
        release = mac_release or platform.mac_ver()[0]
        codename = macos_codename(release) if release else None
        if codename is None:
            raise UnsupportedPlatformError(
                f"Unsupported macOS release {release!r}; pass a bottle tag explicitly"
            )
        return f"arm64_{codename}" if arm else codename

    if system == "Linux":
        return "arm64_linux" if arm else f"{machine}_linux"

    logger.debug(f"No Homebrew bottle tag for {system}/{machine}")
    return f"{machine}_{system.lower()}"
