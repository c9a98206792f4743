"""
Example: Resolve and install an older wget.

Usage:
    export GITHUB_TOKEN=your_token_here
    python examples/install_version.py
"""

import asyncio

from brewver import VersionInstaller
from brewver.core.installer import BrewInstaller


async def main():
    # dry_run logs the brew commands instead of running them
    installer = VersionInstaller(installer=BrewInstaller(dry_run=True))

    try:
        resolved = await installer.resolve("wget", "1.21.4")
        installer.print_summary(resolved)
    finally:
        await installer.aclose()

    print(f"\nFormula at commit {resolved.revision.short_ref}: {resolved.source_url}")


if __name__ == "__main__":
    asyncio.run(main())
