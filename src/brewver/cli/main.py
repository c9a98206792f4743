"""
brewver CLI - Install a specific version of a Homebrew formula.

Usage:
    brewver install wget 1.21.4
    brewver install node@20 20.11.0 --pin
    brewver find wget 1.21.4 --tag arm64_sonoma
    brewver versions wget --limit 20
"""

import asyncio
import logging

import click

DEFAULT_REPO = "Homebrew/homebrew-core"

logger = logging.getLogger("brewver")


def _configure_logging(verbose: bool) -> None:
    log_level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _show_github_token_info(token: str | None) -> None:
    if token:
        logger.info("Personal Access Token is used.")
        return
    logger.info(
        "This program uses the GitHub API to fetch data. "
        "To increase the rate limit, set a GITHUB_TOKEN environment variable:"
    )
    logger.info("  export GITHUB_TOKEN=your_personal_access_token")
    logger.info("You can create a personal access token at https://github.com/settings/tokens")


def _build_installer(repo, token, max_commits, tag=None, dry_run=False, **options):
    from brewver.core.github import RepositoryClient
    from brewver.core.installer import BrewInstaller
    from brewver.core.pipeline import VersionInstaller

    return VersionInstaller(
        repository=RepositoryClient(repo=repo, token=token, max_commits=max_commits),
        installer=BrewInstaller(dry_run=dry_run),
        platform_tag=tag,
        **options,
    )


def _run(coro_factory, installer):
    """Run a coroutine against the installer, closing its HTTP session afterwards."""
    from brewver.core.errors import BrewverError

    async def runner():
        try:
            return await coro_factory()
        finally:
            await installer.aclose()

    try:
        return asyncio.run(runner())
    except BrewverError as e:
        raise click.ClickException(str(e)) from e


def repository_options(func):
    """Options shared by every command that talks to GitHub."""
    func = click.option(
        "--max-commits",
        type=click.IntRange(min=1),
        default=500,
        show_default=True,
        help="Commits to scan per formula path.",
    )(func)
    func = click.option(
        "--token",
        "-t",
        envvar="GITHUB_TOKEN",
        default=None,
        help="GitHub API token (default: $GITHUB_TOKEN).",
    )(func)
    func = click.option(
        "--repo",
        envvar="BREWVER_REPO",
        default=DEFAULT_REPO,
        show_default=True,
        help="Formula repository as OWNER/NAME (env: BREWVER_REPO).",
    )(func)
    func = click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging.")(func)
    return func


@click.group()
@click.version_option(package_name="brewver")
def cli():
    """brewver: install a specific version of a Homebrew formula."""
    pass


@cli.command()
@click.argument("name")
@click.argument("version")
@click.option("--tag", default=None, help="Bottle platform tag (default: detected).")
@click.option("--build-from-source", "-s", is_flag=True, help="Ignore bottles, build the formula.")
@click.option("--pin", is_flag=True, help="Pin the installed version with `brew pin`.")
@click.option("--dry-run", is_flag=True, help="Resolve and download, but do not run brew.")
@repository_options
def install(name, version, tag, build_from_source, pin, dry_run, verbose, repo, token, max_commits):
    """Install VERSION of formula NAME."""
    _configure_logging(verbose)
    _show_github_token_info(token)

    installer = _build_installer(
        repo,
        token,
        max_commits,
        tag=tag,
        dry_run=dry_run,
        build_from_source=build_from_source,
        pin=pin,
    )
    _run(lambda: installer.install(name, version), installer)


@cli.command()
@click.argument("name")
@click.argument("version")
@click.option("--tag", default=None, help="Bottle platform tag (default: detected).")
@repository_options
def find(name, version, tag, verbose, repo, token, max_commits):
    """Show the commit and bottle for VERSION of NAME without installing."""
    _configure_logging(verbose)
    _show_github_token_info(token)

    installer = _build_installer(repo, token, max_commits, tag=tag)
    resolved = _run(lambda: installer.resolve(name, version), installer)
    installer.print_summary(resolved)


@cli.command()
@click.argument("name")
@click.option(
    "--limit", "-l", type=click.IntRange(min=1), default=None, help="Show at most this many versions."
)
@repository_options
def versions(name, limit, verbose, repo, token, max_commits):
    """List versions of NAME found in the formula history."""
    from rich.table import Table

    from brewver.core.errors import BrewverError

    _configure_logging(verbose)
    _show_github_token_info(token)

    installer = _build_installer(repo, token, max_commits)
    try:
        revisions = installer.list_versions(name, limit=limit)
    except BrewverError as e:
        raise click.ClickException(str(e)) from e
    finally:
        asyncio.run(installer.aclose())

    if not revisions:
        raise click.ClickException(f"No versions of {name} found in {repo}")

    table = Table(title=f"{name} versions")
    table.add_column("Version")
    table.add_column("Commit")
    table.add_column("Kind")
    for revision in revisions:
        table.add_row(revision.version, revision.short_ref, revision.kind.value)
    installer.console.print(table)


if __name__ == "__main__":
    cli()
