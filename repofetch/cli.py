"""CLI commands for repofetch."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Callable

import click
from click.core import ParameterSource
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from repofetch.errors import RepoFetchError
from repofetch.inspector import RepositoryStateInspector
from repofetch.models.settings import FetchSettings, SubmoduleMode
from repofetch.models.state import FetchResult, NotARepository, WorkingCopyState
from repofetch.provider import FetchPlan, SourceFetcher

console = Console()

# CLI option name -> FetchSettings field
OPTION_FIELDS = {
    "path": "repository_path",
    "ref": "ref",
    "commit": "commit",
    "token": "auth_token",
    "clean": "clean",
    "filter": "filter",
    "sparse": "sparse_checkout",
    "sparse_cone": "sparse_checkout_cone_mode",
    "depth": "fetch_depth",
    "fetch_tags": "fetch_tags",
    "progress": "show_progress",
    "lfs": "lfs",
    "submodules": "submodules",
    "safe_directory": "set_safe_directory",
    "persist_credentials": "persist_credentials",
    "server_url": "github_server_url",
}


def settings_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Options shared by the commands that take fetch settings."""
    options = [
        click.option("--config", "-c", "config", type=click.Path(exists=True, dir_okay=False),
                     default=None, help="YAML file with fetch settings"),
        click.option("--repository", "-r", envvar="GITHUB_REPOSITORY", default=None,
                     help="Repository as owner/name"),
        click.option("--path", "-p", default=None, help="Local working copy path"),
        click.option("--ref", default=None, help="Branch, tag or pull request ref"),
        click.option("--commit", default=None, help="Commit SHA to check out"),
        click.option("--token", envvar="GITHUB_TOKEN", default=None, show_envvar=True,
                     help="Token used for fetching"),
        click.option("--clean/--no-clean", default=True, help="Discard local modifications"),
        click.option("--filter", default=None, help="Partial clone filter, e.g. blob:none"),
        click.option("--sparse", multiple=True, help="Sparse checkout path (can repeat)"),
        click.option("--sparse-cone/--no-sparse-cone", default=True, help="Sparse checkout cone mode"),
        click.option("--depth", "-d", type=int, default=None, help="Fetch depth, 0 for all history"),
        click.option("--fetch-tags", is_flag=True, help="Fetch tags"),
        click.option("--progress", is_flag=True, help="Show git progress output"),
        click.option("--lfs", is_flag=True, help="Download Git LFS files"),
        click.option("--submodules", type=click.Choice([m.value for m in SubmoduleMode]),
                     default=None, help="Submodule handling"),
        click.option("--safe-directory", is_flag=True, help="Treat the path as a safe directory"),
        click.option("--persist-credentials", is_flag=True,
                     help="Keep the auth header in the local git config"),
        click.option("--server-url", envvar="GITHUB_SERVER_URL", default=None,
                     help="Server base URL"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def build_settings(ctx: click.Context, params: dict[str, Any]) -> FetchSettings:
    """Combine the YAML config (if any) with explicitly given options."""
    overrides: dict[str, Any] = {}
    for option, field in OPTION_FIELDS.items():
        if ctx.get_parameter_source(option) == ParameterSource.DEFAULT:
            continue
        value = params[option]
        if value is None:
            continue
        overrides[field] = list(value) if isinstance(value, tuple) else value

    repository = params.get("repository")
    if repository:
        owner, _, name = repository.partition("/")
        if not owner or not name:
            raise click.BadParameter("expected owner/name", param_hint="--repository")
        overrides["repository_owner"] = owner
        overrides["repository_name"] = name

    if params.get("config"):
        return FetchSettings.from_yaml(Path(params["config"]), **overrides)
    return FetchSettings.model_validate(overrides)


def _load_settings(ctx: click.Context, params: dict[str, Any]) -> FetchSettings:
    try:
        return build_settings(ctx, params)
    except ValidationError as e:
        console.print(f"[red]Invalid settings:[/red]\n{escape(str(e))}")
        ctx.exit(1)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Log every git command")
def main(verbose: bool) -> None:
    """repofetch - Reproducible git source fetching."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


@main.command()
@settings_options
@click.pass_context
def fetch(ctx: click.Context, **params: Any) -> None:
    """Fetch a repository into a local working copy."""
    settings = _load_settings(ctx, params)

    async def run() -> FetchResult:
        return await SourceFetcher().get_source(settings)

    try:
        with console.status(f"Fetching {settings.repository}..."):
            result = asyncio.run(run())
    except RepoFetchError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        ctx.exit(1)

    table = Table(title=f"Fetched {settings.repository}")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Path", result.path)
    table.add_row("Action", result.action.value)
    table.add_row("Ref", result.ref or "-")
    table.add_row("Commit", result.commit)
    table.add_row("Reasons", "\n".join(result.reasons) or "-")
    console.print(table)

    for warning in result.warnings:
        console.print(f"[yellow]Warning: {escape(warning)}[/yellow]")


@main.command()
@settings_options
@click.pass_context
def plan(ctx: click.Context, **params: Any) -> None:
    """Show what fetch would do without changing anything."""
    settings = _load_settings(ctx, params)

    async def run() -> FetchPlan:
        return await SourceFetcher().plan(settings)

    try:
        with console.status("Planning..."):
            state, target, decision = asyncio.run(run())
    except RepoFetchError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        ctx.exit(1)

    table = Table(title=f"Plan for {settings.repository}")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Action", decision.action.value)
    table.add_row("Fetch", "yes" if decision.fetch else "no")
    table.add_row("Depth", str(decision.depth) if decision.depth else "full")
    table.add_row("Target", f"{target.qualified_ref or 'commit'} @ {target.commit[:12]}")
    if isinstance(state, WorkingCopyState):
        table.add_row("Current", f"{state.fetched_ref or state.branch or 'detached'} @ {state.head[:12]}")
    table.add_row("Reasons", "\n".join(decision.reasons) or "-")
    console.print(table)


@main.command()
@click.argument("path", type=click.Path(file_okay=False))
@click.option("--safe-directory", is_flag=True, help="Treat the path as a safe directory")
def inspect(path: str, safe_directory: bool) -> None:
    """Show the state of an existing working copy."""

    async def run() -> WorkingCopyState | NotARepository:
        return await RepositoryStateInspector(safe_directory=safe_directory).inspect(Path(path))

    state = asyncio.run(run())
    if isinstance(state, NotARepository):
        console.print(f"[yellow]Not a reusable working copy: {escape(state.reason)}[/yellow]")
        return

    table = Table(title=f"Working copy: {state.path}")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Remote", state.remote_url)
    table.add_row("HEAD", state.head)
    table.add_row("Branch", state.branch or "(detached)")
    table.add_row("Fetched ref", state.fetched_ref or "-")
    table.add_row("Dirty", ", ".join(state.changes) if state.dirty else "no")
    table.add_row("Shallow", "yes" if state.shallow else "no")
    if state.sparse_enabled:
        mode = "cone" if state.sparse_cone else "no-cone"
        table.add_row("Sparse", f"{mode}: {', '.join(state.sparse_paths)}")
    table.add_row("Submodules", state.submodules.value)
    table.add_row("LFS", "yes" if state.lfs else "no")
    if state.filter:
        table.add_row("Filter", state.filter)
    console.print(table)


if __name__ == "__main__":
    main()
