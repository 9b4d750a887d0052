"""Command-line interface for repository sync.

Every command builds a fresh engine over the local storage file, runs one
async operation with ``asyncio.run`` and renders the outcome with rich.
"""

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional, TypeVar

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__
from .adapters.git_adapter import GitProviderAdapter
from .config import SettingsManager, SyncSettings
from .credential_store import CredentialStore
from .data_modules import DataModuleRegistry, default_modules
from .request_cache import RequestCache
from .storage import JsonFileStore
from .sync_engine import SyncEngine
from .sync_models import GitConfig, GitProvider, SyncResult

console = Console()
T = TypeVar("T")


class CliState:
    """Objects shared by the commands of one invocation."""

    def __init__(self, settings: SyncSettings):
        self.settings = settings
        self.store = JsonFileStore(settings.storage_path)
        self.credentials = CredentialStore(self.store)
        self.modules: DataModuleRegistry = default_modules(self.store)

    def make_engine(self) -> SyncEngine:
        adapter = GitProviderAdapter(
            self.credentials,
            cache=RequestCache(ttl=self.settings.request_cache_ttl),
            timeout=self.settings.request_timeout,
        )
        return SyncEngine(self.credentials, self.modules, adapter=adapter,
                          sync_prefix=self.settings.sync_prefix)

    def run(self, operation: Callable[[SyncEngine], Awaitable[T]]) -> T:
        async def _run():
            engine = self.make_engine()
            try:
                return await operation(engine)
            finally:
                await engine.aclose()
        return asyncio.run(_run())


def _setup_logging(level: str):
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
    )


def _require_config(state: CliState):
    if state.credentials.load() is None:
        console.print("[red]Git sync is not configured. Run 'repo-sync configure' first.[/red]")
        raise SystemExit(1)


def _print_result(title: str, result: SyncResult):
    if not result.results:
        console.print(f"[green]{title}: nothing to do[/green]")
        return

    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("Module", style="cyan")
    table.add_column("Result", justify="center")
    for name, ok in result.results.items():
        table.add_row(name, "[green]✅ ok[/green]" if ok else "[red]❌ failed[/red]")
    console.print(table)

    if not result.success:
        console.print(f"[red]Failed modules: {', '.join(result.failed)}[/red]")
        raise SystemExit(1)


def _select_module(state: CliState, name: Optional[str]):
    if name is None:
        return None
    module = state.modules.get(name)
    if module is None:
        raise click.BadParameter(
            f"unknown module {name!r}; choose from {', '.join(state.modules.names())}",
            param_hint="--module")
    return module


@click.group(name="repo-sync")
@click.option("--data-dir", type=click.Path(file_okay=False, path_type=Path), default=None,
              help="Directory holding settings and local data (default: ~/.repo_sync)")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.version_option(__version__)
@click.pass_context
def cli(ctx: click.Context, data_dir: Optional[Path], verbose: bool):
    """Synchronize local productivity data with a GitHub or Gitee repository."""
    settings = SettingsManager(data_dir).load()
    _setup_logging("DEBUG" if verbose else settings.log_level)
    ctx.obj = CliState(settings)


@cli.command("configure")
@click.option("--provider", type=click.Choice([p.value for p in GitProvider]), required=True)
@click.option("--owner", required=True, help="Repository owner (user or organization)")
@click.option("--repo", required=True, help="Repository name")
@click.option("--token", prompt=True, hide_input=True, help="Personal access token")
@click.option("--branch", default=None, help="Branch (default: main on GitHub, master on Gitee)")
@click.option("--test/--no-test", "run_test", default=True, help="Test the connection after saving")
@click.pass_obj
def configure(state: CliState, provider: str, owner: str, repo: str, token: str,
              branch: Optional[str], run_test: bool):
    """Save repository credentials (encrypted)."""
    config = GitConfig(provider=GitProvider(provider), token=token, owner=owner, repo=repo,
                       branch=branch)
    state.credentials.save(config)
    console.print(f"[green]Saved {config.provider.display_name} config for "
                  f"{owner}/{repo} ({config.branch})[/green]")

    if run_test:
        result = state.run(lambda engine: engine.test_connection())
        color = "green" if result.success else "yellow"
        console.print(f"[{color}]{result.message}[/{color}]")


@cli.command("logout")
@click.pass_obj
def logout(state: CliState):
    """Remove the stored credentials."""
    state.credentials.clear()
    console.print("[green]Credentials removed[/green]")


@cli.command("test")
@click.pass_obj
def test_connection(state: CliState):
    """Check that the repository is reachable and writable."""
    _require_config(state)
    result = state.run(lambda engine: engine.test_connection())
    if result.success:
        console.print(f"[green]{result.message}[/green]")
    else:
        console.print(f"[red]{result.message}[/red]")
        raise SystemExit(1)


@cli.command("status")
@click.pass_obj
def status(state: CliState):
    """Show which modules differ from the remote copy."""
    _require_config(state)
    statuses = state.run(lambda engine: engine.status())

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("File", style="cyan")
    table.add_column("Local hash")
    table.add_column("Cloud hash")
    table.add_column("Needs sync", justify="center")
    table.add_column("Last sync")
    for item in statuses:
        table.add_row(
            item.filename,
            item.local_hash[:8] or "-",
            item.cloud_hash[:8] or "-",
            "[yellow]yes[/yellow]" if item.needs_sync else "[green]no[/green]",
            item.last_sync_time or "-",
        )
    console.print(table)


@cli.command("sync")
@click.pass_obj
def sync(state: CliState):
    """Push local changes and pull remote ones where hashes differ."""
    _require_config(state)
    _print_result("Sync", state.run(lambda engine: engine.auto_sync()))


@cli.command("push")
@click.option("--module", "module_name", default=None, help="Only push this module")
@click.pass_obj
def push(state: CliState, module_name: Optional[str]):
    """Upload local data, overwriting the remote copy."""
    _require_config(state)
    module = _select_module(state, module_name)
    if module is None:
        _print_result("Push", state.run(lambda engine: engine.push_all()))
        return

    result = SyncResult()
    result.record(module.name, state.run(lambda engine: engine.push_module(module)))
    _print_result("Push", result)


@cli.command("pull")
@click.option("--module", "module_name", default=None, help="Only pull this module")
@click.pass_obj
def pull(state: CliState, module_name: Optional[str]):
    """Download remote data, overwriting local data."""
    _require_config(state)
    module = _select_module(state, module_name)
    if module is None:
        _print_result("Pull", state.run(lambda engine: engine.pull_all()))
        return

    result = SyncResult()
    result.record(module.name, state.run(lambda engine: engine.pull_module(module)))
    _print_result("Pull", result)


@cli.command("cleanup")
@click.confirmation_option(prompt="Delete every sync file from the remote repository?")
@click.pass_obj
def cleanup(state: CliState):
    """Delete the remote sync files of every module."""
    _require_config(state)
    _print_result("Cleanup", state.run(lambda engine: engine.cleanup()))


@cli.command("files")
@click.pass_obj
def files(state: CliState):
    """List sync files in the remote repository."""
    _require_config(state)
    remote_files = state.run(lambda engine: engine.list_sync_files())
    if not remote_files:
        console.print("[yellow]No sync files found[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Name", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("SHA")
    for remote_file in remote_files:
        table.add_row(remote_file.name, str(remote_file.size), remote_file.sha[:10])
    console.print(table)


def main():
    cli()


if __name__ == "__main__":
    main()
