"""vendman CLI — the main entry point for the vendoring dependency manager."""

import functools
import logging
import sys

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from vendman import __version__
from vendman.config import DEFAULT_JOBS, DEFAULT_TIMEOUT, ENV_JOBS, ENV_ROOT, ENV_TIMEOUT, Settings
from vendman.exceptions import VendmanError

console = Console()
err_console = Console(stderr=True)


def _handle_errors(fn):
    """Print a categorized message and exit 1 on any vendman error."""

    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except VendmanError as e:
            err_console.print(f"[red]Error ({e.category}):[/] {escape(str(e))}")
            sys.exit(1)

    return wrapper


def _engine(settings: Settings):
    from vendman.manifest.store import ManifestStore
    from vendman.sync.engine import SyncEngine
    from vendman.utils.git_ops import GitProvider

    store = ManifestStore(settings.root)
    return SyncEngine(store, GitProvider(timeout=settings.timeout), jobs=settings.jobs)


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--root",
    envvar=ENV_ROOT,
    type=click.Path(file_okay=False),
    default=None,
    help="Managed workspace directory (default: ~/.vendman)",
)
@click.option(
    "--timeout",
    envvar=ENV_TIMEOUT,
    type=float,
    default=DEFAULT_TIMEOUT,
    show_default=True,
    help="Seconds allowed per network call (0 disables)",
)
@click.option(
    "--jobs",
    "-j",
    envvar=ENV_JOBS,
    type=click.IntRange(min=1),
    default=DEFAULT_JOBS,
    show_default=True,
    help="Dependencies processed in parallel by update/list",
)
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging")
@click.pass_context
def main(ctx: click.Context, root: str | None, timeout: float, jobs: int, verbose: bool):
    """vendman — vendor git repositories into a managed workspace.

    Declare dependencies with `vend`, keep them current with `update`,
    and inspect them with `list`.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    if root:
        ctx.obj = Settings(root=root, timeout=timeout, jobs=jobs)
    else:
        ctx.obj = Settings(timeout=timeout, jobs=jobs)


# ── Init ─────────────────────────────────────────────────────────────


@main.command()
@click.pass_obj
@_handle_errors
def init(settings: Settings):
    """Initialize the managed workspace directory."""
    created = _engine(settings).init()
    if created:
        console.print(f"[green]Initialized[/] {escape(str(settings.root))}")
    else:
        console.print(f"[yellow]Already initialized:[/] {escape(str(settings.root))}")


# ── Vend ─────────────────────────────────────────────────────────────


@main.command()
@click.option("-r", "--repo", "locator", required=True, help="Git repository to clone")
@click.option("-b", "--branch", default=None, help="Branch to pin and check out")
@click.pass_obj
@_handle_errors
def vend(settings: Settings, locator: str, branch: str | None):
    """Clone a repository and add it to the manifest."""
    result = _engine(settings).vend(locator, branch)

    if result.replaced is not None:
        console.print(f"[yellow]Replaced[/] existing dependency [cyan]{escape(result.name)}[/]")
    pin = f" @ {escape(branch)}" if branch else ""
    console.print(f"[green]Vended[/] [cyan]{escape(result.name)}[/]{pin}")


# ── Update ───────────────────────────────────────────────────────────


@main.command()
@click.pass_obj
@_handle_errors
def update(settings: Settings):
    """Fetch every dependency from its upstream."""
    outcomes = _engine(settings).update()

    if not outcomes:
        console.print("[yellow]No dependencies declared.[/]")
        return

    for outcome in outcomes:
        if outcome.ok:
            pin = f" @ {escape(outcome.ref)}" if outcome.ref else ""
            console.print(f"  [green]OK[/] {escape(outcome.name)}{pin}")
        else:
            console.print(f"  [red]FAIL[/] {escape(outcome.name)}: {escape(outcome.reason)}")

    failed = sum(1 for o in outcomes if not o.ok)
    if failed:
        err_console.print(f"[red]{failed} of {len(outcomes)} dependencies failed to update[/]")
        sys.exit(1)


# ── List ─────────────────────────────────────────────────────────────


@main.command(name="list")
@click.pass_obj
@_handle_errors
def list_dependencies(settings: Settings):
    """Show the checked-out branch and commit of every dependency."""
    rows = _engine(settings).list()

    if not rows:
        console.print("[yellow]No dependencies declared.[/]")
        return

    table = Table(title=f"Dependencies ({len(rows)})")
    table.add_column("Name", style="cyan")
    table.add_column("Ref")
    table.add_column("Commit", style="dim")

    for row in rows:
        if row.ok:
            table.add_row(escape(row.name), escape(row.ref), row.commit)
        else:
            table.add_row(escape(row.name), "[red]error[/]", f"[red]{escape(row.error)}[/]")

    console.print(table)

    if any(not row.ok for row in rows):
        sys.exit(1)


# ── Remove ───────────────────────────────────────────────────────────


@main.command()
@click.argument("name")
@click.pass_obj
@_handle_errors
def remove(settings: Settings, name: str):
    """Remove one dependency and delete its clone."""
    _engine(settings).remove(name)
    console.print(f"[green]Removed[/] [cyan]{escape(name)}[/]")


# ── Clean ────────────────────────────────────────────────────────────


@main.command()
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_obj
@_handle_errors
def clean(settings: Settings, yes: bool):
    """Remove the managed workspace, manifest and all clones."""
    engine = _engine(settings)
    engine.store.require_initialized()
    if not yes:
        click.confirm(f"Delete {settings.root} and every vendored clone?", abort=True)
    engine.clean()
    console.print(f"[green]Removed[/] {escape(str(settings.root))}")


if __name__ == "__main__":
    main()
