"""Command-line interface for modpack-installer."""

import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.progress import BarColumn, Progress, TextColumn, TimeElapsedColumn
from rich.table import Table

from . import __version__
from .events import AddAlert, AlertLevel, ChangeDetail, ChangePhase, InstallerEvent, UpdateProgress
from .logging_utils import configure_logging
from .paths import INSTALL_DIR_ENVVAR, AppPaths
from .service import AlreadyRunningError, InstallerService
from .state import InstallerMode

console = Console()

PHASE_LABELS = {
    "downloadLoader": "Downloading mod loader",
    "removeMods": "Removing old mods",
    "downloadMods": "Downloading mods",
    "downloadResources": "Downloading resources",
    "runMigrations": "Updating settings",
    "addProfile": "Adding launcher profile",
    "launchLoader": "Launching mod loader",
}

ALERT_MESSAGES = {
    "alertOnFailedAddProfile": "Could not add the launcher profile. Add it manually.",
    "alertOnFailedLaunchModLoader": "Could not start the mod loader installer. Run it manually.",
    "alertOnLaunchModLoader": "The mod loader installer was started. Finish it to play.",
}


@click.group()
@click.option(
    "--install-dir",
    envvar=INSTALL_DIR_ENVVAR,
    type=click.Path(file_okay=False, path_type=Path),
    help=f"Modpack install directory (or set {INSTALL_DIR_ENVVAR} env var)",
)
@click.option("-v", "--verbose", is_flag=True, help="Show info-level log output")
@click.version_option(__version__)
@click.pass_context
def main(ctx: click.Context, install_dir: Path | None, verbose: bool) -> None:
    """Install and update a modpack from its config.yaml."""
    paths = AppPaths.resolve(install_dir)
    configure_logging(
        paths.log_dir,
        console=console,
        console_level=logging.INFO if verbose else logging.WARNING,
    )
    logger = logging.getLogger(__name__)
    logger.info("=" * 80)
    logger.info("App version: %s", __version__)

    ctx.ensure_object(dict)
    ctx.obj["service"] = InstallerService(paths)


@main.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show which modes are available for this install directory."""
    service: InstallerService = ctx.obj["service"]
    title = service.initialize_title()

    console.print(f"[bold]Install directory:[/bold] {service.paths.install_dir}")
    table = Table(title="Available modes")
    table.add_column("Mode", style="cyan")
    table.add_column("Status")
    for mode, available in (
        (InstallerMode.INSTALL, title.can_install),
        (InstallerMode.UPDATE, title.can_update),
    ):
        if available:
            table.add_row(str(mode), "[green]Available[/green]")
        else:
            result = service.select_mode(mode)
            table.add_row(str(mode), f"[yellow]{result.error or 'Unavailable'}[/yellow]")
    console.print(table)


@main.command()
@click.pass_context
def install(ctx: click.Context) -> None:
    """Download the mod loader, mods and resources."""
    _run_mode(ctx.obj["service"], InstallerMode.INSTALL)


@main.command()
@click.pass_context
def update(ctx: click.Context) -> None:
    """Bring an existing installation up to the manifest's version."""
    _run_mode(ctx.obj["service"], InstallerMode.UPDATE)


@main.command(name="open-logs")
@click.pass_context
def open_logs(ctx: click.Context) -> None:
    """Open the log folder."""
    service: InstallerService = ctx.obj["service"]
    service.open_log_folder()
    console.print(f"[dim]Logs: {service.paths.log_dir}[/dim]")


@main.command()
@click.option("--port", type=int, default=5000, help="Port (default 5000)")
@click.pass_context
def web(ctx: click.Context, port: int) -> None:
    """Serve the web UI."""
    from .web import create_and_run

    service: InstallerService = ctx.obj["service"]
    console.print(f"[bold]Serving on[/bold] http://127.0.0.1:{port}")
    create_and_run(service.paths, port=port)


def _run_mode(service: InstallerService, mode: InstallerMode) -> None:
    result = service.select_mode(mode)
    if not result.is_accept:
        console.print(f"[red]Error:[/red] {result.error}")
        sys.exit(1)

    console.print(f"[bold]{mode}[/bold] into {service.paths.install_dir}")
    alerts: list[AddAlert] = []

    with Progress(
        TextColumn("[bold blue]{task.fields[phase]}", justify="right"),
        BarColumn(bar_width=30),
        "[progress.percentage]{task.percentage:>3.0f}%",
        TextColumn("[dim]{task.fields[detail]}"),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        task_id = progress.add_task(str(mode), total=1.0, phase=str(mode), detail="")

        def on_event(event: InstallerEvent) -> None:
            if isinstance(event, ChangePhase):
                progress.update(task_id, phase=PHASE_LABELS.get(event.phase.value, event.phase.value))
            elif isinstance(event, ChangeDetail):
                progress.update(task_id, detail=event.detail[:40])
            elif isinstance(event, UpdateProgress):
                progress.update(task_id, completed=event.progress)
            elif isinstance(event, AddAlert):
                alerts.append(event)

        try:
            service.run_installer(mode, on_event=on_event)
        except AlreadyRunningError as e:
            console.print(f"[red]Error:[/red] {e}")
            sys.exit(1)
        except Exception as e:
            progress.stop()
            console.print(f"[red]Error:[/red] {e}")
            console.print(f"[dim]See logs in {service.paths.log_dir}[/dim]")
            sys.exit(1)

    for alert in alerts:
        message = ALERT_MESSAGES.get(alert.translation_key, alert.translation_key)
        if alert.level is AlertLevel.WARNING:
            console.print(f"[yellow]Warning:[/yellow] {message}")
        else:
            console.print(f"[cyan]Info:[/cyan] {message}")

    console.print(f"\n[green]{mode} complete![/green]")
