"""CLI interface for the Geode installer."""

import asyncio
import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from geode_installer import __version__
from geode_installer.config import Settings, get_settings
from geode_installer.manager import InstallationManager, InstallState
from geode_installer.platforms import OtherMods, get_platform, get_pointer
from geode_installer.registry import Installation, InstallationRegistry
from geode_installer.releases import DownloadCallbacks, ReleaseFetcher

app = typer.Typer(
    name="geode-installer",
    help="Install, update and uninstall the Geode mod loader",
    no_args_is_help=True,
)

console = Console()

OTHER_MOD_NAMES = {
    OtherMods.MHV6: "Mega Hack v6",
    OtherMods.MHV7: "Mega Hack v7",
    OtherMods.GDHM: "GD Hacker Mode",
    OtherMods.SOME: "another mod loader",
}

STATE_LABELS = {
    InstallState.NOT_INSTALLED: "[dim]Not installed[/]",
    InstallState.LOADER_INSTALLED: "[yellow]Loader only[/]",
    InstallState.LOADER_AND_API_INSTALLED: "[green]Loader + API[/]",
}


def version_callback(value: bool):
    if value:
        console.print(f"geode-installer version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option("--version", "-v", callback=version_callback, is_eager=True),
    ] = False,
    verbose: Annotated[bool, typer.Option("--verbose", help="Show debug logging")] = False,
):
    """Geode Installer - manage the Geode mod loader for Geometry Dash."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


# --- Shared helpers ---


def _build_manager(settings: Settings) -> InstallationManager:
    """Load the registry and wire up a manager for the configured platform."""
    platform = get_platform(settings)
    registry = InstallationRegistry(platform, get_pointer(settings.platform))
    loaded = registry.load()
    if not loaded.ok:
        console.print(f"[yellow]Warning: {loaded.message}[/]")
    return InstallationManager(registry, platform, ReleaseFetcher(settings))


def _find_installation(manager: InstallationManager, path: Path) -> Installation:
    """Look up the installation for a game directory or executable path."""
    path = path.resolve()
    directory = path.parent if path.is_file() else path
    installation = manager.registry.get_installation(directory)
    if installation is None:
        console.print(f"[red]No Geode installation recorded for {directory}[/]")
        raise typer.Exit(1)
    return installation


def _describe_other_mods(flags: OtherMods) -> list[str]:
    return [label for flag, label in OTHER_MOD_NAMES.items() if flag in flags]


def _run_download(flow) -> object:
    """Run an async install flow while rendering download progress."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("Waiting", total=100)

        def on_progress(label: str, percent: int):
            progress.update(task, description=label, completed=percent)

        def on_finish(asset):
            progress.update(task, description=f"Downloaded {asset.name}", completed=100)

        callbacks = DownloadCallbacks(on_progress=on_progress, on_finish=on_finish)
        return asyncio.run(flow(callbacks))


# --- Commands ---


@app.command()
def install(
    exe: Annotated[Optional[Path], typer.Argument(help="Path to the game executable")] = None,
    no_api: Annotated[bool, typer.Option("--no-api", help="Only install the loader")] = False,
    force: Annotated[bool, typer.Option("--force", "-f", help="Install even if other mod loaders are present")] = False,
):
    """Install the latest Geode loader (and API) into a game directory."""
    settings = get_settings()
    manager = _build_manager(settings)

    if exe is None:
        exe = manager.find_default_game_path()
        if exe is None:
            console.print("[red]Could not find Geometry Dash. Pass the path to the executable.[/]")
            raise typer.Exit(1)
        console.print(f"Found game at [cyan]{exe}[/]")
    exe = exe.parent.resolve() / exe.name

    if not exe.is_file():
        console.print(f"[red]Game executable not found: {exe}[/]")
        raise typer.Exit(1)

    if manager.registry.get_installation(exe.parent) is None:
        others = _describe_other_mods(manager.does_directory_contain_other_mods(exe.parent))
        if others:
            console.print(f"[yellow]Found {', '.join(others)} in {exe.parent}.[/]")
            if not force:
                console.print("[yellow]Uninstall it first, or pass --force to install anyway.[/]")
                raise typer.Exit(1)

    result = _run_download(lambda cb: manager.install(exe, cb, with_api=not no_api))
    if not result.ok:
        console.print(f"[red]Install failed: {result.message}[/]")
        raise typer.Exit(1)

    console.print(f"[green]Geode installed into {result.value.path}[/]")


@app.command()
def update(
    path: Annotated[Optional[Path], typer.Argument(help="Game directory or executable (default: all)")] = None,
):
    """Update Geode in one or all known installations."""
    settings = get_settings()
    manager = _build_manager(settings)

    if path is not None:
        installation = _find_installation(manager, path)
        results = {installation.path: _run_download(lambda cb: manager.update(installation, cb))}
    else:
        if not manager.installations:
            console.print("[yellow]No installations to update[/]")
            return
        results = _run_download(lambda cb: manager.update_all(cb))

    failed = False
    for target, result in results.items():
        if result.ok:
            console.print(f"[green]Updated {target}[/]")
        else:
            console.print(f"[red]Failed to update {target}: {result.message}[/]")
            failed = True
    if failed:
        raise typer.Exit(1)


@app.command()
def uninstall(
    path: Annotated[Path, typer.Argument(help="Game directory or executable")],
    delete_save_data: Annotated[
        bool, typer.Option("--delete-save-data", help="Also delete Geode's save data")
    ] = False,
):
    """Remove Geode from a game directory."""
    settings = get_settings()
    manager = _build_manager(settings)
    installation = _find_installation(manager, path)

    result = manager.uninstall(installation, delete_save_data=delete_save_data)
    if not result.ok:
        console.print(f"[red]Uninstall failed: {result.message}[/]")
        raise typer.Exit(1)

    console.print(f"[green]Geode uninstalled from {installation.path}[/]")


@app.command("list")
def list_installations():
    """List known Geode installations."""
    settings = get_settings()
    manager = _build_manager(settings)

    installations = manager.installations
    if not installations:
        console.print("[yellow]No installations found. Install Geode with:[/]")
        console.print("  geode-installer install")
        return

    table = Table(title="Geode installations")
    table.add_column("Directory", style="cyan")
    table.add_column("Executable")
    table.add_column("Status")
    for installation in installations:
        state = manager.state_of(installation.path)
        table.add_row(str(installation.path), installation.exe, STATE_LABELS[state])
    console.print(table)


@app.command()
def check(
    path: Annotated[Path, typer.Argument(help="Game directory to inspect")],
):
    """Check a game directory for other mod loaders."""
    settings = get_settings()
    manager = _build_manager(settings)
    path = path.resolve()
    directory = path.parent if path.is_file() else path

    others = _describe_other_mods(manager.does_directory_contain_other_mods(directory))
    if not others:
        console.print("[green]PASS[/] No other mod loaders found")
        return

    console.print("[yellow]WARN[/] Other mod loaders found:")
    for name in others:
        console.print(f"  [yellow]{name}[/]")


@app.command("uninstall-sdk")
def uninstall_sdk():
    """Delete the Geode SDK directory."""
    settings = get_settings()
    manager = _build_manager(settings)

    if not manager.registry.sdk_installed:
        console.print("[yellow]SDK is not installed[/]")
        return

    sdk_dir = manager.registry.sdk_directory
    result = manager.uninstall_sdk()
    if not result.ok:
        console.print(f"[red]{result.message}[/]")
        raise typer.Exit(1)
    console.print(f"[green]Removed SDK at {sdk_dir}[/]")


@app.command()
def reset(
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not ask for confirmation")] = False,
):
    """Forget every installation by deleting the installer's data directory."""
    settings = get_settings()
    manager = _build_manager(settings)
    data_dir = manager.registry.data_directory

    if not yes and not typer.confirm(f"Delete {data_dir}?"):
        raise typer.Exit(1)

    result = manager.registry.delete()
    if not result.ok:
        console.print(f"[red]{result.message}[/]")
        raise typer.Exit(1)
    console.print(f"[green]Deleted {data_dir}[/]")


@app.command()
def info():
    """Show configuration and status information."""
    settings = get_settings()
    manager = _build_manager(settings)
    registry = manager.registry

    table = Table(title="Geode Installer Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_column("Status")

    table.add_row("Platform", manager.platform.name, "")
    first_run = "[yellow]First run[/]" if registry.is_first_time() else "[green]Loaded[/]"
    table.add_row("Data Directory", str(registry.data_directory), first_run)
    sdk_status = "[green]Installed[/]" if registry.sdk_installed else "[dim]Not installed[/]"
    table.add_row("SDK Directory", str(registry.sdk_directory), sdk_status)
    table.add_row("Loader Feed", settings.loader_feed_url, "")
    table.add_row("API Feed", settings.api_feed_url, "")

    game = manager.find_default_game_path()
    table.add_row("Default Game Path", str(game) if game else "Not found", "[green]Found[/]" if game else "[red]Not found[/]")

    console.print(table)


if __name__ == "__main__":
    app()
