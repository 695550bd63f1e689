"""Config command for viewing and managing buildspace configuration."""

import typer

from ..app import app, console, get_json_mode
from ..utils import Output
from ... import config as config_module
from ...config import get_config, reset_config


VALID_KEYS = {
    "repair.max_gate_swaps",
    "generation.max_workers",
    "generation.parallel_min_rows",
    "defaults.budget",
    "defaults.output_path",
}


@app.command("config")
def config_command(
    action: str = typer.Argument(
        ...,
        help="Action: show, set, reset",
    ),
    key: str | None = typer.Argument(
        None,
        help="Config key (e.g. repair.max_gate_swaps, defaults.budget)",
    ),
    value: str | None = typer.Argument(
        None,
        help="Value to set",
    ),
):
    """View or modify buildspace configuration.

    Examples:
        buildspace config show
        buildspace config set defaults.budget 34
        buildspace config set generation.max_workers 4
        buildspace config reset
    """
    if action == "show":
        _show_config()
    elif action == "set":
        if not key or value is None:
            console.print("[red]Usage:[/red] buildspace config set <key> <value>")
            console.print()
            console.print("Available keys:")
            for k in sorted(VALID_KEYS):
                console.print(f"  {k}")
            raise typer.Exit(1)
        _set_config(key, value)
    elif action == "reset":
        _reset_config()
    else:
        console.print(f"[red]Unknown action:[/red] {action}")
        console.print("Valid actions: show, set, reset")
        raise typer.Exit(1)


def _show_config():
    """Display current resolved configuration."""
    config = get_config()
    config_file = config_module.CONFIG_FILE

    if get_json_mode():
        out = Output(console=console, json_mode=True)
        out.set_data("config", config.to_dict())
        out.set_data("config_file", str(config_file))
        raise typer.Exit(out.finish())

    console.print()
    console.print("[bold]buildspace Configuration[/bold]")
    console.print("─" * 40)

    console.print()
    console.print("[bold cyan]Repair[/bold cyan]")
    console.print(f"  max_gate_swaps    = {config.repair.max_gate_swaps}")

    console.print()
    console.print("[bold cyan]Generation[/bold cyan]")
    console.print(f"  max_workers       = {config.generation.max_workers}")
    console.print(f"  parallel_min_rows = {config.generation.parallel_min_rows}")

    console.print()
    console.print("[bold cyan]Defaults[/bold cyan]")
    budget = config.defaults.budget
    console.print(
        f"  budget            = {budget if budget is not None else '[dim](from graph)[/dim]'}"
    )
    console.print(f"  output_path       = {config.defaults.output_path}")

    console.print()
    if config_file.exists():
        console.print(f"Config file: {config_file}")
    else:
        console.print(f"Config file: [dim]not created yet[/dim] ({config_file})")
    console.print()


def _set_config(key: str, value: str):
    """Set a config value and save."""
    if key not in VALID_KEYS:
        console.print(f"[red]Unknown key:[/red] {key}")
        console.print()
        console.print("Available keys:")
        for k in sorted(VALID_KEYS):
            console.print(f"  {k}")
        raise typer.Exit(1)

    config = get_config()
    try:
        config.set_value(key, value)
    except ValueError:
        console.print(f"[red]Invalid integer value:[/red] {value}")
        raise typer.Exit(1)

    config.save()
    reset_config()  # Clear cached singleton so next get_config() reloads

    console.print(f"[green]✓[/green] Set {key} = {value}")
    console.print(f"  Saved to {config_module.CONFIG_FILE}")


def _reset_config():
    """Reset config to defaults."""
    config_file = config_module.CONFIG_FILE
    if config_file.exists():
        config_file.unlink()
        reset_config()
        console.print("[green]✓[/green] Config reset to defaults")
        console.print(f"  Removed {config_file}")
    else:
        console.print("Config already at defaults (no config file exists)")
