import os
from pathlib import Path

import rich
import typer
from rich.markup import escape

from akari._src.constants import SupportedShells
from akari._src.shell import detect_shell, hook_script, update_shell_config
from akari.cli.common import session


shell_command = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
    context_settings={"help_option_names": ["-h", "--help"]},
)


@shell_command.command()
def hook(
    shell: SupportedShells = typer.Option(
        None,
        help="shell to print the hook for. Detected from $SHELL by default",
    ),
):
    """Print the shell function that lets `akari activate` change the shell"""
    shell = shell or detect_shell(os.environ.get("SHELL"))
    typer.echo(hook_script(shell), nl=False)


@shell_command.command()
def install(
    shell: SupportedShells = typer.Option(
        None,
        help="shell to configure. Detected from $SHELL by default",
    ),
):
    """Load the akari hook from the shell's startup file"""
    shell = shell or detect_shell(os.environ.get("SHELL"))
    with session():
        rc_file, changed = update_shell_config(shell, Path.home())
    if changed:
        rich.print(f"Shell configuration updated in {escape(str(rc_file))}")
    else:
        rich.print(f"{escape(str(rc_file))} already loads akari")
