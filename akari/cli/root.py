import os
from typing import List, Optional

import rich
import typer
from rich.markup import escape
from rich.table import Table
from typing_extensions import Annotated

from akari._src.config import get_settings
from akari._src.constants import SupportedShells
from akari._src.exceptions import AkariError
from akari._src.shell import detect_shell, run_shim
from akari.cli.common import configure_logging, console, current_environment, fail, session
from akari.cli.envs import envs_command
from akari.cli.shell import shell_command


app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
    context_settings={"help_option_names": ["-h", "--help"]},
)

app.add_typer(
    envs_command,
    name="envs",
    help="list and manage environments",
    rich_help_panel="Environments",
)
app.add_typer(
    shell_command,
    name="shell",
    help="set up shell integration",
    rich_help_panel="Environments",
)

EnvOption = Annotated[
    Optional[str],
    typer.Option(
        "--env", "-e",
        help="name of the environment. Defaults to the active environment",
    ),
]


@app.callback()
def main(
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="show debug logs",
    ),
):
    """Version and share environments managed by your package manager"""
    try:
        level = "DEBUG" if verbose else get_settings().log_level
    except AkariError as e:
        fail(e)
    configure_logging(level)


@app.command()
def init(
    name: Annotated[str, typer.Argument(help="name of the environment")],
    source: str = typer.Option(
        None,
        help="remote to clone the environment from, a URL or <org>/<repo>",
    ),
    path: str = typer.Option(
        None,
        help="existing directory to track instead of creating one",
    ),
):
    """Create a new environment"""
    with session() as manager:
        env = manager.init(name, source=source, path=path)
    rich.print(f"Initialized environment [bold]{escape(env.name)}[/bold] at {escape(str(env.working_directory))}")


@app.command()
def tag(
    name: Annotated[str, typer.Argument(help="name of the tag")],
    description: str = typer.Option(
        None, "--description", "-d",
        help="description of the snapshot",
    ),
    env: EnvOption = None,
):
    """Take a snapshot of the environment and tag it"""
    with session() as manager:
        env_name = current_environment(manager, env)
        snapshot = manager.tag(env_name, name, description)
    rich.print(f"Tagged [bold]{escape(snapshot.tag)}[/bold] ({snapshot.history_reference[:12]})")


@app.command(name="list")
def list_tags(
    env: EnvOption = None,
):
    """List the tags of an environment, oldest first"""
    with session() as manager:
        env_name = current_environment(manager, env)
        snapshots = manager.list(env_name)
        current = manager.current(env_name)

    table = Table(title=f"Tags of {env_name}")
    table.add_column("", no_wrap=True)
    table.add_column("tag", justify="left", no_wrap=True)
    table.add_column("commit", justify="left", no_wrap=True)
    table.add_column("created", justify="left", no_wrap=True)
    table.add_column("description", justify="left")

    for snapshot in snapshots:
        table.add_row(
            "*" if snapshot.history_reference == current else "",
            escape(snapshot.tag),
            snapshot.history_reference[:12],
            snapshot.created_at.strftime("%Y-%m-%d %H:%M") if snapshot.created_at else "",
            escape(snapshot.description or ""),
        )

    console.print(table)


@app.command()
def checkout(
    ref: Annotated[str, typer.Argument(help="tag to restore, or 'latest'")],
    yes: bool = typer.Option(
        False, "--yes", "-y",
        help="do not ask before discarding untagged changes",
    ),
    env: EnvOption = None,
):
    """Restore the environment directory to a tagged snapshot"""
    with session() as manager:
        env_name = current_environment(manager, env)
        if not yes:
            changes = manager.changes(env_name)
            if changes:
                rich.print(
                    f"[yellow]!!!WARNING!!![/yellow] {len(changes)} untagged change(s) "
                    f"in {escape(env_name)} will be discarded:"
                )
                for status, path in changes[:10]:
                    rich.print(f"  {status} {escape(path)}")
                if len(changes) > 10:
                    rich.print(f"  ... and {len(changes) - 10} more")
                typer.confirm("Continue?", abort=True)
        commit = manager.checkout(env_name, ref)
    rich.print(f"Checked out [bold]{escape(ref)}[/bold] ({commit[:12]})")


@app.command()
def diff(
    ref: Annotated[str, typer.Argument(help="tag to compare against, or 'latest'")],
    env: EnvOption = None,
):
    """Show how the environment directory differs from a snapshot"""
    with session() as manager:
        env_name = current_environment(manager, env)
        changes = manager.diff(env_name, ref)

    if not changes:
        rich.print(f"No changes since {escape(ref)}")
        return
    rich.print(f"diff with {escape(ref)}")
    for status, path in changes:
        rich.print(f"{status} {escape(path)}")


@app.command()
def push(
    tag: Annotated[str, typer.Argument(help="name of the tag to push")],
    env: EnvOption = None,
):
    """Push a tag and its history to the environment's remote"""
    with session() as manager:
        env_name = current_environment(manager, env)
        pushed = manager.push(env_name, tag)
    if pushed:
        rich.print(f"Pushed [bold]{escape(tag)}[/bold]")
    else:
        rich.print(f"[bold]{escape(tag)}[/bold] is already on the remote")


@app.command()
def pull(
    env: EnvOption = None,
):
    """Fetch tags and history from the environment's remote"""
    with session() as manager:
        env_name = current_environment(manager, env)
        result = manager.pull(env_name)

    if not result.changed:
        rich.print("Already up to date")
        return
    for new_tag in result.new_tags:
        rich.print(f"+ {escape(new_tag)}")
    if result.fast_forwarded:
        rich.print(
            "History fast-forwarded. Run `akari checkout latest` to update the directory."
        )


@app.command()
def activate(
    name: Annotated[str, typer.Argument(help="name of the environment")],
    shell: SupportedShells = typer.Option(
        None,
        help="shell to print statements for. Detected from $SHELL by default",
    ),
):
    """Print the statements that activate an environment.

    Meant to be evaluated by the shell, which the hook from `akari shell hook` does.
    """
    shell = shell or detect_shell(os.environ.get("SHELL"))
    with session() as manager:
        script = manager.activate(
            name,
            shell,
            path=os.environ.get("PATH", ""),
            active_directory=os.environ.get("AKARI_ENV_DIR"),
        )
    typer.echo(script, nl=False)


@app.command()
def deactivate(
    shell: SupportedShells = typer.Option(
        None,
        help="shell to print statements for. Detected from $SHELL by default",
    ),
):
    """Print the statements that deactivate the active environment"""
    shell = shell or detect_shell(os.environ.get("SHELL"))
    with session() as manager:
        script = manager.deactivate(
            shell,
            path=os.environ.get("PATH", ""),
            active_directory=os.environ.get("AKARI_ENV_DIR"),
        )
    typer.echo(script, nl=False)


@app.command(
    context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False},
    rich_help_panel="Environments",
)
def shim(
    args: Annotated[List[str], typer.Argument(help="tool to run, followed by its arguments")],
):
    """Called by the shims in the akari bin directory, not by users.

    Refuses to run other environment tools unless AKARI_OVERRIDE_SHIM=1.
    """
    try:
        code = run_shim(args, get_settings().shim_dir)
    except AkariError as e:
        fail(e)
    raise typer.Exit(code=code)
