import rich
import typer
from rich.markup import escape
from rich.table import Table
from typing_extensions import Annotated

from akari.cli.common import console, session


envs_command = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
    context_settings={"help_option_names": ["-h", "--help"]},
)

remote_command = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
    context_settings={"help_option_names": ["-h", "--help"]},
)

envs_command.add_typer(
    remote_command,
    name="remote",
    help="attach or detach the remote of an environment",
)


@envs_command.command(name="ls")
def ls():
    """List all environments"""
    with session() as manager:
        environments = manager.envs_list()

    table = Table(title="Environments")
    table.add_column("name", justify="left", no_wrap=True)
    table.add_column("directory", justify="left", no_wrap=True)
    table.add_column("remote", justify="left", no_wrap=True)

    for env in environments:
        table.add_row(
            escape(env.name),
            escape(str(env.working_directory)),
            escape(env.remote_url or ""),
        )

    console.print(table)


@envs_command.command(name="rm")
def rm(
    name: Annotated[str, typer.Argument(help="name of the environment")],
    delete_files: bool = typer.Option(
        False, "--delete-files",
        help="also delete the environment directory and its history",
    ),
):
    """Forget an environment"""
    if delete_files:
        typer.confirm(f"Delete the directory of '{name}' and all of its snapshots?", abort=True)
    with session() as manager:
        env = manager.remove(name, delete_files=delete_files)
    rich.print(f"Removed [bold]{escape(env.name)}[/bold]")


@remote_command.command(name="add")
def add(
    name: Annotated[str, typer.Argument(help="name of the environment")],
    url: Annotated[str, typer.Argument(help="ssh URL or <org>/<repo> of the remote")],
):
    """Attach a remote to an environment"""
    with session() as manager:
        env = manager.attach_remote(name, url)
    rich.print(f"[bold]{escape(env.name)}[/bold] now syncs with {escape(env.remote_url)}")


@remote_command.command(name="rm")
def remove(
    name: Annotated[str, typer.Argument(help="name of the environment")],
):
    """Detach the remote of an environment"""
    with session() as manager:
        env = manager.detach_remote(name)
    rich.print(f"[bold]{escape(env.name)}[/bold] no longer has a remote")
