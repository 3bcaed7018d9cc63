import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, NoReturn, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from akari._src.config import get_settings
from akari._src.exceptions import AkariError
from akari._src.manager import EnvironmentManager
from akari._src.store import EnvironmentStore


console = Console()
err_console = Console(stderr=True)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


@contextmanager
def session() -> Iterator[EnvironmentManager]:
    """Run one akari operation against the registry.

    The registry is loaded up front and only written back if the operation
    succeeds. Any akari error is reported and turned into exit code 1.
    """
    try:
        settings = get_settings()
        store = EnvironmentStore.load(settings.registry_path)
        yield EnvironmentManager(store, settings)
        store.flush()
    except AkariError as e:
        fail(e)


def fail(e: AkariError) -> NoReturn:
    """Report an akari error and exit with code 1"""
    err_console.print(f"[bold red]error:[/bold red] {escape(e.msg)}")
    raise typer.Exit(code=1)


def current_environment(manager: EnvironmentManager, name: Optional[str]) -> str:
    """Name of the environment a command applies to.

    In order: the --env option, the active environment, then the registered
    environment containing the current directory.
    """
    if name:
        return name
    active = os.environ.get("AKARI_ENV")
    if active:
        return active
    env = manager.store.find_by_path(Path.cwd())
    if env is not None:
        return env.name
    raise AkariError(
        "No environment selected. Pass --env, activate one with `akari activate NAME`, "
        "or run the command inside an environment directory."
    )
