import logging
import shutil
from pathlib import Path
from typing import List, Optional, Tuple

from akari._src import shell
from akari._src.config import Settings
from akari._src.constants import SupportedShells
from akari._src.exceptions import AlreadyBound, InvalidPath, NoRemoteBound
from akari._src.git import Git
from akari._src.lock import environment_lock
from akari._src.models.environment import Environment, PullResult, Snapshot
from akari._src.remote import RemoteSynchronizer, expand_remote
from akari._src.resolver import TagResolver
from akari._src.snapshot import SnapshotBackend
from akari._src.store import EnvironmentStore


logger = logging.getLogger(__name__)


class EnvironmentManager:
    """Entry point for every akari operation.

    Holds no state of its own beyond the registry handle it is given; the
    caller loads the store before and flushes it after each operation.
    """

    def __init__(self, store: EnvironmentStore, settings: Settings):
        self.store = store
        self.settings = settings
        self.git = Git(settings)
        self.backend = SnapshotBackend(self.git, settings)
        self.resolver = TagResolver(self.backend)
        self.remote = RemoteSynchronizer(self.git, self.backend, settings)

    def environment(self, name: str) -> Environment:
        env = self.store.lookup(name)
        if not env.working_directory.is_dir():
            raise InvalidPath(
                env.working_directory,
                f"no longer exists; remove '{name}' with `akari envs rm {name}`",
            )
        return env

    def init(self, name: str, source: Optional[str] = None, path: Optional[str | Path] = None) -> Environment:
        """Create and register a new environment.

        Parameters
        ----------
        name : str
            Name of the new environment
        source : str | None
            Remote to clone the history from. The remote stays attached.
        path : str | Path | None
            Existing directory to track instead of a new directory under
            the akari home
        """
        self.store.check_available(name)

        if path is not None:
            working_directory = Path(path).resolve()
            if not working_directory.is_dir():
                raise InvalidPath(working_directory)
            if source is not None and any(working_directory.iterdir()):
                raise InvalidPath(working_directory, "must be empty to clone a remote into it")
        else:
            working_directory = (self.settings.envs_dir / name).resolve()
            if working_directory.exists() and any(working_directory.iterdir()):
                raise InvalidPath(working_directory, "already exists and is not empty")
        self.store.check_path_available(working_directory)

        created = not working_directory.exists()
        had_history = self.backend.is_tracked(working_directory)
        working_directory.mkdir(parents=True, exist_ok=True)

        url = None
        try:
            if source is not None:
                url = expand_remote(source, self.settings.default_domain)
                logger.info("cloning %s into %s", url, working_directory)
                self.remote.clone(url, working_directory)
            else:
                self.backend.ensure_tracked(working_directory)
            env = self.store.register(name, working_directory, remote_url=url)
        except Exception:
            if created:
                shutil.rmtree(working_directory, ignore_errors=True)
            elif not had_history:
                shutil.rmtree(working_directory / ".git", ignore_errors=True)
            raise
        return env

    def tag(self, name: str, tag_name: str, description: Optional[str] = None) -> Snapshot:
        env = self.environment(name)
        with self._locked(env):
            return self.backend.snapshot(env.working_directory, tag_name, description)

    def list(self, name: str) -> List[Snapshot]:
        env = self.environment(name)
        return self.resolver.order(env.working_directory, self.backend.list_tags(env.working_directory))

    def current(self, name: str) -> Optional[str]:
        return self.backend.current(self.environment(name).working_directory)

    def resolve(self, name: str, ref: str) -> str:
        return self.resolver.resolve(self.environment(name).working_directory, ref)

    def checkout(self, name: str, ref: str) -> str:
        """Restore a snapshot, discarding untagged changes in the directory"""
        env = self.environment(name)
        with self._locked(env):
            commit = self.resolver.resolve(env.working_directory, ref)
            return self.backend.checkout(env.working_directory, commit)

    def diff(self, name: str, ref: str) -> List[Tuple[str, str]]:
        env = self.environment(name)
        commit = self.resolver.resolve(env.working_directory, ref)
        return self.backend.diff(env.working_directory, commit)

    def changes(self, name: str) -> List[Tuple[str, str]]:
        """Untagged changes a checkout would discard"""
        return self.backend.pending_changes(self.environment(name).working_directory)

    def push(self, name: str, tag_name: str) -> bool:
        env = self.environment(name)
        with self._locked(env):
            return self.remote.push(env, tag_name)

    def pull(self, name: str) -> PullResult:
        env = self.environment(name)
        with self._locked(env):
            return self.remote.pull(env)

    def envs_list(self) -> List[Environment]:
        return self.store.list()

    def remove(self, name: str, delete_files: bool = False) -> Environment:
        env = self.store.lookup(name)
        if delete_files and env.working_directory.exists():
            shutil.rmtree(env.working_directory)
            logger.info("deleted %s", env.working_directory)
        return self.store.unregister(name)

    def attach_remote(self, name: str, source: str) -> Environment:
        env = self.environment(name)
        if env.remote_url is not None:
            raise AlreadyBound(name, env.remote_url)
        url = expand_remote(source, self.settings.default_domain)
        self.remote.bind(env.working_directory, url)
        return self.store.attach_remote(name, url)

    def detach_remote(self, name: str) -> Environment:
        env = self.environment(name)
        if env.remote_url is None:
            raise NoRemoteBound(name)
        self.remote.unbind(env.working_directory)
        return self.store.detach_remote(name)

    def activate(
        self,
        name: str,
        shell_name: SupportedShells = SupportedShells.BASH,
        path: str = "",
        active_directory: Optional[str] = None,
    ) -> str:
        env = self.environment(name)
        return shell.activate_script(
            env.name, env.working_directory, shell_name, path=path, active_directory=active_directory
        )

    def deactivate(
        self,
        shell_name: SupportedShells = SupportedShells.BASH,
        path: str = "",
        active_directory: Optional[str] = None,
    ) -> str:
        return shell.deactivate_script(shell_name, path=path, active_directory=active_directory)

    def _locked(self, env: Environment):
        return environment_lock(env.working_directory, timeout_s=self.settings.lock_timeout)
