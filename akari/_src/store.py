import datetime
import logging
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import ValidationError

from akari._src.exceptions import (
    AkariError,
    AlreadyBound,
    DuplicateName,
    EnvironmentNotFound,
    InvalidName,
    InvalidPath,
    NoRemoteBound,
)
from akari._src.models.environment import Environment, EnvironmentRecord, Registry
from akari._src.utils import atomic_write_text, is_relative_to, is_valid_name


logger = logging.getLogger(__name__)


class EnvironmentStore:
    """Registry mapping environment names to working directories and remotes.

    The registry is loaded once with `load`, mutated in memory, and written
    back with `flush`. Callers own the handle and pass it around explicitly.
    """

    @classmethod
    def load(cls, path: Path):
        path = Path(path)
        if path.exists():
            try:
                raw = yaml.safe_load(path.read_text()) or {}
                registry = Registry.model_validate(raw)
            except (yaml.YAMLError, ValidationError) as e:
                raise AkariError(f"Could not read the environment registry at `{path}`:\n{e}")
        else:
            registry = Registry()
        logger.debug("loaded %d environment(s) from %s", len(registry.environments), path)
        return cls(registry=registry, path=path)

    def __init__(self, registry: Registry, path: Path):
        self.registry = registry
        self.path = path
        self.dirty = False

    def flush(self) -> None:
        if not self.dirty:
            return
        atomic_write_text(
            self.path,
            yaml.safe_dump(self.registry.model_dump(mode="json"), sort_keys=True),
        )
        self.dirty = False
        logger.debug("wrote registry to %s", self.path)

    def check_available(self, name: str) -> None:
        if not is_valid_name(name):
            raise InvalidName(
                f"'{name}' is not a valid environment name. Use letters, digits, '.', '_' and '-'."
            )
        if name in self.registry.environments:
            raise DuplicateName(name)

    def check_path_available(self, working_directory: str | Path) -> None:
        """Working directories are never shared by, or nested in, two environments"""
        for env in self.list():
            if is_relative_to(working_directory, env.working_directory) or is_relative_to(
                env.working_directory, working_directory
            ):
                raise InvalidPath(
                    Path(working_directory).resolve(),
                    f"overlaps the working directory of environment '{env.name}'",
                )

    def register(self, name: str, working_directory: str | Path, remote_url: Optional[str] = None) -> Environment:
        self.check_available(name)

        working_directory = Path(working_directory)
        if not working_directory.is_dir():
            raise InvalidPath(working_directory)
        working_directory = working_directory.resolve()
        self.check_path_available(working_directory)

        record = EnvironmentRecord(
            working_directory=working_directory,
            remote_url=remote_url,
            created_at=datetime.datetime.now(datetime.UTC),
        )
        self.registry.environments[name] = record
        self.dirty = True
        logger.info("registered environment %s at %s", name, working_directory)
        return record.to_environment(name)

    def unregister(self, name: str) -> Environment:
        env = self.lookup(name)
        del self.registry.environments[name]
        self.dirty = True
        logger.info("unregistered environment %s", name)
        return env

    def lookup(self, name: str) -> Environment:
        record = self.registry.environments.get(name)
        if record is None:
            raise EnvironmentNotFound(name)
        return record.to_environment(name)

    def list(self) -> List[Environment]:
        return [
            self.registry.environments[name].to_environment(name)
            for name in sorted(self.registry.environments)
        ]

    def find_by_path(self, path: str | Path) -> Optional[Environment]:
        """Return the environment whose working directory contains `path`"""
        matches = [
            env for env in self.list()
            if is_relative_to(path, env.working_directory)
        ]
        if not matches:
            return None
        # a hand-edited registry can still nest environments; the innermost wins
        return max(matches, key=lambda env: len(env.working_directory.parts))

    def attach_remote(self, name: str, url: str) -> Environment:
        record = self._record(name)
        if record.remote_url is not None:
            raise AlreadyBound(name, record.remote_url)
        record.remote_url = url
        self.dirty = True
        logger.info("attached remote %s to %s", url, name)
        return record.to_environment(name)

    def detach_remote(self, name: str) -> Environment:
        record = self._record(name)
        if record.remote_url is None:
            raise NoRemoteBound(name)
        record.remote_url = None
        self.dirty = True
        logger.info("detached remote from %s", name)
        return record.to_environment(name)

    def _record(self, name: str) -> EnvironmentRecord:
        record = self.registry.environments.get(name)
        if record is None:
            raise EnvironmentNotFound(name)
        return record
