import os
import subprocess
from pathlib import Path

import pytest

from akari._src.config import Settings
from akari._src.manager import EnvironmentManager
from akari._src.store import EnvironmentStore


def write_files(directory: Path, files: dict) -> None:
    for name, content in files.items():
        path = directory / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)


def tree_contents(directory: Path) -> dict:
    """Every file below `directory` except git metadata, by relative path"""
    contents = {}
    for path in sorted(Path(directory).rglob("*")):
        relative = path.relative_to(directory)
        if relative.parts[0] == ".git" or not path.is_file():
            continue
        contents[str(relative)] = path.read_bytes()
    return contents


def refs(directory: Path) -> str:
    return subprocess.run(
        ["git", "for-each-ref", "--format=%(objectname) %(refname)"],
        cwd=directory, capture_output=True, text=True, check=True,
    ).stdout


def git(directory: Path, *args: str, **kwargs) -> str:
    return subprocess.run(
        ["git", *args],
        cwd=directory, capture_output=True, text=True, check=True,
        env=dict(
            os.environ,
            GIT_AUTHOR_NAME="test",
            GIT_AUTHOR_EMAIL="test@example.com",
            GIT_COMMITTER_NAME="test",
            GIT_COMMITTER_EMAIL="test@example.com",
        ),
        **kwargs,
    ).stdout.strip()


@pytest.fixture
def settings(tmp_path, monkeypatch):
    for var in ("AKARI_ENV", "AKARI_ENV_DIR", "AKARI_HOME", "AKARI_BRANCH"):
        monkeypatch.delenv(var, raising=False)
    return Settings(home=tmp_path / "akari-home", lock_timeout=0.2)


@pytest.fixture
def store(settings):
    return EnvironmentStore.load(settings.registry_path)


@pytest.fixture
def manager(store, settings):
    return EnvironmentManager(store, settings)


@pytest.fixture
def bare_remote(tmp_path):
    """An empty bare repository standing in for an ssh remote"""
    path = tmp_path / "remote.git"
    subprocess.run(["git", "init", "-q", "--bare", str(path)], check=True)
    subprocess.run(["git", "symbolic-ref", "HEAD", "refs/heads/main"], cwd=path, check=True)
    return path
