"""
Test the environment manager end to end, the way the CLI drives it.
"""

import shutil

import pytest

from akari._src.exceptions import (
    AlreadyBound,
    DuplicateName,
    EnvironmentLocked,
    EnvironmentNotFound,
    InvalidPath,
    NoRemoteBound,
    RemoteUnreachable,
)
from akari._src.lock import environment_lock
from akari._src.store import EnvironmentStore
from conftest import git, tree_contents, write_files


def test_tag_list_checkout_scenario(manager, settings):
    env = manager.init("myproj")
    wd = env.working_directory
    assert [e.name for e in manager.envs_list()] == ["myproj"]
    assert wd == (settings.envs_dir / "myproj").resolve()

    write_files(wd, {"pixi.toml": "[dependencies]\npython = '3.11'\n"})
    manager.tag("myproj", "v1", "baseline")
    assert [s.tag for s in manager.list("myproj")] == ["v1"]
    v1_state = tree_contents(wd)

    write_files(wd, {"pixi.toml": "[dependencies]\npython = '3.12'\n", "pixi.lock": "locked"})
    manager.tag("myproj", "v2")
    assert [s.tag for s in manager.list("myproj")] == ["v1", "v2"]
    v2_state = tree_contents(wd)

    manager.checkout("myproj", "v1")
    assert tree_contents(wd) == v1_state
    assert not (wd / "pixi.lock").exists()

    manager.checkout("myproj", "latest")
    assert tree_contents(wd) == v2_state


def test_init_creates_history(manager):
    env = manager.init("myproj")

    assert (env.working_directory / ".git").is_dir()
    assert manager.list("myproj") == []
    assert manager.current("myproj") is None


def test_init_duplicate_name(manager):
    manager.init("myproj")

    with pytest.raises(DuplicateName):
        manager.init("myproj")


def test_init_existing_directory(manager, tmp_path):
    project = tmp_path / "project"
    write_files(project, {"pixi.toml": "existing"})

    env = manager.init("project", path=project)

    assert env.working_directory == project.resolve()
    assert (project / "pixi.toml").read_text() == "existing"
    snapshot = manager.tag("project", "v1")
    assert manager.resolve("project", "latest") == snapshot.history_reference


def test_init_missing_path(manager, tmp_path):
    with pytest.raises(InvalidPath):
        manager.init("project", path=tmp_path / "missing")
    with pytest.raises(EnvironmentNotFound):
        manager.store.lookup("project")


def test_init_refuses_non_empty_default_directory(manager, settings):
    write_files(settings.envs_dir / "myproj", {"stray.txt": "here"})

    with pytest.raises(InvalidPath):
        manager.init("myproj")
    assert not (settings.envs_dir / "myproj" / ".git").exists()


def test_failed_clone_leaves_nothing_behind(manager, settings, tmp_path):
    with pytest.raises(RemoteUnreachable):
        manager.init("broken", source=str(tmp_path / "missing.git"))

    assert not (settings.envs_dir / "broken").exists()
    with pytest.raises(EnvironmentNotFound):
        manager.store.lookup("broken")


def test_failed_clone_into_existing_directory_keeps_it(manager, tmp_path):
    target = tmp_path / "target"
    target.mkdir()

    with pytest.raises(RemoteUnreachable):
        manager.init("broken", source=str(tmp_path / "missing.git"), path=target)

    assert target.is_dir()
    assert not (target / ".git").exists()


def test_registry_survives_reload(manager, settings):
    manager.init("myproj")
    manager.store.flush()

    reloaded = EnvironmentStore.load(settings.registry_path)

    assert reloaded.lookup("myproj") == manager.store.lookup("myproj")


def test_remove_keeps_files_by_default(manager):
    env = manager.init("myproj")

    manager.remove("myproj")

    assert env.working_directory.is_dir()
    assert manager.envs_list() == []


def test_remove_with_files(manager):
    env = manager.init("myproj")

    manager.remove("myproj", delete_files=True)

    assert not env.working_directory.exists()


def test_missing_working_directory(manager):
    env = manager.init("myproj")
    shutil.rmtree(env.working_directory)

    with pytest.raises(InvalidPath):
        manager.tag("myproj", "v1")


def test_attach_and_detach_remote(manager, bare_remote):
    env = manager.init("myproj")

    manager.attach_remote("myproj", str(bare_remote))
    assert git(env.working_directory, "remote", "get-url", "origin") == str(bare_remote)
    with pytest.raises(AlreadyBound):
        manager.attach_remote("myproj", str(bare_remote))

    manager.detach_remote("myproj")
    assert manager.store.lookup("myproj").remote_url is None
    assert git(env.working_directory, "remote") == ""
    with pytest.raises(NoRemoteBound):
        manager.detach_remote("myproj")


def test_attach_remote_shorthand(manager):
    manager.init("myproj")

    env = manager.attach_remote("myproj", "org/myproj")

    assert env.remote_url == "git@github.com:org/myproj.git"


def test_concurrent_operation_is_refused(manager):
    env = manager.init("myproj")
    write_files(env.working_directory, {"a.txt": "1"})

    with environment_lock(env.working_directory):
        with pytest.raises(EnvironmentLocked):
            manager.tag("myproj", "v1")

    assert manager.tag("myproj", "v1").tag == "v1"


def test_diff_through_manager(manager):
    env = manager.init("myproj")
    write_files(env.working_directory, {"a.txt": "1"})
    manager.tag("myproj", "v1")
    write_files(env.working_directory, {"a.txt": "2"})

    assert manager.diff("myproj", "latest") == [("M", "a.txt")]


def test_activate_unknown_environment(manager):
    with pytest.raises(EnvironmentNotFound):
        manager.activate("nope")


def test_changes_since_last_tag(manager):
    env = manager.init("myproj")
    assert manager.changes("myproj") == []

    write_files(env.working_directory, {"a.txt": "1"})
    manager.tag("myproj", "v1")
    assert manager.changes("myproj") == []

    write_files(env.working_directory, {"b.txt": "new"})
    assert manager.changes("myproj") == [("A", "b.txt")]


def test_changes_after_pull_report_local_files(manager, bare_remote):
    pub = manager.init("pub")
    write_files(pub.working_directory, {"pixi.toml": "v1"})
    manager.tag("pub", "v1")
    manager.attach_remote("pub", str(bare_remote))
    manager.push("pub", "v1")

    local = manager.init("local")
    write_files(local.working_directory, {"precious.txt": "keep me"})
    manager.attach_remote("local", str(bare_remote))
    manager.pull("local")

    assert sorted(manager.changes("local")) == [("A", "precious.txt"), ("D", "pixi.toml")]


def test_init_refuses_directory_of_another_environment(manager, tmp_path):
    shared = tmp_path / "shared"
    shared.mkdir()
    manager.init("a", path=shared)

    with pytest.raises(InvalidPath):
        manager.init("b", path=shared)
    with pytest.raises(InvalidPath):
        manager.init("c", path=tmp_path)

    assert [e.name for e in manager.envs_list()] == ["a"]
    assert (shared / ".git").is_dir()
    assert not (tmp_path / ".git").exists()


def test_init_refuses_directory_inside_another_environment(manager):
    outer = manager.init("outer")
    inner = outer.working_directory / "inner"
    inner.mkdir()

    with pytest.raises(InvalidPath):
        manager.init("inner", path=inner)
    assert not (inner / ".git").exists()
