"""
Test the statements printed for shell activation.
"""

import os
from pathlib import Path

import pytest

from akari._src.constants import SHELL_RC_BLOCK, SupportedShells
from akari._src.exceptions import AkariError
from akari._src.shell import (
    activate_script,
    deactivate_script,
    detect_shell,
    hook_script,
    run_shim,
    strip_path,
    update_shell_config,
)


ENV_DIR = Path("/home/user/.akari/envs/myproj")
ENV_BIN = "/home/user/.akari/envs/myproj/.pixi/envs/default/bin"
OTHER_DIR = "/home/user/.akari/envs/other"
OTHER_BIN = "/home/user/.akari/envs/other/.pixi/envs/default/bin"


def test_activate_bash():
    script = activate_script("myproj", ENV_DIR, SupportedShells.BASH, path="/usr/bin:/bin")

    assert script.splitlines() == [
        "export AKARI_ENV=myproj",
        f"export AKARI_ENV_DIR={ENV_DIR}",
        f"export PATH={ENV_BIN}:/usr/bin:/bin",
    ]


def test_activate_replaces_active_environment():
    script = activate_script(
        "myproj",
        ENV_DIR,
        SupportedShells.ZSH,
        path=f"{OTHER_BIN}:/usr/bin",
        active_directory=OTHER_DIR,
    )

    assert f"export PATH={ENV_BIN}:/usr/bin" in script.splitlines()
    assert OTHER_BIN not in script


def test_activate_twice_does_not_duplicate_path():
    script = activate_script("myproj", ENV_DIR, path=f"{ENV_BIN}:/usr/bin", active_directory=str(ENV_DIR))

    assert script.count(ENV_BIN) == 1


def test_activate_quotes_values():
    script = activate_script("myproj", Path("/tmp/with space"), path="/usr/bin")

    assert "export AKARI_ENV_DIR='/tmp/with space'" in script.splitlines()


def test_activate_fish():
    script = activate_script("myproj", ENV_DIR, SupportedShells.FISH, path="/usr/bin:/bin")

    assert script.splitlines() == [
        "set -gx AKARI_ENV myproj",
        f"set -gx AKARI_ENV_DIR {ENV_DIR}",
        f"set -gx PATH {ENV_BIN} /usr/bin /bin",
    ]


def test_deactivate_bash():
    script = deactivate_script(SupportedShells.BASH, path=f"{ENV_BIN}:/usr/bin", active_directory=str(ENV_DIR))

    assert script.splitlines() == [
        "unset AKARI_ENV",
        "unset AKARI_ENV_DIR",
        "export PATH=/usr/bin",
    ]


def test_deactivate_without_active_environment():
    script = deactivate_script(SupportedShells.FISH, path="/usr/bin")

    assert script.splitlines() == ["set -e AKARI_ENV", "set -e AKARI_ENV_DIR"]


def test_strip_path():
    assert strip_path(f"/a:{ENV_BIN}:/b:{ENV_BIN}", ENV_BIN) == "/a:/b"
    assert strip_path("", ENV_BIN) == ""


@pytest.mark.parametrize(
    "shell_path, expected",
    [
        ("/bin/bash", SupportedShells.BASH),
        ("/usr/bin/zsh", SupportedShells.ZSH),
        ("/usr/local/bin/fish", SupportedShells.FISH),
        ("/bin/tcsh", SupportedShells.BASH),
        (None, SupportedShells.BASH),
    ],
)
def test_detect_shell(shell_path, expected):
    assert detect_shell(shell_path) == expected


def test_hook_script():
    assert "command akari" in hook_script(SupportedShells.BASH)
    assert "| source" in hook_script(SupportedShells.FISH)


def test_update_shell_config_is_idempotent(tmp_path):
    (tmp_path / ".bashrc").write_text("alias ll='ls -l'\n")

    rc_file, changed = update_shell_config(SupportedShells.BASH, tmp_path)
    assert changed
    assert rc_file == tmp_path / ".bashrc"

    _, changed = update_shell_config(SupportedShells.BASH, tmp_path)
    assert not changed
    assert rc_file.read_text() == "alias ll='ls -l'\n" + SHELL_RC_BLOCK


def test_update_shell_config_fish(tmp_path):
    rc_file, changed = update_shell_config(SupportedShells.FISH, tmp_path)

    assert changed
    assert rc_file == tmp_path / ".config" / "fish" / "conf.d" / "akari.fish"
    assert "akari shell hook --shell fish | source" in rc_file.read_text()


def test_shim_refuses_without_override(tmp_path):
    with pytest.raises(AkariError, match="AKARI_OVERRIDE_SHIM=1"):
        run_shim(["pip", "install", "numpy"], tmp_path / "bin", environ={"PATH": os.environ["PATH"]})


def test_shim_runs_tool_without_shim_dir_on_path(tmp_path):
    shim_dir = tmp_path / "bin"
    out = tmp_path / "path.txt"
    environ = {
        "AKARI_OVERRIDE_SHIM": "1",
        "PATH": os.pathsep.join([str(shim_dir), os.environ["PATH"]]),
    }

    code = run_shim(["sh", "-c", f'echo "$PATH" > {out}; exit 3'], shim_dir, environ=environ)

    assert code == 3
    assert str(shim_dir) not in out.read_text().split(os.pathsep)


def test_shim_missing_tool(tmp_path):
    environ = {"AKARI_OVERRIDE_SHIM": "1", "PATH": str(tmp_path)}

    with pytest.raises(AkariError):
        run_shim(["no-such-tool-akari"], tmp_path / "bin", environ=environ)
