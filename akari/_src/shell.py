# Activation never touches the environment of the running process. Each
# activation function here renders text that the calling shell evaluates, e.g.
#
#     eval "$(akari activate myproj)"
#
# which is what the function installed by `akari shell hook` does.
import logging
import os
import shlex
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from akari._src.constants import ENV_BIN_DIR, OVERRIDE_SHIM_VAR, POSIX_HOOK, SHELL_RC_BLOCK, SupportedShells
from akari._src.exceptions import AkariError


logger = logging.getLogger(__name__)

FISH_HOOK = """
function akari
    if contains -- "$argv[1]" activate deactivate
        command akari $argv | source
    else
        command akari $argv
    end
end
"""

_RC_FILES = {
    SupportedShells.BASH: ".bashrc",
    SupportedShells.ZSH: ".zshrc",
    SupportedShells.FISH: ".config/fish/conf.d/akari.fish",
}


def detect_shell(shell_path: Optional[str]) -> SupportedShells:
    """Pick the shell flavour from a path such as the value of $SHELL"""
    name = Path(shell_path or "").name.lower()
    try:
        return SupportedShells(name)
    except ValueError:
        return SupportedShells.BASH


def strip_path(path: str, entry: str) -> str:
    """Remove every occurrence of `entry` from a PATH-style string"""
    return os.pathsep.join(item for item in path.split(os.pathsep) if item and item != entry)


def bin_dir(working_directory: Path) -> str:
    return str(Path(working_directory) / ENV_BIN_DIR)


def _render(shell: SupportedShells, exports: List[Tuple[str, str]], unsets: List[str]) -> str:
    lines = []
    for name in unsets:
        if shell == SupportedShells.FISH:
            lines.append(f"set -e {name}")
        else:
            lines.append(f"unset {name}")
    for name, value in exports:
        if shell == SupportedShells.FISH:
            if name == "PATH":
                value_text = " ".join(shlex.quote(p) for p in value.split(os.pathsep) if p)
            else:
                value_text = shlex.quote(value)
            lines.append(f"set -gx {name} {value_text}")
        else:
            lines.append(f"export {name}={shlex.quote(value)}")
    return "\n".join(lines) + "\n"


def activate_script(
    name: str,
    working_directory: Path,
    shell: SupportedShells = SupportedShells.BASH,
    path: str = "",
    active_directory: Optional[str] = None,
) -> str:
    """Render the statements that activate an environment.

    Parameters
    ----------
    name : str
        Environment name
    working_directory : Path
        Working directory of the environment
    shell : SupportedShells
        Flavour of the statements
    path : str
        Current value of PATH in the calling shell
    active_directory : str | None
        Working directory of an environment that is already active, whose
        binaries are taken off PATH first
    """
    if active_directory:
        path = strip_path(path, bin_dir(Path(active_directory)))
    env_bin = bin_dir(working_directory)
    path = os.pathsep.join([env_bin, strip_path(path, env_bin)]).rstrip(os.pathsep)
    return _render(
        shell,
        exports=[
            ("AKARI_ENV", name),
            ("AKARI_ENV_DIR", str(working_directory)),
            ("PATH", path),
        ],
        unsets=[],
    )


def deactivate_script(
    shell: SupportedShells = SupportedShells.BASH,
    path: str = "",
    active_directory: Optional[str] = None,
) -> str:
    """Render the statements that undo `activate_script`"""
    exports = []
    if active_directory:
        exports.append(("PATH", strip_path(path, bin_dir(Path(active_directory)))))
    return _render(shell, exports=exports, unsets=["AKARI_ENV", "AKARI_ENV_DIR"])


def hook_script(shell: SupportedShells = SupportedShells.BASH) -> str:
    if shell == SupportedShells.FISH:
        return FISH_HOOK
    return POSIX_HOOK


def update_shell_config(shell: SupportedShells, home: Path) -> Tuple[Path, bool]:
    """Add the akari hook to the shell's startup file, once.

    Returns
    -------
    tuple[Path, bool]
        The startup file and whether it was modified
    """
    rc_file = Path(home) / _RC_FILES[shell]
    if shell == SupportedShells.FISH:
        block = "akari shell hook --shell fish | source\n"
    else:
        block = SHELL_RC_BLOCK

    try:
        contents = rc_file.read_text() if rc_file.exists() else ""
    except OSError as e:
        raise AkariError(f"Could not read {rc_file} to check the existing shell config: {e}")
    if block in contents:
        return rc_file, False

    try:
        rc_file.parent.mkdir(parents=True, exist_ok=True)
        with rc_file.open("a") as f:
            f.write(block)
    except OSError as e:
        raise AkariError(f"Unable to write akari shell config to {rc_file}: {e}")
    logger.info("added akari hook to %s", rc_file)
    return rc_file, True


def run_shim(args: List[str], shim_dir: Path, environ: Optional[Dict[str, str]] = None) -> int:
    """Run a tool that was called through an akari shim.

    Shims in `shim_dir` shadow other environment managers (pip, conda, ...)
    so that environments are only changed through akari. The tool runs
    only when AKARI_OVERRIDE_SHIM=1, with `shim_dir` taken off PATH so the
    real executable is found.

    Returns
    -------
    int
        Exit code of the tool
    """
    environ = dict(os.environ if environ is None else environ)
    if not args:
        raise AkariError("No command given to run.")
    if environ.get(OVERRIDE_SHIM_VAR, "").strip() != "1":
        raise AkariError(
            f"Unable to run `{' '.join(args)}`; use akari for environment management. "
            f"Set {OVERRIDE_SHIM_VAR}=1 to run the command anyway."
        )

    environ["PATH"] = strip_path(environ.get("PATH", ""), str(shim_dir))
    logger.debug("running %s outside the akari shims", args[0])
    try:
        return subprocess.run(args, env=environ).returncode
    except FileNotFoundError:
        raise AkariError(f"Could not find `{args[0]}` on PATH once the akari shims are removed.")
