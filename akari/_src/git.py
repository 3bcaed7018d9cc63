"""Thin wrapper around the `git` executable.

akari never reimplements git; every history operation is a git plumbing
command run in the environment's working directory.
"""
import logging
import os
import subprocess
from pathlib import Path
from typing import Dict, List, Optional

from akari._src.config import Settings
from akari._src.exceptions import (
    AkariError,
    AuthenticationFailed,
    DivergentHistory,
    GitError,
    RemoteUnreachable,
)


logger = logging.getLogger(__name__)

_AUTH_MARKERS = (
    "permission denied (publickey",
    "authentication failed",
    "host key verification failed",
    "could not read username",
    "no supported authentication methods",
)

# the remote answered but refused a ref update, e.g. its branch moved after
# we last listed it
_REJECTED_MARKERS = (
    "[rejected]",
    "non-fast-forward",
    "fetch first",
    "updates were rejected",
)


class Git:
    def __init__(self, settings: Settings):
        self.settings = settings

    def env(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        env = dict(os.environ)
        env.update({
            "GIT_AUTHOR_NAME": self.settings.author_name,
            "GIT_AUTHOR_EMAIL": self.settings.author_email,
            "GIT_COMMITTER_NAME": self.settings.author_name,
            "GIT_COMMITTER_EMAIL": self.settings.author_email,
            "GIT_TERMINAL_PROMPT": "0",
            "LC_ALL": "C",
        })
        # authentication is left to ssh-agent; never block on a prompt
        env.setdefault("GIT_SSH_COMMAND", "ssh -o BatchMode=yes")
        if extra:
            env.update(extra)
        return env

    def run(
        self,
        args: List[str],
        cwd: Path,
        input: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        check: bool = True,
    ) -> subprocess.CompletedProcess:
        command = [self.settings.git] + args
        logger.debug("running %s in %s", " ".join(command), cwd)
        try:
            result = subprocess.run(
                command,
                cwd=cwd,
                input=input,
                env=self.env(env),
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError:
            raise AkariError(
                f"Could not run `{self.settings.git}`. Is git installed and on your PATH?"
            )
        if check and result.returncode != 0:
            raise GitError(command, cwd, result.stderr.strip())
        return result

    def output(self, args: List[str], cwd: Path, **kwargs) -> str:
        return self.run(args, cwd, **kwargs).stdout.strip()

    def rev_parse(self, ref: str, cwd: Path) -> Optional[str]:
        """Resolve `ref` to a commit id, or None if it does not name a commit"""
        result = self.run(
            ["rev-parse", "-q", "--verify", f"{ref}^{{commit}}"], cwd, check=False
        )
        if result.returncode != 0:
            return None
        return result.stdout.strip()

    def has_object(self, oid: str, cwd: Path) -> bool:
        return self.run(["cat-file", "-e", f"{oid}^{{commit}}"], cwd, check=False).returncode == 0

    def is_ancestor(self, ancestor: str, descendant: str, cwd: Path) -> bool:
        result = self.run(
            ["merge-base", "--is-ancestor", ancestor, descendant], cwd, check=False
        )
        if result.returncode not in (0, 1):
            raise GitError(["merge-base", "--is-ancestor", ancestor, descendant], cwd, result.stderr.strip())
        return result.returncode == 0

    def update_refs(self, commands: List[str], cwd: Path) -> None:
        """Apply ref updates as a single transaction: all land or none do"""
        if not commands:
            return
        self.run(["update-ref", "--stdin"], cwd, input="".join(f"{c}\n" for c in commands))

    def remote(self, args: List[str], cwd: Path, url: str) -> subprocess.CompletedProcess:
        """Run a command that talks to a remote, translating transport failures"""
        result = self.run(args, cwd, check=False)
        if result.returncode != 0:
            raise transport_error(url, result.stderr.strip())
        return result


def transport_error(url: str, err: str) -> AkariError:
    lowered = err.lower()
    if any(marker in lowered for marker in _REJECTED_MARKERS):
        return DivergentHistory(
            f"`{url}` refused the update because its history changed in the meantime. "
            f"Run `akari pull` and try again.\nError message: {err}"
        )
    if any(marker in lowered for marker in _AUTH_MARKERS):
        return AuthenticationFailed(url, err)
    return RemoteUnreachable(url, err)
