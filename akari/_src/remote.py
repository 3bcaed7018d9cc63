import logging
import re
from pathlib import Path
from typing import Dict, Optional, Tuple

from akari._src.config import Settings
from akari._src.constants import INCOMING_REFS
from akari._src.exceptions import DivergentHistory, NoRemoteBound, TagAlreadyExists, UnknownTag
from akari._src.git import Git
from akari._src.models.environment import Environment, PullResult
from akari._src.snapshot import SnapshotBackend


logger = logging.getLogger(__name__)

_SHORTHAND_RE = re.compile(r"^(?P<org>[-\w.]{1,100})/(?P<repo>[-\w.]{1,100})$")


def expand_remote(source: str, default_domain: str = "github.com") -> str:
    """Expand an `org/repo` shorthand into an ssh URL.

    Anything else (ssh URLs, `scp`-style addresses, local paths) is
    returned unchanged.
    """
    match = _SHORTHAND_RE.match(source)
    if match is None or Path(source).exists():
        return source
    repo = match.group("repo")
    if repo.endswith(".git"):
        repo = repo[:-4]
    return f"git@{default_domain}:{match.group('org')}/{repo}.git"


class RemoteSynchronizer:
    """Moves snapshot history between an environment and its remote.

    Nothing is ever merged: the environment branch is only fast-forwarded,
    and any disagreement between local and remote history is reported as
    `DivergentHistory` before local refs are touched.
    """

    def __init__(self, git: Git, backend: SnapshotBackend, settings: Settings):
        self.git = git
        self.backend = backend
        self.settings = settings

    @property
    def remote_name(self) -> str:
        return self.settings.remote_name

    def bind(self, working_directory: Path, url: str) -> None:
        working_directory = Path(working_directory)
        existing = self.git.run(["remote", "get-url", self.remote_name], working_directory, check=False)
        if existing.returncode == 0:
            self.git.run(["remote", "set-url", self.remote_name, url], working_directory)
        else:
            self.git.run(["remote", "add", self.remote_name, url], working_directory)

    def unbind(self, working_directory: Path) -> None:
        self.git.run(["remote", "remove", self.remote_name], Path(working_directory), check=False)

    def clone(self, url: str, working_directory: Path) -> Optional[str]:
        """Create the history of `working_directory` from a remote.

        Returns
        -------
        str | None
            The head the working directory was checked out to, None if the
            remote has no history yet
        """
        working_directory = Path(working_directory)
        self.git.remote(
            ["clone", "-q", "--no-checkout", "--origin", self.remote_name, url, str(working_directory)],
            working_directory.parent,
            url,
        )
        self.git.run(["symbolic-ref", "HEAD", self.backend.branch_ref], working_directory)
        remote_head = self.git.rev_parse(
            f"refs/remotes/{self.remote_name}/{self.settings.branch}", working_directory
        )
        if remote_head is None:
            logger.info("cloned an empty history from %s", url)
            return None
        self.git.update_refs([f"update {self.backend.branch_ref} {remote_head}"], working_directory)
        self.backend.checkout(working_directory, remote_head)
        return remote_head

    def push(self, environment: Environment, tag_name: str) -> bool:
        """Send a tag and the history behind it to the remote.

        Returns
        -------
        bool
            False if the remote already had the tag, True if it was pushed
        """
        if environment.remote_url is None:
            raise NoRemoteBound(environment.name)
        wd = environment.working_directory
        url = environment.remote_url

        local = {s.tag: s.history_reference for s in self.backend.list_tags(wd)}
        if tag_name not in local:
            raise UnknownTag(tag_name)
        commit = local[tag_name]

        tag_ref = f"refs/tags/{tag_name}"
        branch_ref = self.backend.branch_ref
        remote_refs = self._ls_remote(wd, url)

        if tag_ref in remote_refs:
            _, remote_commit = remote_refs[tag_ref]
            if remote_commit == commit:
                logger.info("%s already has tag %s", url, tag_name)
                return False
            raise TagAlreadyExists(tag_name, where=f"on {url} for a different snapshot")

        refspecs = [f"{tag_ref}:{tag_ref}"]
        remote_head = remote_refs.get(branch_ref, (None, None))[1]
        known = remote_head is not None and self.git.has_object(remote_head, wd)
        if remote_head is None or (known and self.git.is_ancestor(remote_head, commit, wd)):
            if remote_head != commit:
                refspecs.append(f"{commit}:{branch_ref}")
        elif not (known and self.git.is_ancestor(commit, remote_head, wd)):
            raise DivergentHistory(
                f"The history on {url} has moved on in a way that does not include "
                f"'{tag_name}'. Run `akari pull` and tag again on top of the remote history."
            )

        self.git.remote(["push", "-q", "--atomic", self.remote_name] + refspecs, wd, url)
        logger.info("pushed %s to %s", tag_name, url)
        return True

    def pull(self, environment: Environment) -> PullResult:
        """Bring in remote tags and fast-forward the environment branch"""
        if environment.remote_url is None:
            raise NoRemoteBound(environment.name)
        wd = environment.working_directory
        url = environment.remote_url
        branch_ref = self.backend.branch_ref

        remote_refs = self._ls_remote(wd, url)
        remote_tags = {
            ref[len("refs/tags/"):]: oids
            for ref, oids in remote_refs.items()
            if ref.startswith("refs/tags/")
        }
        remote_head = remote_refs.get(branch_ref, (None, None))[1]

        local_head = self.backend.head(wd)
        local_tags = {s.tag: s.history_reference for s in self.backend.list_tags(wd)}

        conflicts = sorted(
            tag for tag, (_, commit) in remote_tags.items()
            if tag in local_tags and local_tags[tag] != commit
        )
        if conflicts:
            raise DivergentHistory(
                f"Tag(s) {', '.join(conflicts)} point at different snapshots locally and on {url}. "
                "Tags are never overwritten; rename or remove the local tags to continue."
            )
        missing = sorted(tag for tag in remote_tags if tag not in local_tags)

        refspecs = [f"+refs/tags/{tag}:{INCOMING_REFS}/tags/{tag}" for tag in missing]
        if remote_head is not None and not self.git.has_object(remote_head, wd):
            refspecs.append(f"+{branch_ref}:{INCOMING_REFS}/heads/{self.settings.branch}")

        try:
            if refspecs:
                self.git.remote(
                    ["fetch", "-q", "--no-tags", "--refmap=", self.remote_name] + refspecs, wd, url
                )
            new_head = self._fast_forward_target(wd, url, local_head, remote_head)

            commands = [f"create refs/tags/{tag} {remote_tags[tag][0]}" for tag in missing]
            if new_head != local_head:
                if local_head is None:
                    commands.append(f"create {branch_ref} {new_head}")
                else:
                    commands.append(f"update {branch_ref} {new_head} {local_head}")
            self.git.update_refs(commands, wd)
        finally:
            self._drop_incoming(wd)

        result = PullResult(new_tags=missing, previous_head=local_head, head=new_head)
        if result.changed:
            logger.info(
                "pulled %d tag(s) from %s, head %s -> %s",
                len(missing), url, local_head and local_head[:12], new_head and new_head[:12],
            )
        return result

    def _fast_forward_target(self, wd: Path, url: str, local_head: Optional[str], remote_head: Optional[str]) -> Optional[str]:
        if remote_head is None or remote_head == local_head:
            return local_head
        if local_head is None:
            return remote_head
        if self.git.is_ancestor(remote_head, local_head, wd):
            return local_head
        if self.git.is_ancestor(local_head, remote_head, wd):
            return remote_head
        raise DivergentHistory(
            f"The local history and the history on {url} have diverged "
            f"(local {local_head[:12]}, remote {remote_head[:12]}). "
            "akari does not merge histories; reconcile them with git and try again."
        )

    def _ls_remote(self, wd: Path, url: str) -> Dict[str, Tuple[str, str]]:
        """Map each remote ref to (object id, peeled commit id)"""
        out = self.git.remote(["ls-remote", self.remote_name], wd, url).stdout
        refs: Dict[str, Tuple[str, str]] = {}
        peeled: Dict[str, str] = {}
        for line in out.splitlines():
            if not line.strip():
                continue
            oid, ref = line.split("\t", 1)
            if ref.endswith("^{}"):
                peeled[ref[:-3]] = oid
            else:
                refs[ref] = (oid, oid)
        for ref, commit in peeled.items():
            if ref in refs:
                refs[ref] = (refs[ref][0], commit)
        return refs

    def _drop_incoming(self, wd: Path) -> None:
        out = self.git.output(["for-each-ref", "--format=%(refname)", INCOMING_REFS], wd)
        self.git.update_refs([f"delete {ref}" for ref in out.splitlines() if ref], wd)
