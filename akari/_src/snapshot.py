import logging
import os
import shutil
import tempfile
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

from akari._src.config import Settings
from akari._src.constants import CHECKOUT_FILE, LATEST
from akari._src.exceptions import (
    DirtyStateUnsupported,
    GitError,
    InvalidTagName,
    TagAlreadyExists,
    UnknownReference,
)
from akari._src.git import Git
from akari._src.models.environment import Snapshot


logger = logging.getLogger(__name__)

_FIELD = "\x1f"
_RECORD = "\x1e"
_TAG_FORMAT = _FIELD.join([
    "%(refname:strip=2)",
    "%(objecttype)",
    "%(objectname)",
    "%(*objectname)",
    "%(creatordate:iso-strict)",
    "%(contents)",
]) + _RECORD


class SnapshotBackend:
    """Tracks a working directory as a git history of tagged snapshots.

    Every snapshot is a commit on the environment branch with a lightweight
    tag pointing at it. The branch only ever grows: taking a snapshot appends
    a commit on top of the branch tip, and checking out an older snapshot
    rewrites the directory contents without moving the tip.
    """

    def __init__(self, git: Git, settings: Settings):
        self.git = git
        self.settings = settings

    @property
    def branch_ref(self) -> str:
        return f"refs/heads/{self.settings.branch}"

    def is_tracked(self, working_directory: Path) -> bool:
        return (Path(working_directory) / ".git").is_dir()

    def ensure_tracked(self, working_directory: Path) -> bool:
        """Initialize the history of `working_directory` if it has none.

        Returns
        -------
        bool
            True if a new history was created
        """
        working_directory = Path(working_directory)
        if self.is_tracked(working_directory):
            return False
        self.git.run(["init", "-q"], working_directory)
        self.git.run(["symbolic-ref", "HEAD", self.branch_ref], working_directory)
        logger.info("initialized history in %s", working_directory)
        return True

    def head(self, working_directory: Path) -> Optional[str]:
        """Tip of the environment branch, None while the history is empty"""
        return self.git.rev_parse(self.branch_ref, Path(working_directory))

    def current(self, working_directory: Path) -> Optional[str]:
        """The snapshot the directory was last checked out to or tagged as"""
        marker = Path(working_directory) / ".git" / CHECKOUT_FILE
        if not marker.exists():
            return None
        return marker.read_text().strip() or None

    def validate_tag_name(self, tag_name: str, working_directory: Path) -> None:
        if tag_name == LATEST:
            raise InvalidTagName(f"'{LATEST}' is reserved and cannot be used as a tag name.")
        if not tag_name or tag_name.startswith("-"):
            raise InvalidTagName(f"'{tag_name}' is not a valid tag name.")
        result = self.git.run(
            ["check-ref-format", f"refs/tags/{tag_name}"], Path(working_directory), check=False
        )
        if result.returncode != 0:
            raise InvalidTagName(f"'{tag_name}' is not a valid tag name.")

    def tag_exists(self, tag_name: str, working_directory: Path) -> bool:
        result = self.git.run(
            ["show-ref", "--verify", "-q", f"refs/tags/{tag_name}"],
            Path(working_directory),
            check=False,
        )
        return result.returncode == 0

    def snapshot(self, working_directory: Path, tag_name: str, description: Optional[str] = None) -> Snapshot:
        """Record the full state of the directory as a new tagged commit."""
        working_directory = Path(working_directory)
        self.validate_tag_name(tag_name, working_directory)
        if self.tag_exists(tag_name, working_directory):
            raise TagAlreadyExists(tag_name)

        parent = self.head(working_directory)
        tag_ref = f"refs/tags/{tag_name}"

        with self._staged_index(working_directory) as (env, index_path):
            tree = self.git.output(["write-tree"], working_directory, env=env)
            message = f"snapshot {tag_name}\n"
            if description:
                message += f"\n{description}\n"
            args = ["commit-tree", "--no-gpg-sign"]
            if parent is not None:
                args += ["-p", parent]
            commit = self.git.output(args + [tree], working_directory, input=message)

            if parent is None:
                branch_update = f"create {self.branch_ref} {commit}"
            else:
                branch_update = f"update {self.branch_ref} {commit} {parent}"
            try:
                self.git.update_refs([f"create {tag_ref} {commit}", branch_update], working_directory)
            except GitError:
                # lost a race with another invocation
                if self.tag_exists(tag_name, working_directory):
                    raise TagAlreadyExists(tag_name)
                raise

            os.replace(index_path, working_directory / ".git" / "index")

        self._mark_current(working_directory, commit)
        logger.info("tagged %s as %s in %s", commit[:12], tag_name, working_directory)
        return Snapshot(
            tag=tag_name,
            history_reference=commit,
            description=description or None,
            created_at=self._commit_date(commit, working_directory),
        )

    def list_tags(self, working_directory: Path) -> List[Snapshot]:
        working_directory = Path(working_directory)
        out = self.git.run(
            ["for-each-ref", f"--format={_TAG_FORMAT}", "refs/tags"], working_directory
        ).stdout

        snapshots = []
        for record in out.split(_RECORD):
            record = record.lstrip("\n")
            if not record:
                continue
            name, objecttype, oid, peeled, created, contents = record.split(_FIELD, 5)
            if objecttype == "tag":
                description = contents.strip()
                reference = peeled
            elif objecttype == "commit":
                # our own tags: subject is "snapshot <tag>", the body is the description
                _, _, body = contents.partition("\n")
                description = body.strip()
                reference = oid
            else:
                logger.debug("ignoring tag %s pointing at a %s", name, objecttype)
                continue
            snapshots.append(
                Snapshot(
                    tag=name,
                    history_reference=reference,
                    description=description or None,
                    created_at=created or None,
                )
            )
        return snapshots

    def checkout(self, working_directory: Path, history_reference: str) -> str:
        """Replace the contents of the directory with a recorded snapshot.

        Untagged changes are discarded. Files ignored through `.gitignore`
        are left alone, since they were never part of any snapshot.
        """
        working_directory = Path(working_directory)
        commit = self.git.rev_parse(history_reference, working_directory)
        if commit is None:
            raise UnknownReference(history_reference)

        self.git.run(["clean", "-f", "-d", "-q"], working_directory)
        self.git.run(["read-tree", "-u", "--reset", commit], working_directory)
        self._mark_current(working_directory, commit)
        logger.info("checked out %s in %s", commit[:12], working_directory)
        return commit

    def diff(self, working_directory: Path, history_reference: str) -> List[Tuple[str, str]]:
        """Changes needed to go from a snapshot to the current directory state.

        Returns
        -------
        list[tuple[str, str]]
            (status, path) pairs, status being git's A/M/D letters
        """
        working_directory = Path(working_directory)
        commit = self.git.rev_parse(history_reference, working_directory)
        if commit is None:
            raise UnknownReference(history_reference)
        return self._diff_staged(working_directory, commit)

    def pending_changes(self, working_directory: Path) -> List[Tuple[str, str]]:
        """Changes a checkout would discard.

        Measured against the snapshot last tagged or checked out. A history
        that arrived through a pull has no such snapshot, so the branch tip
        is used instead, and an empty history counts every file as added.
        """
        working_directory = Path(working_directory)
        base = self.current(working_directory) or self.head(working_directory)
        if base is None:
            base = self.git.output(["hash-object", "-t", "tree", "/dev/null"], working_directory)
        return self._diff_staged(working_directory, base)

    def _diff_staged(self, working_directory: Path, treeish: str) -> List[Tuple[str, str]]:
        with self._staged_index(working_directory) as (env, _):
            out = self.git.output(
                ["diff", "--cached", "--no-renames", "--name-status", treeish],
                working_directory,
                env=env,
            )
        changes = []
        for line in out.splitlines():
            status, _, path = line.partition("\t")
            changes.append((status, path))
        return changes

    def ancestry(self, working_directory: Path, start: str) -> Dict[str, List[str]]:
        """Map every commit reachable from `start` to its parents"""
        out = self.git.output(["rev-list", "--parents", start], Path(working_directory))
        parents = {}
        for line in out.splitlines():
            commit, *rest = line.split()
            parents[commit] = rest
        return parents

    @contextmanager
    def _staged_index(self, working_directory: Path) -> Iterator[Tuple[Dict[str, str], Path]]:
        """Stage the whole directory into a throwaway index.

        The real index is untouched unless the caller moves the temporary
        one into place.
        """
        git_dir = working_directory / ".git"
        fd, name = tempfile.mkstemp(prefix="akari-index.", dir=git_dir)
        os.close(fd)
        index_path = Path(name).resolve()
        try:
            real_index = git_dir / "index"
            if real_index.exists():
                shutil.copyfile(real_index, index_path)
            else:
                # git rejects an empty file as an index
                index_path.unlink()
            env = {"GIT_INDEX_FILE": str(index_path)}
            result = self.git.run(["add", "--all", "."], working_directory, env=env, check=False)
            if result.returncode != 0:
                raise DirtyStateUnsupported(working_directory, result.stderr.strip())
            yield env, index_path
        finally:
            index_path.unlink(missing_ok=True)

    def _mark_current(self, working_directory: Path, commit: str) -> None:
        (working_directory / ".git" / CHECKOUT_FILE).write_text(f"{commit}\n")

    def _commit_date(self, commit: str, working_directory: Path) -> datetime:
        return datetime.fromisoformat(
            self.git.output(["show", "-s", "--format=%cI", commit], working_directory)
        )
