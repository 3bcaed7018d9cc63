import logging
from collections import defaultdict
from pathlib import Path
from typing import Dict, List, Optional

from akari._src.constants import LATEST
from akari._src.exceptions import AmbiguousLatest, UnknownTag
from akari._src.models.environment import Snapshot
from akari._src.snapshot import SnapshotBackend


logger = logging.getLogger(__name__)


class TagResolver:
    """Turns a symbolic reference into a concrete commit id.

    `latest` is decided by ancestry only: the tagged commit closest to the
    head of history, walking parents breadth-first. Timestamps and tag names
    are never used to break ties.
    """

    def __init__(self, backend: SnapshotBackend):
        self.backend = backend

    def resolve(self, working_directory: Path, ref: str) -> str:
        if ref == LATEST:
            return self.latest(working_directory)
        for snapshot in self.backend.list_tags(working_directory):
            if snapshot.tag == ref:
                return snapshot.history_reference
        raise UnknownTag(ref)

    def latest(self, working_directory: Path) -> str:
        head = self.backend.head(working_directory)
        if head is None:
            raise UnknownTag(LATEST, "This environment has no snapshots yet.")

        tagged = self._tags_by_commit(self.backend.list_tags(working_directory))
        distances = self.distances(working_directory, head)

        best: Optional[int] = None
        candidates: List[str] = []
        for commit in tagged:
            distance = distances.get(commit)
            if distance is None:
                continue
            if best is None or distance < best:
                best = distance
                candidates = [commit]
            elif distance == best:
                candidates.append(commit)

        if not candidates:
            raise UnknownTag(LATEST, "No tagged snapshot is reachable from the head of history.")
        if len(candidates) > 1:
            raise AmbiguousLatest([tag for commit in candidates for tag in tagged[commit]])

        logger.debug("latest resolved to %s (distance %d from head)", candidates[0][:12], best)
        return candidates[0]

    def distances(self, working_directory: Path, head: str) -> Dict[str, int]:
        """Shortest number of parent hops from `head` to each ancestor"""
        parents = self.backend.ancestry(working_directory, head)
        distances = {head: 0}
        frontier = [head]
        while frontier:
            following = []
            for commit in frontier:
                for parent in parents.get(commit, []):
                    if parent not in distances:
                        distances[parent] = distances[commit] + 1
                        following.append(parent)
            frontier = following
        return distances

    def order(self, working_directory: Path, snapshots: List[Snapshot]) -> List[Snapshot]:
        """Oldest first by ancestry; snapshots not reachable from head go last by name"""
        head = self.backend.head(working_directory)
        distances = self.distances(working_directory, head) if head is not None else {}

        def key(snapshot):
            distance = distances.get(snapshot.history_reference)
            if distance is None:
                return (1, 0, snapshot.tag)
            return (0, -distance, snapshot.tag)

        return sorted(snapshots, key=key)

    def _tags_by_commit(self, snapshots: List[Snapshot]) -> Dict[str, List[str]]:
        tagged = defaultdict(list)
        for snapshot in snapshots:
            tagged[snapshot.history_reference].append(snapshot.tag)
        return tagged
