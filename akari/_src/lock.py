import fcntl
import logging
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from akari._src.constants import LOCK_FILE
from akari._src.exceptions import EnvironmentLocked


logger = logging.getLogger(__name__)


@contextmanager
def environment_lock(working_directory: Path, timeout_s: float = 10.0, poll_s: float = 0.05) -> Iterator[None]:
    """Hold an advisory lock on an environment's history.

    Only other akari invocations honor the lock; git itself and the
    package manager do not look at it.
    """
    git_dir = Path(working_directory) / ".git"
    if not git_dir.is_dir():
        # nothing to protect until the history exists
        yield
        return

    lock_path = git_dir / LOCK_FILE
    with lock_path.open("a+") as lock_fh:
        start = time.monotonic()
        while True:
            try:
                fcntl.flock(lock_fh.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                break
            except BlockingIOError:
                if time.monotonic() - start >= timeout_s:
                    raise EnvironmentLocked(lock_path)
                time.sleep(poll_s)
        logger.debug("acquired %s", lock_path)
        try:
            yield
        finally:
            fcntl.flock(lock_fh.fileno(), fcntl.LOCK_UN)
