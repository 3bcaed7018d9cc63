import os
import re
import tempfile
from pathlib import Path


_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def is_valid_name(name: str) -> bool:
    """Environment names double as directory names, so keep them simple"""
    return bool(_NAME_RE.match(name)) and not name.endswith(".")


def is_relative_to(path: str | Path, directory: str | Path) -> bool:
    """Whether `path` is `directory` or lives below it, after resolving both"""
    path = Path(path).resolve()
    directory = Path(directory).resolve()
    return path == directory or directory in path.parents


def atomic_write_text(path: Path, text: str) -> None:
    """Write `text` to `path` so readers see either the old or the new file.

    Parameters
    ----------
    path : Path
        Destination file. Its parent directory is created if needed.
    text : str
        Full contents of the file
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink(missing_ok=True)
