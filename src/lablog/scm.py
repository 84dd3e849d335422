"""Version control backends used as the commit hook after writes.

Each backend runs inside the data directory. Only ``git`` exists today;
``get_backend`` is the single place new ones get registered.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Union

from .errors import HookError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class GitBackend:
    """Commit hook that shells out to ``git``.

    File arguments are paths relative to the data directory.
    """

    name = "git"

    def __init__(self, datadir: Union[str, Path], timeout: float = DEFAULT_TIMEOUT):
        self.datadir = Path(datadir)
        self.timeout = timeout

    def _run(self, *args: str) -> str:
        command = ["git", *args]
        logger.debug("Running %s in %s", " ".join(command), self.datadir)
        try:
            proc = subprocess.run(
                command,
                cwd=str(self.datadir),
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise HookError(f"git {args[0]} timed out after {self.timeout}s") from e
        except OSError as e:
            raise HookError(f"can not run git {args[0]}: {e}") from e

        output = (proc.stdout + proc.stderr).strip()
        if proc.returncode != 0:
            raise HookError(
                f"problem when running git {args[0]}: exit code {proc.returncode} - {output}",
                output=output,
            )
        return output

    def add(self, filename: str) -> None:
        self._run("add", "--", filename)

    def commit(self, message: str) -> None:
        self._run("commit", "-m", message)

    def rename(self, old: str, new: str) -> None:
        """Stage a rename the store already performed on disk."""
        self._run("rm", "--cached", "--ignore-unmatch", "-q", "--", old)
        self._run("add", "--", new)

    def remove(self, filename: str) -> None:
        """Stage the deletion of a file, whether or not it is still on disk."""
        self._run("rm", "--cached", "--ignore-unmatch", "-q", "--", filename)

    def push(self) -> None:
        self._run("push")


BACKENDS = {
    GitBackend.name: GitBackend,
}


def get_backend(name: str, datadir: Union[str, Path], timeout: float = DEFAULT_TIMEOUT) -> GitBackend:
    """Create the commit hook backend registered under ``name``.

    Raises:
        HookError: If no backend has that name
    """
    if not name:
        raise HookError("can not use an empty scm for committing")
    try:
        backend = BACKENDS[name]
    except KeyError:
        raise HookError(f"do not know the scm {name}. Available: {sorted(BACKENDS)}")
    return backend(datadir, timeout=timeout)
