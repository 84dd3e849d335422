"""Project store - one append-only CSV file per project."""

from __future__ import annotations

import logging
import os
from contextlib import ExitStack, contextmanager
from pathlib import Path
from typing import Generator, Iterable, Optional, Union

import portalocker

from .codec import decode_any, decode_rows, iter_rows, render_row
from .errors import ConflictError, DecodeError, NotFoundError, StoreError, ValidationError
from .filters import search_notes, sort_by_timestamp
from .locking import atomic_write, file_lock, lock_path_for
from .models import (
    PROJECT_FILE_EXTENSION,
    Note,
    Project,
    Record,
    RecordKind,
    Todo,
    Track,
    validate_project_name,
)

logger = logging.getLogger(__name__)


def is_empty_datadir(datadir: Union[str, Path, None]) -> bool:
    """True for a missing or blank data directory, including ``Path("")``."""
    if not datadir or not str(datadir).strip():
        return True
    # Path("") and Path(".") are the same value
    return Path(datadir) == Path("")


class ProjectStore:
    """Reads and writes project files inside a single data directory.

    There is no coordination with writers outside lablog; appends rely on
    the filesystem's append semantics plus an advisory lock per file.
    """

    def __init__(self, datadir: Union[str, Path], lock_timeout: float = 10.0):
        if is_empty_datadir(datadir):
            raise ValidationError("path to datadir can not be empty")
        self.datadir = Path(datadir)
        self.lock_timeout = lock_timeout

    def project(self, name: str) -> Project:
        """Get the project with this name.

        Raises:
            ValidationError: If the name can not be used as a project name
        """
        try:
            validate_project_name(name)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        return Project(name=name, datadir=self.datadir)

    @contextmanager
    def _locked(self, *projects: Project) -> Generator[None, None, None]:
        # Always lock in name order so two merges can not deadlock
        ordered = sorted(set(projects), key=lambda p: p.name)
        try:
            with ExitStack() as stack:
                for project in ordered:
                    stack.enter_context(file_lock(project.file_path, timeout=self.lock_timeout))
                yield
        except portalocker.LockException as e:
            names = ", ".join(p.name for p in ordered)
            raise StoreError(f"can not lock project file for {names}: {e}") from e

    def _drop_lock_file(self, project: Project) -> None:
        """Delete the lock file of a project that no longer exists.

        Called while the lock is held. A process already waiting on it ends
        up holding the unlinked file, which only guards the gone project.
        """
        lock_path_for(project.file_path).unlink(missing_ok=True)

    # ========== Listing ==========

    def list_projects(self) -> list[str]:
        """Names of all projects in the data directory, sorted.

        Dotfiles and files without the project extension are ignored. A data
        directory that does not exist yet has no projects.
        """
        try:
            entries = list(os.scandir(self.datadir))
        except FileNotFoundError:
            return []
        except OSError as e:
            raise StoreError(f"can not read files from directory {self.datadir}: {e}") from e

        names = []
        for entry in entries:
            filename = entry.name
            if filename.startswith("."):
                continue
            if not filename.endswith(PROJECT_FILE_EXTENSION):
                continue
            if not entry.is_file():
                continue
            names.append(filename[: -len(PROJECT_FILE_EXTENSION)])

        return sorted(names)

    def projects(self) -> list[Project]:
        return [Project(name=name, datadir=self.datadir) for name in self.list_projects()]

    def exists(self, name: str) -> bool:
        return self.project(name).exists()

    def resolve(self, names: Optional[Iterable[str]] = None, include_subprojects: bool = False) -> list[str]:
        """Expand command arguments to project names.

        No names means every project. With ``include_subprojects`` the
        requested projects that exist are joined by every project whose name
        starts with one of them, without duplicates and sorted by name.
        """
        requested = list(names or [])
        if not requested:
            return self.list_projects()

        projects = [self.project(name) for name in requested]
        if not include_subprojects:
            return [project.name for project in projects]

        out = {project.name for project in projects if project.exists()}
        for candidate in self.projects():
            if any(project.is_subproject(candidate) for project in projects):
                out.add(candidate.name)
        return sorted(out)

    # ========== Reading ==========

    def _read_rows(self, project: Project, required: bool) -> list[list[str]]:
        try:
            with open(project.file_path, "r", encoding="utf-8", errors="replace", newline="") as f:
                return list(iter_rows(f))
        except FileNotFoundError:
            if required:
                raise NotFoundError(f"no project with the name {project.name}")
            return []
        except OSError as e:
            raise StoreError(f"can not open project file {project.file_path}: {e}") from e

    def _read_kind(self, name: str, kind: RecordKind, required: bool) -> list:
        project = self.project(name)
        records, skipped = decode_rows(self._read_rows(project, required), kind, project.name)
        if skipped:
            logger.warning("Skipped %d malformed %s rows in %s", skipped, kind.value, project.filename)
        return records

    def read_notes(self, name: str, required: bool = False) -> list[Note]:
        return self._read_kind(name, RecordKind.NOTE, required)

    def read_todos(self, name: str, required: bool = False) -> list[Todo]:
        return self._read_kind(name, RecordKind.TODO, required)

    def read_tracks(self, name: str, required: bool = False) -> list[Track]:
        return self._read_kind(name, RecordKind.TRACK, required)

    def read_all(self, name: str, required: bool = False) -> list[Record]:
        """Every decodable record of any kind, in file order."""
        project = self.project(name)
        records = []
        for row in self._read_rows(project, required):
            try:
                records.append(decode_any(row, project.name))
            except DecodeError as e:
                logger.debug("Skipping row in %s: %s", project.filename, e)
        return records

    def search(self, name: str, text: str) -> list[str]:
        """Note lines in the project containing ``text``."""
        return search_notes(self.read_notes(name), text)

    def is_active(self, name: str) -> bool:
        """True if the latest track of the project is not a stop marker."""
        tracks = sort_by_timestamp(self.read_tracks(name))
        if not tracks:
            return False
        return tracks[-1].active

    # ========== Writing ==========

    def append(self, record: Record) -> Path:
        """Append one record as a single row to its project file.

        The row is either written completely or the file is truncated back
        to its previous size and StoreError is raised.

        Returns:
            Path of the project file
        """
        project = self.project(record.project)
        line = render_row(record).encode("utf-8")

        try:
            self.datadir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreError(f"can not create datadir {self.datadir}: {e}") from e

        with self._locked(project):
            try:
                with open(project.file_path, "a+b") as f:
                    size = f.seek(0, os.SEEK_END)
                    if size:
                        f.seek(size - 1)
                        if f.read(1) != b"\n":
                            # Previous row lost its line ending, keep it separate
                            line = b"\n" + line
                    try:
                        f.write(line)
                        f.flush()
                        os.fsync(f.fileno())
                    except OSError:
                        f.truncate(size)
                        raise
            except OSError as e:
                raise StoreError(f"can not write to project file {project.file_path}: {e}") from e

        logger.debug("Appended %s to %s", record.kind.value, project.filename)
        return project.file_path

    def merge(self, source: str, destination: str) -> Path:
        """Append all rows of ``source`` to ``destination`` and delete ``source``.

        Both projects must exist. The destination is rewritten atomically.

        Returns:
            Path of the destination file
        """
        src = self.project(source)
        dst = self.project(destination)
        if src == dst:
            raise ConflictError(f"can not merge project {source} into itself")

        with self._locked(src, dst):
            if not src.exists():
                raise NotFoundError(f"no project with the name {source}")
            if not dst.exists():
                raise NotFoundError(f"no project with the name {destination} to merge into")

            try:
                src_data = src.file_path.read_bytes()
                dst_data = dst.file_path.read_bytes()
                if dst_data and not dst_data.endswith(b"\n"):
                    dst_data += b"\n"

                with atomic_write(dst.file_path, mode="wb") as f:
                    f.write(dst_data + src_data)

                src.file_path.unlink()
                self._drop_lock_file(src)
            except OSError as e:
                raise StoreError(f"can not merge {source} into {destination}: {e}") from e

        logger.info("Merged project %s into %s", source, destination)
        return dst.file_path

    def rename(self, old: str, new: str) -> Path:
        """Rename a project file.

        Returns:
            Path of the renamed file
        """
        old_project = self.project(old)
        new_project = self.project(new)

        with self._locked(old_project, new_project):
            if not old_project.exists():
                raise NotFoundError(f"no project with the name {old}")
            if new_project.exists():
                raise ConflictError(f"the project {new} already exists")

            try:
                os.rename(old_project.file_path, new_project.file_path)
                self._drop_lock_file(old_project)
            except OSError as e:
                raise StoreError(f"can not rename {old} to {new}: {e}") from e

        logger.info("Renamed project %s to %s", old, new)
        return new_project.file_path

    def remove(self, name: str) -> Path:
        """Delete a project file.

        Returns:
            Path of the removed file
        """
        project = self.project(name)

        with self._locked(project):
            if not project.exists():
                raise NotFoundError(f"no project with the name {name}")
            try:
                project.file_path.unlink()
                self._drop_lock_file(project)
            except OSError as e:
                raise StoreError(f"can not remove project {name}: {e}") from e

        logger.info("Removed project %s", name)
        return project.file_path
