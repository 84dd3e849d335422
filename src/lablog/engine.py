"""Core lablog engine - validated writes, commit hook and queries."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Iterable, Optional, Union

from .config import LablogConfig
from .errors import HookError, ValidationError
from .filters import (
    dates_with_activity,
    filter_by_time_range,
    latest_undone_todos,
    non_empty_notes,
    sort_by_timestamp,
    sort_by_value,
)
from .models import Note, Record, TimeStamp, Todo, Track, format_timestamp
from .scm import GitBackend, get_backend
from .store import ProjectStore, is_empty_datadir

logger = logging.getLogger(__name__)

Bound = Optional[Union[TimeStamp, datetime]]


def commit_message(record: Record) -> str:
    """Commit message for a written record: ``<project> - <action> - <timestamp>``."""
    return f"{record.project} - {record.action} - {format_timestamp(record.timestamp)}"


class LablogEngine:
    """Entry point for writing and querying project records.

    Writes go through validate, append, post_record hook, then the optional
    commit. A HookError from either of the last two steps means the record is
    already on disk.
    """

    def __init__(self, config: LablogConfig):
        self.config = config
        self.store = ProjectStore(config.data_dir, lock_timeout=config.lock_timeout)
        self._scm: Optional[GitBackend] = None

    @property
    def scm(self) -> GitBackend:
        """Lazily create the configured commit hook backend."""
        if self._scm is None:
            self._scm = get_backend(self.config.scm, self.config.data_dir, self.config.hook_timeout)
        return self._scm

    # ========== Write pipeline ==========

    def _validate(self, record: Record) -> None:
        if is_empty_datadir(self.config.data_dir):
            raise ValidationError("the datapath can not be empty")
        if not record.project:
            raise ValidationError(f"{record.action} command needs a project")
        self.store.project(record.project)

        if isinstance(record, Note) and not record.text.strip():
            raise ValidationError("note command needs a value")
        if isinstance(record, Todo) and not record.value.strip():
            raise ValidationError(f"{record.action} command needs a value")

    def write(self, record: Record) -> Record:
        """Validate, append and optionally commit a record.

        Returns:
            The written record (after any pre_record hook)

        Raises:
            ValidationError: Before anything is written
            StoreError: If the row could not be written
            HookError: If the row was written but the post_record hook or the
                commit failed
        """
        self._validate(record)

        if "pre_record" in self.config.hooks:
            record = self.config.hooks["pre_record"](record)
            self._validate(record)

        self.store.append(record)
        logger.info("Recorded %s for %s", record.action, record.project)

        files = [self.store.project(record.project).filename]
        message = commit_message(record)

        hook_failure = None
        if "post_record" in self.config.hooks:
            try:
                self.config.hooks["post_record"](record)
            except Exception as e:
                logger.warning("post_record hook failed, data is saved: %s", e)
                hook_failure = e

        if self.config.auto_commit:
            self.commit(files, message)

        if hook_failure is not None:
            raise HookError(
                f"post_record hook failed: {hook_failure}", files=files, message=message
            ) from hook_failure

        return record

    def commit(self, files: list[str], message: str, removed: Optional[list[str]] = None) -> None:
        """Run the commit hook: remove, add, commit and optionally push.

        Safe to call again after a HookError to retry the bookkeeping.
        """
        try:
            for filename in removed or []:
                self.scm.remove(filename)
            for filename in files:
                self.scm.add(filename)
            self.scm.commit(message)
            if self.config.auto_push:
                self.scm.push()
        except HookError as e:
            logger.warning("Commit hook failed, data is saved: %s", e)
            raise HookError(str(e), files=files, message=message, output=e.output) from e

        logger.info("Committed: %s", message)

    def record_note(self, project: str, text: str, timestamp: Optional[TimeStamp] = None) -> Note:
        return self.write(Note(project=project, timestamp=timestamp or TimeStamp.now(), text=text))

    def record_todo(self, project: str, value: str, timestamp: Optional[TimeStamp] = None) -> Todo:
        return self.write(Todo(project=project, timestamp=timestamp or TimeStamp.now(), value=value))

    def record_done(self, project: str, value: str, timestamp: Optional[TimeStamp] = None) -> Todo:
        return self.write(
            Todo(project=project, timestamp=timestamp or TimeStamp.now(), value=value, done=True)
        )

    def record_track(self, project: str, value: str = "", timestamp: Optional[TimeStamp] = None) -> Track:
        return self.write(Track(project=project, timestamp=timestamp or TimeStamp.now(), value=value))

    # ========== Whole-file operations ==========

    def merge(self, source: str, destination: str) -> None:
        """Merge ``source`` into ``destination``; both must exist."""
        if not source or not destination:
            raise ValidationError("merge needs a source and a destination project")
        self.store.merge(source, destination)

        if self.config.auto_commit:
            self.commit(
                [self.store.project(destination).filename],
                f"{source} - merged - {destination}",
                removed=[self.store.project(source).filename],
            )

    def rename(self, old: str, new: str) -> None:
        if not old or not new:
            raise ValidationError("rename needs the old and the new project name")
        self.store.rename(old, new)

        if self.config.auto_commit:
            old_file = self.store.project(old).filename
            new_file = self.store.project(new).filename
            message = f"{old} - renamed - {new}"
            try:
                self.scm.rename(old_file, new_file)
            except HookError as e:
                raise HookError(str(e), files=[new_file], message=message, output=e.output) from e
            self.commit([new_file], message)

    def remove(self, project: str) -> None:
        if not project:
            raise ValidationError("project name can not be empty")
        self.store.remove(project)

        if self.config.auto_commit:
            self.commit([], f"{project} - removed", removed=[self.store.project(project).filename])

    # ========== Queries ==========

    def projects(self, non_empty: bool = False) -> list[str]:
        """Project names; with ``non_empty`` only those holding notes or todos."""
        names = self.store.list_projects()
        if not non_empty:
            return names
        return [
            name for name in names
            if self.store.read_notes(name) or self.store.read_todos(name)
        ]

    def notes(self, project: str, start: Bound = None, end: Bound = None) -> list[Note]:
        """Non-empty notes in the window, oldest first."""
        notes = filter_by_time_range(self.store.read_notes(project), start, end)
        return sort_by_timestamp(non_empty_notes(notes))

    def todos(self, project: str, start: Bound = None, end: Bound = None) -> list[Todo]:
        """Todos still open at the end of the window, sorted by value."""
        todos = filter_by_time_range(self.store.read_todos(project), start, end)
        return sort_by_value(latest_undone_todos(todos))

    def tracks(self, project: str, start: Bound = None, end: Bound = None) -> list[Track]:
        return sort_by_timestamp(filter_by_time_range(self.store.read_tracks(project), start, end))

    def dates(self, projects: Iterable[str], start: Bound = None, end: Bound = None) -> list[date]:
        """Sorted dates on which any of the projects has a record."""
        out: set[date] = set()
        for project in projects:
            records = filter_by_time_range(self.store.read_all(project), start, end)
            out |= dates_with_activity(records)
        return sorted(out)

    def active_projects(self, projects: Optional[Iterable[str]] = None) -> list[str]:
        names = list(projects) if projects is not None else self.store.list_projects()
        return [name for name in names if self.store.is_active(name)]

    def search(self, text: str, projects: Optional[Iterable[str]] = None) -> dict[str, list[str]]:
        """Matching note lines per project, leaving out projects without matches."""
        names = list(projects) if projects is not None else self.store.list_projects()
        out = {}
        for name in names:
            lines = self.store.search(name, text)
            if lines:
                out[name] = lines
        return out
