"""Tests for the lablog engine."""

from datetime import date
from pathlib import Path
from unittest.mock import MagicMock, call

import pytest

from lablog.config import LablogConfig
from lablog.engine import LablogEngine, commit_message
from lablog.errors import HookError, NotFoundError, StoreError, ValidationError
from lablog.models import Note, Todo, Track, parse_timestamp
from lablog.scm import GitBackend

TS1 = "2014-10-31T21:36:31.49146148+01:00"
TS2 = "2014-11-02T00:46:27.250010094+01:00"


def ts(text):
    return parse_timestamp(text)


@pytest.fixture
def committing_engine(temp_datadir):
    """Engine with auto commit and a mocked scm backend."""
    engine = LablogEngine(LablogConfig(data_dir=temp_datadir, auto_commit=True, lock_timeout=1.0))
    engine._scm = MagicMock()
    return engine


class TestValidation:
    """Validation happens before anything is written."""

    def test_empty_datadir(self, temp_datadir, monkeypatch):
        """Path("") means no data directory, not the current one."""
        monkeypatch.chdir(temp_datadir)
        with pytest.raises(ValidationError):
            LablogEngine(LablogConfig(data_dir=Path(""))).record_note("work", "text")
        assert list(temp_datadir.iterdir()) == []

    def test_note_needs_project(self, engine):
        with pytest.raises(ValidationError):
            engine.record_note("", "text")

    def test_note_needs_text(self, engine):
        with pytest.raises(ValidationError):
            engine.record_note("work", "  ")
        assert engine.store.list_projects() == []

    def test_todo_needs_value(self, engine):
        with pytest.raises(ValidationError):
            engine.record_todo("work", "")

    def test_done_needs_value(self, engine):
        with pytest.raises(ValidationError):
            engine.record_done("work", "")

    def test_track_value_is_optional(self, engine):
        track = engine.record_track("work")
        assert track.value == ""
        assert engine.store.read_tracks("work") == [track]

    def test_project_name_rejected(self, engine):
        with pytest.raises(ValidationError):
            engine.record_note("a/b", "text")

    def test_validation_error_is_value_error(self, engine):
        with pytest.raises(ValueError):
            engine.record_note("", "text")

    def test_validation_runs_before_commit(self, committing_engine):
        with pytest.raises(ValidationError):
            committing_engine.record_note("work", "")
        committing_engine._scm.commit.assert_not_called()


class TestWrites:
    """Tests for the write operations."""

    def test_note_then_query(self, engine):
        engine.record_note("work", "first", ts(TS1))
        engine.record_note("work", "second", ts(TS2))
        assert [n.text for n in engine.notes("work")] == ["first", "second"]

    def test_default_timestamp_is_now(self, engine):
        note = engine.record_note("work", "text")
        assert note.timestamp.dt.utcoffset() is not None
        assert engine.store.read_notes("work")[0].timestamp == note.timestamp

    def test_todo_lifecycle(self, engine):
        engine.record_todo("work", "fix bug", ts(TS1))
        assert [t.value for t in engine.todos("work")] == ["fix bug"]

        engine.record_done("work", "fix bug", ts(TS2))
        assert engine.todos("work") == []
        assert len(engine.store.read_todos("work")) == 2

    def test_todos_at_end_of_window(self, engine):
        engine.record_todo("work", "fix bug", ts(TS1))
        engine.record_done("work", "fix bug", ts(TS2))
        open_todos = engine.todos("work", end=ts("2014-11-01T00:00:00Z"))
        assert [t.value for t in open_todos] == ["fix bug"]

    def test_todos_sorted_by_value(self, engine):
        engine.record_todo("work", "zebra", ts(TS1))
        engine.record_todo("work", "apple", ts(TS2))
        assert [t.value for t in engine.todos("work")] == ["apple", "zebra"]

    def test_write_returns_record(self, engine):
        todo = engine.record_done("work", "fix", ts(TS1))
        assert todo == Todo("work", ts(TS1), "fix", True)

    def test_store_error_propagates(self, engine, temp_datadir):
        (temp_datadir / "work.csv").mkdir()
        with pytest.raises(StoreError):
            engine.record_note("work", "text")


class TestHooks:
    """Tests for pre_record and post_record hooks."""

    def test_pre_record_can_rewrite(self, engine):
        def tag(record):
            record.text = "[tagged] " + record.text
            return record

        engine.config.hooks["pre_record"] = tag
        engine.record_note("work", "text", ts(TS1))
        assert engine.store.read_notes("work")[0].text == "[tagged] text"

    def test_pre_record_result_is_validated(self, engine):
        engine.config.hooks["pre_record"] = lambda record: Note(record.project, record.timestamp, "")
        with pytest.raises(ValidationError):
            engine.record_note("work", "text")
        assert engine.store.list_projects() == []

    def test_post_record_sees_written_record(self, engine):
        seen = []
        engine.config.hooks["post_record"] = seen.append
        todo = engine.record_todo("work", "fix", ts(TS1))
        assert seen == [todo]

    def test_post_record_failure_keeps_data(self, engine):
        def broken(record):
            raise RuntimeError("hook broke")

        engine.config.hooks["post_record"] = broken
        with pytest.raises(HookError) as exc_info:
            engine.record_note("work", "text", ts(TS1))

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert exc_info.value.files == ["work.csv"]
        assert exc_info.value.message == f"work - note - {TS1}"
        assert engine.store.read_notes("work")[0].text == "text"

    def test_post_record_failure_still_commits(self, committing_engine):
        committing_engine.config.hooks["post_record"] = lambda record: 1 / 0

        with pytest.raises(HookError):
            committing_engine.record_note("work", "text", ts(TS1))

        committing_engine._scm.commit.assert_called_once_with(f"work - note - {TS1}")


class TestCommit:
    """Tests for the commit hook."""

    def test_no_commit_by_default(self, engine):
        engine._scm = MagicMock()
        engine.record_note("work", "text")
        engine._scm.commit.assert_not_called()

    def test_commit_message(self):
        todo = Todo("work", ts(TS1), "fix", done=True)
        assert commit_message(todo) == f"work - done - {TS1}"
        assert commit_message(Track("home", ts(TS2))) == f"home - track - {TS2}"

    def test_write_commits(self, committing_engine):
        committing_engine.record_note("work", "text", ts(TS1))
        scm = committing_engine._scm
        scm.add.assert_called_once_with("work.csv")
        scm.commit.assert_called_once_with(f"work - note - {TS1}")
        scm.push.assert_not_called()

    def test_auto_push(self, committing_engine):
        committing_engine.config.auto_push = True
        committing_engine.record_todo("work", "fix", ts(TS1))
        committing_engine._scm.push.assert_called_once_with()

    def test_hook_error_keeps_data(self, committing_engine):
        committing_engine._scm.commit.side_effect = HookError("nothing to commit", output="clean")

        with pytest.raises(HookError) as exc_info:
            committing_engine.record_note("work", "text", ts(TS1))

        assert exc_info.value.files == ["work.csv"]
        assert exc_info.value.message == f"work - note - {TS1}"
        assert exc_info.value.output == "clean"
        assert committing_engine.store.read_notes("work")[0].text == "text"

    def test_retry_commit(self, committing_engine):
        committing_engine._scm.commit.side_effect = [HookError("locked"), None]

        with pytest.raises(HookError) as exc_info:
            committing_engine.record_note("work", "text", ts(TS1))

        error = exc_info.value
        committing_engine.commit(error.files, error.message)
        assert committing_engine._scm.commit.call_count == 2
        assert len(committing_engine.store.read_notes("work")) == 1

    def test_merge_commit(self, committing_engine):
        committing_engine.record_note("a", "x", ts(TS1))
        committing_engine.record_note("b", "y", ts(TS2))
        scm = committing_engine._scm
        scm.reset_mock()

        committing_engine.merge("a", "b")

        scm.remove.assert_called_once_with("a.csv")
        scm.add.assert_called_once_with("b.csv")
        scm.commit.assert_called_once_with("a - merged - b")

    def test_rename_commit(self, committing_engine):
        committing_engine.record_note("old", "x", ts(TS1))
        scm = committing_engine._scm
        scm.reset_mock()

        committing_engine.rename("old", "new")

        scm.rename.assert_called_once_with("old.csv", "new.csv")
        scm.commit.assert_called_once_with("old - renamed - new")

    def test_rename_hook_error(self, committing_engine):
        committing_engine.record_note("old", "x", ts(TS1))
        committing_engine._scm.rename.side_effect = HookError("git rm failed")

        with pytest.raises(HookError) as exc_info:
            committing_engine.rename("old", "new")

        assert exc_info.value.files == ["new.csv"]
        assert exc_info.value.message == "old - renamed - new"
        assert committing_engine.store.list_projects() == ["new"]

        committing_engine.commit(exc_info.value.files, exc_info.value.message)
        committing_engine._scm.commit.assert_called_once_with("old - renamed - new")

    def test_remove_commit(self, committing_engine):
        committing_engine.record_note("gone", "x", ts(TS1))
        scm = committing_engine._scm
        scm.reset_mock()

        committing_engine.remove("gone")

        assert scm.method_calls == [call.remove("gone.csv"), call.commit("gone - removed")]

    def test_unknown_scm(self, temp_datadir):
        engine = LablogEngine(LablogConfig(data_dir=temp_datadir, scm="svn", auto_commit=True))
        with pytest.raises(HookError):
            engine.record_note("work", "text")
        assert engine.store.read_notes("work")[0].text == "text"

    def test_default_backend_is_git(self, engine):
        assert isinstance(engine.scm, GitBackend)
        assert engine.scm.datadir == engine.config.data_dir


class TestProjectOperations:
    """Tests for merge, rename and remove through the engine."""

    def test_merge_keeps_all_records(self, engine):
        engine.record_note("a", "from a", ts(TS1))
        engine.record_todo("b", "from b", ts(TS2))
        engine.merge("a", "b")

        assert engine.projects() == ["b"]
        assert [n.text for n in engine.notes("b")] == ["from a"]
        assert [t.value for t in engine.todos("b")] == ["from b"]

    def test_merge_needs_names(self, engine):
        with pytest.raises(ValidationError):
            engine.merge("", "b")

    def test_merge_missing_destination(self, engine):
        engine.record_note("a", "x")
        with pytest.raises(NotFoundError):
            engine.merge("a", "b")

    def test_rename_needs_names(self, engine):
        with pytest.raises(ValidationError):
            engine.rename("a", "")

    def test_remove_needs_name(self, engine):
        with pytest.raises(ValidationError):
            engine.remove("")

    def test_remove(self, engine):
        engine.record_note("a", "x")
        engine.remove("a")
        assert engine.projects() == []


class TestQueries:
    """Tests for read queries."""

    def test_projects_non_empty(self, engine):
        engine.record_note("notes", "x")
        engine.record_track("tracked")
        engine.record_todo("todos", "y")

        assert engine.projects() == ["notes", "todos", "tracked"]
        assert engine.projects(non_empty=True) == ["notes", "todos"]

    def test_notes_window_and_empty_text(self, engine, temp_datadir):
        (temp_datadir / "work.csv").write_text(
            f"{TS1},note,first\n"
            f"{TS1},note,\n"
            f"{TS2},note,second\n"
        )
        assert [n.text for n in engine.notes("work")] == ["first", "second"]
        assert [n.text for n in engine.notes("work", start=ts(TS2))] == ["second"]

    def test_tracks_sorted(self, engine):
        engine.record_track("work", "b", ts(TS2))
        engine.record_track("work", "a", ts(TS1))
        assert [t.value for t in engine.tracks("work")] == ["a", "b"]

    def test_dates_from_every_kind(self, engine):
        engine.record_note("work", "x", ts("2014-10-30T10:00:00Z"))
        engine.record_todo("work", "y", ts("2014-10-31T10:00:00Z"))
        engine.record_track("home", "", ts("2014-11-01T10:00:00Z"))
        engine.record_track("home", "", ts("2014-11-01T12:00:00Z"))

        assert engine.dates(["work", "home"]) == [
            date(2014, 10, 30), date(2014, 10, 31), date(2014, 11, 1),
        ]
        assert engine.dates(["work"], start=ts("2014-10-31T00:00:00Z")) == [date(2014, 10, 31)]

    def test_active_projects(self, engine):
        engine.record_track("work", "", ts(TS1))
        engine.record_track("home", "", ts(TS1))
        engine.record_track("home", "stop", ts(TS2))
        engine.record_note("idle", "x")

        assert engine.active_projects() == ["work"]
        assert engine.active_projects(["home"]) == []

    def test_search(self, engine):
        engine.record_note("work", "alpha\nneedle one")
        engine.record_note("home", "needle two")
        engine.record_note("other", "nothing")

        assert engine.search("needle") == {"home": ["needle two"], "work": ["needle one"]}
        assert engine.search("needle", ["work"]) == {"work": ["needle one"]}


class TestScenarios:
    """End to end flows on the example data."""

    def test_example_day(self, engine, temp_datadir):
        engine.record_note("lablog", "started the project", ts(TS1))
        engine.record_todo("lablog", "write tests", ts(TS1))
        engine.record_track("lablog", "", ts(TS1))
        engine.record_done("lablog", "write tests", ts(TS2))
        engine.record_track("lablog", "stop", ts(TS2))

        assert (temp_datadir / "lablog.csv").read_text() == (
            f"{TS1},note,started the project\n"
            f"{TS1},todo,write tests,false\n"
            f"{TS1},track,\n"
            f"{TS2},todo,write tests,true\n"
            f"{TS2},track,stop\n"
        )
        assert engine.todos("lablog") == []
        assert engine.active_projects() == []
        assert engine.dates(["lablog"]) == [date(2014, 10, 31), date(2014, 11, 2)]

    def test_done_todo_is_not_open(self, engine):
        engine.record_todo("X", "fix bug", ts(TS1))
        engine.record_done("X", "fix bug", ts(TS2))
        assert engine.todos("X") == []

    def test_window_of_three_notes(self, engine):
        t1, t2, t3 = ts(TS1), ts(TS2), ts("2014-11-03T09:00:00+01:00")
        engine.record_note("Y", "third", t3)
        engine.record_note("Y", "first", t1)
        engine.record_note("Y", "second", t2)

        notes = engine.notes("Y", t1, t2)
        assert [(n.text, n.timestamp) for n in notes] == [("first", t1), ("second", t2)]

    def test_merge_keeps_row_order(self, engine):
        engine.record_note("A", "a1", ts(TS2))
        engine.record_todo("A", "a2", ts(TS1))
        engine.record_track("B", "b1", ts(TS1))
        engine.record_note("B", "b2", ts(TS2))

        engine.merge("A", "B")

        assert not engine.store.exists("A")
        assert [r.value for r in engine.store.read_all("B")] == ["b1", "b2", "a1", "a2"]
