"""Tests for grouped undo/redo."""

from palette_merge.history import HistoryManager


class _Counter:
    def __init__(self):
        self.value = 0
        self.history = HistoryManager()
        self.history.register_field("value", lambda: self.value, self._set)
        self.history.reset()

    def _set(self, value):
        self.value = value

    def bump(self, label="bump"):
        self.value += 1
        self.history.record(label)


class TestHistoryManager:

    def test_single_records_undo_and_redo(self):
        counter = _Counter()
        counter.bump()
        counter.bump()
        assert counter.history.undo()
        assert counter.value == 1
        assert counter.history.redo()
        assert counter.value == 2

    def test_group_undoes_in_one_step(self):
        counter = _Counter()
        counter.history.begin("Merge Similar Colors")
        counter.bump()
        counter.bump()
        counter.bump()
        assert not counter.history.can_undo
        counter.history.end()
        assert counter.history.labels == ["reset", "Merge Similar Colors"]
        counter.history.undo()
        assert counter.value == 0
        assert counter.history.last_undo_label == "Merge Similar Colors"

    def test_nested_groups_record_once(self):
        counter = _Counter()
        counter.history.begin("outer")
        counter.history.begin("inner")
        counter.bump()
        counter.history.end()
        assert counter.history.in_group
        counter.bump()
        counter.history.end()
        assert counter.history.labels == ["reset", "outer"]

    def test_unchanged_group_adds_no_entry(self):
        counter = _Counter()
        counter.history.begin("noop")
        counter.history.end()
        assert counter.history.labels == ["reset"]

    def test_stray_end_is_ignored(self):
        counter = _Counter()
        counter.history.end()
        counter.bump()
        assert counter.history.labels == ["reset", "bump"]

    def test_record_after_undo_drops_redo_branch(self):
        counter = _Counter()
        counter.bump("one")
        counter.bump("two")
        counter.history.undo()
        counter.bump("three")
        assert counter.history.labels == ["reset", "one", "three"]
        assert not counter.history.can_redo
