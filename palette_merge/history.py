"""Snapshot based undo/redo stack with grouped operations."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)


@dataclass
class HistoryEntry:
    label: str
    state: Dict[str, Any]


@dataclass
class HistoryField:
    capture: Callable[[], Any]
    apply: Callable[[Any], None]


class HistoryManager:
    """Undo stack over registered state fields.

    ``begin``/``end`` bracket a group of mutations. Groups may nest; only the
    outermost ``end`` records an entry, so the whole group undoes in one step.
    """

    def __init__(self) -> None:
        self._fields: Dict[str, HistoryField] = {}
        self._history: List[HistoryEntry] = []
        self._index = -1
        self._restoring = False
        self._ready = False
        self._accum_depth = 0
        self._accum_label: str | None = None
        self._last_undo_label: str | None = None
        self._last_redo_label: str | None = None

    def register_field(self, name: str, capture: Callable[[], Any], apply: Callable[[Any], None]) -> None:
        self._fields[name] = HistoryField(capture=capture, apply=apply)

    @property
    def is_restoring(self) -> bool:
        return self._restoring

    @property
    def in_group(self) -> bool:
        return self._accum_depth > 0

    def reset(self, label: str = "reset") -> None:
        if not self._fields:
            return
        snapshot = self._capture_state()
        self._history = [HistoryEntry(label=label, state=snapshot)]
        self._index = 0
        self._ready = True
        self._accum_depth = 0
        self._accum_label = None
        logger.debug("History reset label=%s fields=%s entries=%s index=%s", label, list(self._fields.keys()), len(self._history), self._index)

    def begin(self, label: str) -> None:
        if self._accum_depth == 0:
            self._accum_label = label
        self._accum_depth += 1
        logger.debug("History begin label=%s depth=%s", label, self._accum_depth)

    def end(self) -> None:
        if self._accum_depth == 0:
            logger.debug("History end without begin ignored")
            return
        self._accum_depth -= 1
        logger.debug("History end label=%s depth=%s", self._accum_label, self._accum_depth)
        if self._accum_depth == 0:
            label = self._accum_label or "edit"
            self._accum_label = None
            self.record(label)

    def record(self, label: str, *, force: bool = False) -> bool:
        if not self._ready or self._restoring or self._accum_depth > 0:
            logger.debug(
                "History record skipped label=%s ready=%s restoring=%s depth=%s",
                label,
                self._ready,
                self._restoring,
                self._accum_depth,
            )
            return False
        snapshot = self._capture_state()
        if not force and self._history and snapshot == self._history[self._index].state:
            logger.debug("History record dedup label=%s index=%s entries=%s", label, self._index, len(self._history))
            return False
        if self._index < len(self._history) - 1:
            self._history = self._history[: self._index + 1]
            logger.debug("History record truncated future branch label=%s new_len=%s", label, len(self._history))
        self._history.append(HistoryEntry(label=label, state=snapshot))
        self._index += 1
        logger.debug("History record added label=%s index=%s entries=%s", label, self._index, len(self._history))
        return True

    def undo(self) -> bool:
        if not self.can_undo:
            logger.debug("History undo skipped index=%s entries=%s", self._index, len(self._history))
            return False
        undone_label = self._history[self._index].label
        self._index -= 1
        self._last_undo_label = undone_label
        logger.debug("History undo label=%s index=%s", undone_label, self._index)
        self._apply_state(self._history[self._index].state)
        return True

    def redo(self) -> bool:
        if not self.can_redo:
            logger.debug("History redo skipped index=%s entries=%s", self._index, len(self._history))
            return False
        self._index += 1
        applied_label = self._history[self._index].label
        self._last_redo_label = applied_label
        logger.debug("History redo label=%s index=%s", applied_label, self._index)
        self._apply_state(self._history[self._index].state)
        return True

    @property
    def last_undo_label(self) -> str | None:
        return self._last_undo_label

    @property
    def last_redo_label(self) -> str | None:
        return self._last_redo_label

    @property
    def can_undo(self) -> bool:
        return self._ready and self._accum_depth == 0 and self._index > 0

    @property
    def can_redo(self) -> bool:
        return self._ready and self._accum_depth == 0 and 0 <= self._index < len(self._history) - 1

    @property
    def labels(self) -> List[str]:
        return [entry.label for entry in self._history]

    def _capture_state(self) -> Dict[str, Any]:
        return {name: field.capture() for name, field in self._fields.items()}

    def _apply_state(self, state: Dict[str, Any]) -> None:
        self._restoring = True
        try:
            for name, value in state.items():
                field = self._fields.get(name)
                if field is not None:
                    field.apply(value)
        finally:
            self._restoring = False
