"""Tests for the tolerance dialog (skipped when Qt is unavailable)."""

import os

import pytest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
QtWidgets = pytest.importorskip("PySide6.QtWidgets")

from palette_merge.ui.tolerance_dialog import ToleranceDialog  # noqa: E402


@pytest.fixture(scope="module")
def qapp():
    return QtWidgets.QApplication.instance() or QtWidgets.QApplication([])


def test_defaults_and_range(qapp):
    dialog = ToleranceDialog()
    assert dialog.value == 8
    assert dialog.tolerance_spin.minimum() == 1
    assert dialog.tolerance_spin.maximum() == 255
    assert dialog.windowTitle() == "Merge Similar Colors"


def test_default_is_clamped(qapp):
    assert ToleranceDialog(default=999).value == 255
    assert ToleranceDialog(default=0).value == 1
