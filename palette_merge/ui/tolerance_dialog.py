from __future__ import annotations

import logging
import sys

from PySide6.QtWidgets import (
    QApplication,
    QDialog,
    QHBoxLayout,
    QLabel,
    QPushButton,
    QSpinBox,
    QVBoxLayout,
    QWidget,
)

from palette_merge.merge import UNDO_LABEL
from palette_merge.similarity import DEFAULT_TOLERANCE, MAX_TOLERANCE, MIN_TOLERANCE

logger = logging.getLogger(__name__)


class ToleranceDialog(QDialog):
    """Modal prompt for the maximum RGB difference per channel."""

    def __init__(self, parent: QWidget | None = None, default: int = DEFAULT_TOLERANCE) -> None:
        super().__init__(parent)
        self.setModal(True)
        self.setWindowTitle(UNDO_LABEL)

        root = QVBoxLayout(self)
        root.setContentsMargins(10, 10, 10, 10)
        root.setSpacing(10)

        row = QHBoxLayout()
        row.addWidget(QLabel("Tolerance: "))
        self.tolerance_spin = QSpinBox()
        self.tolerance_spin.setRange(MIN_TOLERANCE, MAX_TOLERANCE)
        self.tolerance_spin.setValue(max(MIN_TOLERANCE, min(MAX_TOLERANCE, int(default))))
        self.tolerance_spin.setToolTip("Maximum difference of RGB values between merged colors")
        row.addWidget(self.tolerance_spin)
        root.addLayout(row)

        actions = QHBoxLayout()
        actions.addStretch(1)
        ok_btn = QPushButton("OK")
        ok_btn.setDefault(True)
        ok_btn.clicked.connect(self.accept)
        cancel_btn = QPushButton("Cancel")
        cancel_btn.clicked.connect(self.reject)
        actions.addWidget(ok_btn)
        actions.addWidget(cancel_btn)
        root.addLayout(actions)

    @property
    def value(self) -> int:
        return self.tolerance_spin.value()


def ask_tolerance(default: int = DEFAULT_TOLERANCE, parent: QWidget | None = None) -> int | None:
    """Show the tolerance dialog; ``None`` when the user cancels."""

    app = QApplication.instance() or QApplication(sys.argv)
    dialog = ToleranceDialog(parent, default=default)
    if dialog.exec() != QDialog.DialogCode.Accepted:
        logger.debug("Tolerance dialog cancelled")
        return None
    logger.debug("Tolerance dialog accepted value=%s", dialog.value)
    return dialog.value
