#!/usr/bin/env python3
"""
pdf-harvest desktop front end.

Three buttons drive the engine on a background thread; a timer pulls new
log lines from the engine and shows them, optionally filtered by level.
"""
import sys
import threading

from PySide6.QtCore import QTimer
from PySide6.QtWidgets import (
    QApplication, QMainWindow, QWidget,
    QFileDialog, QPushButton, QLineEdit,
    QPlainTextEdit, QComboBox, QFormLayout,
    QHBoxLayout, QVBoxLayout
)

from harvest_core import HarvestCore, DEFAULT_LISTING_URL, DEFAULT_OUTPUT_DIR

LEVELS = ["ALL", "ERROR", "WARNING", "INFO", "SUCCESS"]
POLL_INTERVAL_MS = 250


def filter_lines(lines, level):
    """Keep the log lines tagged with level ("ALL" keeps everything)."""
    if level == "ALL":
        return list(lines)
    return [line for line in lines if f"[{level}]" in line]


def summarize(kind, result):
    """One-line status text for a finished estimate / download / verify job."""
    if isinstance(result, Exception):
        return f"{kind} failed: {result}"
    if kind == "estimate":
        return (f"Estimated total: {result.total_megabytes:.2f} MB "
                f"({result.counted} sized, {result.failed} failed)")
    if kind == "download":
        return (f"Downloaded {result.downloaded}, skipped {result.skipped}, "
                f"failed {result.failed}")
    if not result.checksums_present:
        return "No checksums found. Run a download first."
    if result.intact:
        return f"All files are intact! ({result.ok_count} checked)"
    return (f"{len(result.problems)} problems found: {len(result.corrupted)} corrupted, "
            f"{len(result.missing)} missing")


class HarvestWindow(QMainWindow):

    def __init__(self):
        super().__init__()
        self.setWindowTitle("pdf-harvest")
        self.resize(1000, 700)

        self.core = None
        self.worker = None
        self.job_result = None
        self.log_index = 0
        self.log_lines = []

        self._build_ui()

        self.poll_timer = QTimer(self)
        self.poll_timer.timeout.connect(self.poll_core)

    def _build_ui(self):
        central = QWidget()
        self.setCentralWidget(central)
        layout = QVBoxLayout(central)

        form = QFormLayout()
        self.output_dir = QLineEdit(DEFAULT_OUTPUT_DIR)
        browse = QPushButton("Browse")
        browse.clicked.connect(self.select_output)
        out_row = QHBoxLayout()
        out_row.addWidget(self.output_dir, 1)
        out_row.addWidget(browse)
        form.addRow("Output directory", out_row)

        self.listing_url = QLineEdit(DEFAULT_LISTING_URL)
        form.addRow("Listing URL", self.listing_url)
        layout.addLayout(form)

        buttons = QHBoxLayout()
        self.buttons = {}
        for kind, label in [("estimate", "Estimate size"),
                            ("download", "Download all"),
                            ("verify", "Verify integrity")]:
            btn = QPushButton(label)
            btn.clicked.connect(lambda _checked=False, k=kind: self.start_job(k))
            buttons.addWidget(btn)
            self.buttons[kind] = btn

        self.level = QComboBox()
        self.level.addItems(LEVELS)
        self.level.currentTextChanged.connect(self.redraw_log)
        buttons.addStretch(1)
        buttons.addWidget(self.level)
        layout.addLayout(buttons)

        self.log_view = QPlainTextEdit()
        self.log_view.setReadOnly(True)
        layout.addWidget(self.log_view, 1)

        self.statusBar().showMessage("Ready")

    def select_output(self):
        d = QFileDialog.getExistingDirectory(self, "Select output directory")
        if d:
            self.output_dir.setText(d)

    def _job(self, kind):
        if kind == "estimate":
            return self.core.estimate_total_size(self.core.discover())
        if kind == "download":
            return self.core.run(self.core.discover())
        return self.core.verify()

    def start_job(self, kind):
        self.core = HarvestCore(
            output_dir=self.output_dir.text() or None,
            listing_url=self.listing_url.text() or DEFAULT_LISTING_URL,
        )
        self.log_index = 0
        self.log_lines = []
        self.log_view.clear()
        self.job_result = None

        def target():
            try:
                self.job_result = (kind, self._job(kind))
            except Exception as e:
                self.job_result = (kind, e)

        self.worker = threading.Thread(target=target, daemon=True)
        self.worker.start()

        for btn in self.buttons.values():
            btn.setEnabled(False)
        self.statusBar().showMessage(f"Running {kind}...")
        self.poll_timer.start(POLL_INTERVAL_MS)

    def poll_core(self):
        if not self.core:
            return

        logs, self.log_index = self.core.get_logs(self.log_index)
        self.log_lines.extend(logs)
        for line in filter_lines(logs, self.level.currentText()):
            self.log_view.appendPlainText(line)

        if self.worker is not None and not self.worker.is_alive():
            self.poll_timer.stop()
            self.worker = None
            self.statusBar().showMessage(summarize(*self.job_result))
            for btn in self.buttons.values():
                btn.setEnabled(True)

    def redraw_log(self, level):
        self.log_view.setPlainText("\n".join(filter_lines(self.log_lines, level)))

    def closeEvent(self, event):
        self.poll_timer.stop()
        event.accept()


def main():
    app = QApplication(sys.argv)
    win = HarvestWindow()
    win.show()
    sys.exit(app.exec())


if __name__ == "__main__":
    main()
