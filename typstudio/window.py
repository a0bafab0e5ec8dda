"""Editor window: source on the left, live preview on the right."""

from __future__ import annotations

import html
import sys
from functools import partial
from pathlib import Path

from PySide6.QtCore import QObject, QRunnable, Qt, QThreadPool, Signal
from PySide6.QtGui import QAction, QFont, QTextCursor
from PySide6.QtWebEngineWidgets import QWebEngineView
from PySide6.QtWidgets import (
    QApplication,
    QFileDialog,
    QInputDialog,
    QMainWindow,
    QMessageBox,
    QPlainTextEdit,
    QSplitter,
    QTabWidget,
    QTextBrowser,
)

from .assembler import RenderInputs
from .engine import RenderEngine, RenderMode, TypstCliEngine
from .errors import ImageLimitReached
from .highlight import HIGHLIGHT_CSS, highlight_source
from .output import preview_document, stamp_pdf_page_numbers
from .scheduler import RenderFailure, RenderScheduler, RenderSuccess, run_pipeline
from .session import EditorSession
from .storage import encode_image_file
from .templates import TOOLBAR_TEMPLATES, InsertTemplate, apply_template_at_cursor, image_template

IMAGE_FILE_FILTER = "Images (*.png *.jpg *.jpeg *.gif *.svg *.webp)"


class PdfExportWorkerSignals(QObject):
    """Signals emitted by background PDF export workers."""

    finished = Signal(str, str)


class PdfExportWorker(QRunnable):
    """Render the document as PDF and write it in background."""

    def __init__(self, inputs: RenderInputs, engine: RenderEngine, output_path: Path, page_numbers: bool):
        super().__init__()
        self.inputs = inputs
        self.engine = engine
        self.output_path = output_path
        self.page_numbers = page_numbers
        self.signals = PdfExportWorkerSignals()

    def run(self) -> None:
        try:
            outcome = run_pipeline(self.inputs, self.engine, RenderMode.PDF)
            if isinstance(outcome, RenderFailure):
                self.signals.finished.emit(str(self.output_path), outcome.message)
                return
            pdf_bytes = outcome.data or b""
            if self.page_numbers:
                pdf_bytes = stamp_pdf_page_numbers(pdf_bytes)
            self.output_path.write_bytes(pdf_bytes)
            self.signals.finished.emit(str(self.output_path), "")
        except Exception as exc:
            self.signals.finished.emit(str(self.output_path), str(exc))


class TypstudioWindow(QMainWindow):
    def __init__(self, document_path: Path | None = None, session: EditorSession | None = None):
        super().__init__()
        self.document_path = document_path
        self.engine = TypstCliEngine()
        self.session = session or EditorSession.open()
        self.scheduler = RenderScheduler(self.engine, self.session.snapshot, parent=self)
        self.session.on_edit = self.scheduler.notify
        self._pdf_pool = QThreadPool(self)
        self._pdf_pool.setMaxThreadCount(1)
        self._active_pdf_workers: set[PdfExportWorker] = set()

        self.setWindowTitle("typstudio")
        self.resize(1400, 900)

        self.editor = QPlainTextEdit()
        self.editor.setFont(QFont("monospace"))
        self.editor.setPlaceholderText("Write Typst markup here...")
        self.preview = QWebEngineView()
        self.source_view = QTextBrowser()
        self.source_view.document().setDefaultStyleSheet(HIGHLIGHT_CSS)

        tabs = QTabWidget()
        tabs.addTab(self.preview, "Preview")
        tabs.addTab(self.source_view, "Highlighted source")

        splitter = QSplitter(Qt.Orientation.Horizontal)
        splitter.addWidget(self.editor)
        splitter.addWidget(tabs)
        splitter.setSizes([700, 700])
        self.setCentralWidget(splitter)

        self._build_toolbars()

        self.scheduler.output_changed.connect(self._on_output_changed)
        self.scheduler.error_changed.connect(self._on_error_changed)
        self.scheduler.rendering_changed.connect(self._on_rendering_changed)

        if document_path is not None:
            self.session.set_source(document_path.read_text(encoding="utf-8", errors="replace"))
            self.setWindowTitle(f"typstudio - {document_path.name}")
        self.editor.setPlainText(self.session.source)
        self.editor.textChanged.connect(self._on_text_changed)
        self._refresh_highlight()
        self.scheduler.notify()

    def _build_toolbars(self) -> None:
        markup_bar = self.addToolBar("Markup")
        for template in TOOLBAR_TEMPLATES:
            action = QAction(template.label, self)
            action.triggered.connect(partial(self._insert_template, template))
            markup_bar.addAction(action)

        file_bar = self.addToolBar("Document")
        for label, handler in (
            ("Save", self._save_document),
            ("Bibliography...", self._edit_bibliography),
            ("Add image...", self._add_image),
            ("Remove image...", self._remove_image),
            ("Clear images...", self._clear_images),
            ("Export PDF...", self._export_pdf),
        ):
            action = QAction(label, self)
            action.triggered.connect(handler)
            file_bar.addAction(action)
        self.page_numbers_action = QAction("Page numbers", self)
        self.page_numbers_action.setCheckable(True)
        file_bar.addAction(self.page_numbers_action)

    def _refresh_highlight(self) -> None:
        self.source_view.setHtml(highlight_source(self.editor.toPlainText()))

    def _on_text_changed(self) -> None:
        # Highlighting tracks every keystroke; rendering waits for the debounce.
        self._refresh_highlight()
        self.session.set_source(self.editor.toPlainText())

    def _insert_template(self, template: InsertTemplate, _checked: bool = False) -> None:
        cursor = self.editor.textCursor()
        edit = apply_template_at_cursor(
            self.editor.toPlainText(),
            cursor.selectionStart(),
            cursor.selectionEnd(),
            template,
        )
        cursor.insertText(edit.inserted)
        cursor.setPosition(edit.selection_start)
        cursor.setPosition(edit.selection_end, QTextCursor.MoveMode.KeepAnchor)
        self.editor.setTextCursor(cursor)
        self.editor.setFocus()

    def _on_output_changed(self, outcome: RenderSuccess | None) -> None:
        if outcome is None:
            return
        self.preview.setHtml(preview_document(outcome.markup or "", self.windowTitle()))
        message = f"Preview rendered: {outcome.page_count} page(s)"
        if outcome.skipped_images:
            skipped = ", ".join(item.image_id for item in outcome.skipped_images)
            message += f"; skipped images: {skipped}"
        self.statusBar().showMessage(message, 5000)

    def _on_error_changed(self, message: str | None) -> None:
        if message is None:
            return
        self.preview.setHtml(
            preview_document(
                '<div style="color: #b00020; font-family: monospace; white-space: pre-wrap;">'
                f"<h3>Compilation Error</h3>{html.escape(message)}</div>",
                "Compilation Error",
            )
        )
        self.statusBar().showMessage("Compilation failed", 5000)

    def _on_rendering_changed(self, rendering: bool) -> None:
        if rendering:
            self.statusBar().showMessage("Compiling...")

    def _save_document(self) -> None:
        if self.document_path is None:
            chosen, _ = QFileDialog.getSaveFileName(self, "Save Typst document", "document.typ", "Typst (*.typ)")
            if not chosen:
                return
            self.document_path = Path(chosen)
            self.setWindowTitle(f"typstudio - {self.document_path.name}")
        try:
            self.document_path.write_text(self.session.source, encoding="utf-8")
        except OSError as exc:
            QMessageBox.critical(self, "Save failed", f"Could not write {self.document_path}:\n{exc}")
            return
        self.statusBar().showMessage(f"Saved: {self.document_path}", 5000)

    def _edit_bibliography(self) -> None:
        text, accepted = QInputDialog.getMultiLineText(
            self,
            "Bibliography",
            'Hayagriva YAML, available as "refs.yml":',
            self.session.bibliography,
        )
        if accepted:
            self.session.set_bibliography(text)

    def _add_image(self) -> None:
        chosen, _ = QFileDialog.getOpenFileName(self, "Add image", "", IMAGE_FILE_FILTER)
        if not chosen:
            return
        path = Path(chosen)
        try:
            image_id = self.session.add_image(encode_image_file(path), path.name)
        except ImageLimitReached as exc:
            QMessageBox.warning(self, "Image limit", str(exc))
            return
        except OSError as exc:
            QMessageBox.critical(self, "Add image failed", f"Could not read {path}:\n{exc}")
            return
        self._insert_template(image_template(image_id))

    def _remove_image(self) -> None:
        records = self.session.images.list_images()
        if not records:
            QMessageBox.information(self, "No images", "The image library is empty.")
            return
        labels = [f"{record.id}  {record.filename}" for record in records]
        choice, accepted = QInputDialog.getItem(self, "Remove image", "Image:", labels, 0, False)
        if accepted and choice:
            self.session.remove_image(choice.split()[0])

    def _clear_images(self) -> None:
        answer = QMessageBox.question(self, "Clear images", "Remove every image and restart numbering at 001?")
        if answer == QMessageBox.StandardButton.Yes:
            self.session.clear_images()

    def _export_pdf(self) -> None:
        default_name = self.document_path.with_suffix(".pdf").name if self.document_path else "document.pdf"
        chosen, _ = QFileDialog.getSaveFileName(self, "Export PDF", default_name, "PDF (*.pdf)")
        if not chosen:
            return
        worker = PdfExportWorker(
            self.session.snapshot(),
            self.engine,
            Path(chosen),
            self.page_numbers_action.isChecked(),
        )
        worker.signals.finished.connect(partial(self._on_pdf_export_finished, worker))
        self._active_pdf_workers.add(worker)
        self.statusBar().showMessage("Exporting PDF...")
        self._pdf_pool.start(worker)

    def _on_pdf_export_finished(self, worker: PdfExportWorker, output_path: str, error_text: str) -> None:
        self._active_pdf_workers.discard(worker)
        if error_text:
            QMessageBox.critical(self, "PDF export failed", f"Could not create PDF:\n{output_path}\n\n{error_text}")
            self.statusBar().showMessage("PDF export failed", 5000)
            return
        self.statusBar().showMessage(f"Exported PDF: {output_path}", 5000)

    def closeEvent(self, event) -> None:  # noqa: N802
        self.scheduler.shutdown()
        self._pdf_pool.waitForDone(5000)
        super().closeEvent(event)


def run_editor(document_path: Path | None = None) -> int:
    app = QApplication(sys.argv)
    app.setApplicationName("typstudio")
    window = TypstudioWindow(document_path)
    window.show()
    return app.exec()
