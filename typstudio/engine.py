"""Boundary to the external Typst typesetter."""

from __future__ import annotations

import enum
import logging
import re
import subprocess
import tempfile
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Protocol

from .assembler import CompilationUnit
from .config import MAIN_FILE_NAME, TYPST_RENDER_TIMEOUT_SECONDS, resolve_typst_binary, typst_extra_args
from .errors import RenderEngineError

logger = logging.getLogger(__name__)

_SVG_PAGE_PATTERN = re.compile(r"page-(\d+)\.svg$")
_SVG_ROOT_PATTERN = re.compile(r"<svg\b[^>]*>", re.IGNORECASE)
_XML_DECLARATION_PATTERN = re.compile(r"^\s*<\?xml[^>]*\?>\s*")


class RenderMode(enum.Enum):
    SVG = "svg"
    PDF = "pdf"


@dataclass(frozen=True)
class Page:
    fragment: str
    width: float = 0.0
    height: float = 0.0


@dataclass(frozen=True)
class Document:
    pages: tuple[Page, ...] = ()
    data: bytes | None = None


class RenderEngine(Protocol):
    def render(self, unit: CompilationUnit, mode: RenderMode) -> Document:
        """Typeset `unit`; raise RenderEngineError on failure."""
        ...


def _svg_dimension(root_tag: str, attribute: str) -> float:
    match = re.search(rf'\b{attribute}="([0-9.]+)', root_tag)
    if match is None:
        return 0.0
    try:
        return float(match.group(1))
    except ValueError:
        return 0.0


def svg_page(svg_text: str) -> Page:
    """Build a page from one SVG document, reading size off the root tag."""
    fragment = _XML_DECLARATION_PATTERN.sub("", svg_text, count=1).strip()
    root_match = _SVG_ROOT_PATTERN.search(fragment)
    root_tag = root_match.group(0) if root_match else ""
    return Page(fragment, _svg_dimension(root_tag, "width"), _svg_dimension(root_tag, "height"))


def _warning_lines(diagnostics: str) -> tuple[str, ...]:
    return tuple(line.strip() for line in diagnostics.splitlines() if line.strip().startswith("warning:"))


def pdf_pages(pdf_bytes: bytes) -> tuple[Page, ...]:
    try:
        from pypdf import PdfReader
    except Exception as exc:
        raise RuntimeError("Missing dependency 'pypdf' for PDF page measurement") from exc

    reader = PdfReader(BytesIO(pdf_bytes))
    return tuple(
        Page("", float(page.mediabox.width), float(page.mediabox.height))
        for page in reader.pages
    )


class TypstCliEngine:
    """Run the `typst` command line compiler on a temporary project root."""

    def __init__(
        self,
        binary: str | None = None,
        timeout: float = TYPST_RENDER_TIMEOUT_SECONDS,
        extra_args: list[str] | tuple[str, ...] | None = None,
    ) -> None:
        self.binary = binary
        self.timeout = timeout
        self.extra_args = list(extra_args) if extra_args is not None else typst_extra_args()

    @staticmethod
    def _write_unit(root: Path, unit: CompilationUnit) -> Path:
        main_path = root / MAIN_FILE_NAME
        resolved_root = root.resolve()
        for blob in unit.blobs:
            if blob.name == MAIN_FILE_NAME:
                raise RenderEngineError(f"Static file name collides with the main file: {blob.name}")
            target = (root / blob.name).resolve()
            if resolved_root not in target.parents:
                raise RenderEngineError(f"Static file name escapes the project root: {blob.name}")
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(blob.data)
            except OSError as exc:
                raise RenderEngineError(f"Could not stage static file {blob.name}: {exc}") from exc
        main_path.write_text(unit.source, encoding="utf-8")
        if unit.blobs:
            logger.info("Registered %d static files with the project root", len(unit.blobs))
        return main_path

    def render(self, unit: CompilationUnit, mode: RenderMode) -> Document:
        binary = resolve_typst_binary(self.binary)
        if binary is None:
            raise RenderEngineError("typst executable not found (set TYPSTUDIO_TYPST_BIN or put typst on PATH)")

        with tempfile.TemporaryDirectory(prefix="typstudio-") as tmp:
            # Output lives beside the project root so blob names cannot clash with it.
            root = Path(tmp) / "project"
            root.mkdir()
            main_path = self._write_unit(root, unit)
            out_dir = Path(tmp) / "out"
            out_dir.mkdir()
            if mode is RenderMode.SVG:
                target = out_dir / "page-{p}.svg"
            else:
                target = out_dir / "document.pdf"

            command = [
                binary,
                "compile",
                "--root",
                str(root),
                *self.extra_args,
                str(main_path),
                str(target),
            ]
            logger.info("Compiling Typst source (%s): %d chars", mode.value, len(unit.source))
            try:
                result = subprocess.run(
                    command,
                    encoding="utf-8",
                    errors="replace",
                    capture_output=True,
                    check=False,
                    timeout=self.timeout,
                )
            except subprocess.TimeoutExpired as exc:
                raise RenderEngineError("Typst render timed out") from exc
            except OSError as exc:
                raise RenderEngineError(f"Typst render failed: {exc}") from exc

            diagnostics = (result.stderr or "").strip()
            if result.returncode != 0:
                raise RenderEngineError(
                    diagnostics or f"typst exited with status {result.returncode}",
                    warnings=_warning_lines(diagnostics),
                )
            if diagnostics:
                logger.warning("Compilation warnings:\n%s", diagnostics)

            if mode is RenderMode.SVG:
                document = self._collect_svg(out_dir)
            else:
                document = self._collect_pdf(out_dir / "document.pdf")
        logger.info("Document compiled successfully, %d pages", len(document.pages))
        return document

    @staticmethod
    def _collect_svg(out_dir: Path) -> Document:
        numbered: list[tuple[int, Path]] = []
        for path in out_dir.iterdir():
            match = _SVG_PAGE_PATTERN.search(path.name)
            if match is not None:
                numbered.append((int(match.group(1)), path))
        numbered.sort()
        pages = tuple(svg_page(path.read_text(encoding="utf-8")) for _, path in numbered)
        return Document(pages)

    @staticmethod
    def _collect_pdf(pdf_path: Path) -> Document:
        if not pdf_path.is_file():
            raise RenderEngineError("Typst did not produce a PDF")
        data = pdf_path.read_bytes()
        try:
            pages = pdf_pages(data)
        except Exception as exc:
            raise RenderEngineError(f"Generated PDF could not be read: {exc}") from exc
        logger.info("PDF generated, %d bytes", len(data))
        return Document(pages, data)
