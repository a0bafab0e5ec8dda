"""Command line entry point."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from .assembler import RenderInputs
from .engine import RenderMode, TypstCliEngine
from .output import preview_document, stamp_pdf_page_numbers
from .scheduler import RenderFailure, run_pipeline
from .storage import encode_image_file


def _image_argument(value: str) -> tuple[str, Path]:
    image_id, sep, path_text = value.partition("=")
    if not sep or not image_id or not path_text:
        raise argparse.ArgumentTypeError(f"expected ID=FILE, got {value!r}")
    return image_id, Path(path_text).expanduser()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="typstudio",
        description="Edit Typst documents with a live rendered preview.",
    )
    parser.add_argument("path", nargs="?", default=None, help="Typst file to open or export.")
    parser.add_argument(
        "--export",
        metavar="OUT",
        default=None,
        help="Render once without the editor and write OUT (.pdf, .svg or .html).",
    )
    parser.add_argument("--bibliography", metavar="FILE", default=None, help="Hayagriva YAML registered as refs.yml.")
    parser.add_argument(
        "--image",
        metavar="ID=FILE",
        action="append",
        default=[],
        type=_image_argument,
        help="Register an image file under ID (repeatable).",
    )
    parser.add_argument("--page-numbers", action="store_true", help="Stamp 'N of M' footers on exported PDFs.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output.")
    return parser


def _export(args: argparse.Namespace) -> int:
    if args.path is None:
        print("--export needs a source file", file=sys.stderr)
        return 2
    source_path = Path(args.path).expanduser()
    output_path = Path(args.export).expanduser()
    suffix = output_path.suffix.lower()
    if suffix not in {".pdf", ".svg", ".html", ".htm"}:
        print(f"Unsupported export format: {output_path.name}", file=sys.stderr)
        return 2

    try:
        source = source_path.read_text(encoding="utf-8")
        bibliography = (
            Path(args.bibliography).expanduser().read_text(encoding="utf-8") if args.bibliography else None
        )
        images = {image_id: encode_image_file(path) for image_id, path in args.image}
    except OSError as exc:
        print(f"Could not read input: {exc}", file=sys.stderr)
        return 2

    mode = RenderMode.PDF if suffix == ".pdf" else RenderMode.SVG
    outcome = run_pipeline(RenderInputs.snapshot(source, bibliography, images), TypstCliEngine(), mode)
    if isinstance(outcome, RenderFailure):
        print(outcome.message, file=sys.stderr)
        return 1
    for skipped in outcome.skipped_images:
        print(f"Skipped image {skipped.image_id}: {skipped.reason}", file=sys.stderr)

    if mode is RenderMode.PDF:
        pdf_bytes = outcome.data or b""
        if args.page_numbers:
            try:
                pdf_bytes = stamp_pdf_page_numbers(pdf_bytes)
            except (RuntimeError, ValueError) as exc:
                print(f"Could not add page numbers: {exc}", file=sys.stderr)
                return 1
        output_path.write_bytes(pdf_bytes)
    else:
        output_path.write_text(preview_document(outcome.markup or "", source_path.name), encoding="utf-8")
    print(f"Exported {outcome.page_count} page(s): {output_path}")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.export is not None:
        return _export(args)

    path = Path(args.path).expanduser() if args.path is not None else None
    if path is not None and not path.is_file():
        print(f"Path is not a file: {path}", file=sys.stderr)
        return 2

    from .window import run_editor

    return run_editor(path)


if __name__ == "__main__":
    raise SystemExit(main())
