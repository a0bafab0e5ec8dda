from __future__ import annotations

from io import BytesIO

import pytest
from pypdf import PdfReader
from reportlab.pdfgen import canvas

from typstudio.cli import main

SVG_STUB = """\
for last; do :; done
out=$(printf '%s' "$last" | sed "s/{p}/1/")
printf '<svg width="10pt" height="20pt"><text>exported</text></svg>' > "$out"
"""


@pytest.fixture
def typst_stub(make_stub, monkeypatch):
    def install(body: str = SVG_STUB):
        stub = make_stub(body)
        monkeypatch.setenv("TYPSTUDIO_TYPST_BIN", str(stub))
        monkeypatch.delenv("TYPSTUDIO_TYPST_ARGS", raising=False)
        return stub

    return install


def test_export_html_writes_preview(tmp_path, typst_stub, capsys) -> None:
    typst_stub()
    source = tmp_path / "doc.typ"
    source.write_text("= Doc", encoding="utf-8")
    out = tmp_path / "doc.html"

    assert main([str(source), "--export", str(out)]) == 0

    page = out.read_text(encoding="utf-8")
    assert "<title>doc.typ</title>" in page
    assert "<text>exported</text>" in page
    assert "Exported 1 page(s)" in capsys.readouterr().out


def test_export_pdf_with_page_numbers(tmp_path, typst_stub) -> None:
    fixture = tmp_path / "fixture.pdf"
    buffer = BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=(300, 400))
    for _ in range(2):
        pdf.showPage()
    pdf.save()
    fixture.write_bytes(buffer.getvalue())
    typst_stub(f'for last; do :; done\ncp "{fixture}" "$last"\n')
    source = tmp_path / "doc.typ"
    source.write_text("= Doc", encoding="utf-8")
    out = tmp_path / "doc.pdf"

    assert main([str(source), "--export", str(out), "--page-numbers"]) == 0

    reader = PdfReader(BytesIO(out.read_bytes()))
    assert "2 of 2" in reader.pages[1].extract_text()


def test_export_reports_skipped_images(tmp_path, typst_stub, capsys) -> None:
    typst_stub()
    source = tmp_path / "doc.typ"
    source.write_text("= Doc", encoding="utf-8")
    image = tmp_path / "refs.png"
    image.write_bytes(b"x")

    assert main([str(source), "--export", str(tmp_path / "out.svg"), "--image", f"refs.yml={image}"]) == 0
    assert "Skipped image refs.yml: reserved name" in capsys.readouterr().err


def test_empty_source_fails_export(tmp_path, typst_stub, capsys) -> None:
    typst_stub()
    source = tmp_path / "doc.typ"
    source.write_text("  \n", encoding="utf-8")

    assert main([str(source), "--export", str(tmp_path / "out.html")]) == 1
    assert "Source code is empty" in capsys.readouterr().err


def test_engine_error_is_printed(tmp_path, typst_stub, capsys) -> None:
    typst_stub('echo "error: unknown variable: foo" >&2\nexit 1\n')
    source = tmp_path / "doc.typ"
    source.write_text("#foo", encoding="utf-8")

    assert main([str(source), "--export", str(tmp_path / "out.html")]) == 1
    assert "error: unknown variable: foo" in capsys.readouterr().err


def test_unsupported_export_suffix(tmp_path) -> None:
    source = tmp_path / "doc.typ"
    source.write_text("= Doc", encoding="utf-8")
    assert main([str(source), "--export", str(tmp_path / "out.docx")]) == 2


def test_missing_source_file(tmp_path) -> None:
    assert main([str(tmp_path / "absent.typ"), "--export", str(tmp_path / "out.pdf")]) == 2
    assert main(["--export", str(tmp_path / "out.pdf")]) == 2


def test_bad_image_argument_is_a_usage_error(tmp_path) -> None:
    with pytest.raises(SystemExit) as excinfo:
        main([str(tmp_path / "doc.typ"), "--export", "x.pdf", "--image", "noequals"])
    assert excinfo.value.code == 2


def test_page_numbering_failure_is_reported(tmp_path, typst_stub, monkeypatch, capsys) -> None:
    typst_stub(f'for last; do :; done\ncp "{tmp_path / "fixture.pdf"}" "$last"\n')
    buffer = BytesIO()
    pdf = canvas.Canvas(buffer)
    pdf.showPage()
    pdf.save()
    (tmp_path / "fixture.pdf").write_bytes(buffer.getvalue())

    def refuse(pdf_bytes):
        raise RuntimeError("Generated PDF has no pages")

    monkeypatch.setattr("typstudio.cli.stamp_pdf_page_numbers", refuse)
    source = tmp_path / "doc.typ"
    source.write_text("= Doc", encoding="utf-8")
    out = tmp_path / "doc.pdf"

    assert main([str(source), "--export", str(out), "--page-numbers"]) == 1
    assert "Could not add page numbers: Generated PDF has no pages" in capsys.readouterr().err
    assert not out.exists()
