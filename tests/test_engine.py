from __future__ import annotations

import locale
from io import BytesIO

import pytest
from reportlab.pdfgen import canvas

from typstudio.assembler import CompilationUnit, StaticBlob, assemble
from typstudio.engine import RenderMode, TypstCliEngine, svg_page
from typstudio.errors import RenderEngineError

# Arguments are: compile --root ROOT MAIN TARGET
SVG_STUB = """\
root="$3"
target="$5"
[ -f "$root/refs.yml" ] || { echo "error: file not found (searched at refs.yml)" >&2; exit 1; }
[ -f "$root/001" ] || { echo "error: file not found (searched at 001)" >&2; exit 1; }
grep -q "Hello" "$4" || { echo "error: main file missing" >&2; exit 1; }
for n in 2 10 1; do
  out=$(printf '%s' "$target" | sed "s/{p}/$n/")
  printf '<?xml version="1.0"?>\\n<svg class="typst-doc" width="595.28pt" height="841.89pt"><text>page %s</text></svg>' "$n" > "$out"
done
echo "warning: unknown font family: fancy" >&2
"""

FAILING_STUB = """\
echo "error: unknown variable: foo" >&2
echo "  --> main.typ:1:2" >&2
exit 1
"""


def make_pdf() -> bytes:
    buffer = BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=(612, 792))
    pdf.drawString(72, 700, "one")
    pdf.showPage()
    pdf.drawString(72, 700, "two")
    pdf.showPage()
    pdf.save()
    return buffer.getvalue()


def test_svg_pages_are_collected_in_page_order(make_stub) -> None:
    engine = TypstCliEngine(binary=str(make_stub(SVG_STUB)), extra_args=[])
    unit = assemble("= Hello", "key: {}", {"001": "aGk="}).unit

    document = engine.render(unit, RenderMode.SVG)

    assert [page.fragment.split("<text>")[1] for page in document.pages] == [
        "page 1</text></svg>",
        "page 2</text></svg>",
        "page 10</text></svg>",
    ]
    assert all(page.fragment.startswith("<svg") for page in document.pages)
    assert document.pages[0].width == pytest.approx(595.28)
    assert document.pages[0].height == pytest.approx(841.89)
    assert document.data is None


def test_engine_failure_message_is_kept_verbatim(make_stub) -> None:
    engine = TypstCliEngine(binary=str(make_stub(FAILING_STUB)), extra_args=[])

    with pytest.raises(RenderEngineError) as excinfo:
        engine.render(CompilationUnit("#foo"), RenderMode.SVG)

    assert excinfo.value.message == "error: unknown variable: foo\n  --> main.typ:1:2"


def test_pdf_mode_returns_engine_bytes(make_stub, tmp_path) -> None:
    fixture = tmp_path / "fixture.pdf"
    fixture.write_bytes(make_pdf())
    stub = make_stub(f'for last; do :; done\ncp "{fixture}" "$last"\n')
    engine = TypstCliEngine(binary=str(stub), extra_args=[])

    document = engine.render(CompilationUnit("= Doc"), RenderMode.PDF)

    assert document.data == fixture.read_bytes()
    assert len(document.pages) == 2
    assert document.pages[0].width == pytest.approx(612)


def test_missing_pdf_output_is_an_engine_error(make_stub) -> None:
    engine = TypstCliEngine(binary=str(make_stub("exit 0\n")), extra_args=[])

    with pytest.raises(RenderEngineError, match="did not produce a PDF"):
        engine.render(CompilationUnit("= Doc"), RenderMode.PDF)


def test_missing_binary_is_an_engine_error(monkeypatch, tmp_path) -> None:
    monkeypatch.delenv("TYPSTUDIO_TYPST_BIN", raising=False)
    monkeypatch.setenv("PATH", str(tmp_path))
    engine = TypstCliEngine(binary=str(tmp_path / "no-such-typst"), extra_args=[])

    with pytest.raises(RenderEngineError, match="typst executable not found"):
        engine.render(CompilationUnit("= Doc"), RenderMode.SVG)


@pytest.mark.parametrize("name", ["../escape.png", "/etc/passwd-copy", "main.typ"])
def test_blob_names_cannot_leave_the_project_root(make_stub, name: str) -> None:
    engine = TypstCliEngine(binary=str(make_stub("exit 0\n")), extra_args=[])
    unit = CompilationUnit("= Doc", (StaticBlob(name, b"x"),))

    with pytest.raises(RenderEngineError):
        engine.render(unit, RenderMode.SVG)


def test_timeout_is_an_engine_error(make_stub) -> None:
    engine = TypstCliEngine(binary=str(make_stub("exec sleep 5\n")), timeout=0.2, extra_args=[])

    with pytest.raises(RenderEngineError, match="timed out"):
        engine.render(CompilationUnit("= Doc"), RenderMode.SVG)


def test_svg_page_reads_size_from_root_tag() -> None:
    page = svg_page('<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 10 20" width="100pt" height="200.5pt"/>')
    assert (page.width, page.height) == (100.0, 200.5)
    assert svg_page("<svg/>").width == 0.0


# printf octal escapes keep the stub file itself ASCII.
UTF8_FAILING_STUB = r"""printf 'error: unknown variable: f\304\201\n  \342\224\214\342\224\200 main.typ:1:2\n' >&2
exit 1
"""


def test_engine_diagnostics_are_utf8_whatever_the_locale(make_stub, monkeypatch) -> None:
    monkeypatch.setattr(locale, "getpreferredencoding", lambda do_setlocale=True: "ascii")
    monkeypatch.setattr(locale, "getencoding", lambda: "ascii", raising=False)
    engine = TypstCliEngine(binary=str(make_stub(UTF8_FAILING_STUB)), extra_args=[])

    with pytest.raises(RenderEngineError) as excinfo:
        engine.render(CompilationUnit("#fā"), RenderMode.SVG)

    assert excinfo.value.message == "error: unknown variable: fā\n  ┌─ main.typ:1:2"
