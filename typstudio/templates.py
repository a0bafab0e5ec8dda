"""Toolbar snippets with an explicit placeholder slot."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class InsertTemplate:
    label: str
    before: str
    placeholder: str
    after: str = ""

    def fill(self, text: str) -> str:
        return f"{self.before}{text}{self.after}"


@dataclass(frozen=True)
class TemplateEdit:
    source: str
    selection_start: int
    selection_end: int


def apply_template(source: str, start: int, end: int, template: InsertTemplate) -> TemplateEdit:
    """Insert `template` over `source[start:end]`.

    A non-empty selection fills the slot; otherwise the placeholder does.
    Either way the slot contents come back selected so typing replaces them.
    """
    start, end = sorted((max(0, min(start, len(source))), max(0, min(end, len(source)))))
    slot_text = source[start:end] or template.placeholder
    inserted = template.fill(slot_text)
    slot_start = start + len(template.before)
    return TemplateEdit(
        source=source[:start] + inserted + source[end:],
        selection_start=slot_start,
        selection_end=slot_start + len(slot_text),
    )


@dataclass(frozen=True)
class CursorEdit:
    """Text to insert over the cursor selection and the slot to select after."""

    inserted: str
    selection_start: int
    selection_end: int


def utf16_offset(text: str, index: int) -> int:
    # Qt cursor positions count UTF-16 code units.
    return len(text[:index].encode("utf-16-le")) // 2


def index_from_utf16(text: str, offset: int) -> int:
    units = 0
    for index, char in enumerate(text):
        if units >= offset:
            return index
        units += 2 if ord(char) > 0xFFFF else 1
    return len(text)


def apply_template_at_cursor(text: str, cursor_start: int, cursor_end: int, template: InsertTemplate) -> CursorEdit:
    """`apply_template` with positions in UTF-16 code units, as an editor cursor reports them."""
    start, end = sorted((index_from_utf16(text, cursor_start), index_from_utf16(text, cursor_end)))
    edit = apply_template(text, start, end, template)
    return CursorEdit(
        inserted=edit.source[start:len(edit.source) - (len(text) - end)],
        selection_start=utf16_offset(edit.source, edit.selection_start),
        selection_end=utf16_offset(edit.source, edit.selection_end),
    )


TOOLBAR_TEMPLATES: tuple[InsertTemplate, ...] = (
    InsertTemplate("Bold", "*", "text", "*"),
    InsertTemplate("Italic", "_", "text", "_"),
    InsertTemplate("Heading", "= ", "Heading", "\n"),
    InsertTemplate("List", "- ", "Item", "\n"),
    InsertTemplate("Math", "$ ", "formula", " $"),
    InsertTemplate(
        "Figure",
        '#figure(\n  rect(width: 80%, height: 120pt, fill: rgb("#e0e0e0")),\n  caption: [',
        "Your caption here",
        "],\n)\n",
    ),
    InsertTemplate(
        "Table",
        "#table(\n  columns: 2,\n  [",
        "Header 1",
        "], [Header 2],\n  [Row 1], [Data],\n)\n",
    ),
    InsertTemplate("Citation", "@", "citation"),
    InsertTemplate("Reference", "@", "label"),
)


def image_template(image_id: str) -> InsertTemplate:
    return InsertTemplate("Image", f'#image("{image_id}", width: ', "80%", ")\n")
