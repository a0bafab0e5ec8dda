"""Editor state: the document, its bibliography and its images."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

from .assembler import RenderInputs
from .config import BIBLIOGRAPHY_KEY, IMAGES_FILE_NAME, SETTINGS_FILE_NAME, SOURCE_KEY, data_dir
from .scheduler import EditKind
from .storage import ImageIdAllocator, ImageLibrary, JsonFileStore

DEFAULT_SOURCE = """#set page(paper: "a4")
#set text(size: 11pt)

= Introduction

Typst documents render here as you type. Math such as $a^2 + b^2 = c^2$
is typeset inline, and references like @example2024 resolve against the
bibliography.

#bibliography("refs.yml")
"""

DEFAULT_BIBLIOGRAPHY = """example2024:
  type: article
  title: "Example Research Paper"
  author: ["Smith, J.", "Doe, A."]
  date: 2024
  journal: "Journal of Examples"
  volume: 10
  pages: "123-145"

typst2023:
  type: web
  title: "Typst Documentation"
  author: "Typst Team"
  date: 2023
  url: "https://typst.app"
"""


class EditorSession:
    """Owns the editable state, persists it, and reports each edit."""

    def __init__(
        self,
        settings: JsonFileStore,
        images: ImageLibrary,
        on_edit: Callable[[EditKind], object] | None = None,
    ):
        self.settings = settings
        self.images = images
        self.on_edit = on_edit
        self._source = settings.get(SOURCE_KEY, DEFAULT_SOURCE) or ""
        self._bibliography = settings.get(BIBLIOGRAPHY_KEY, DEFAULT_BIBLIOGRAPHY) or ""
        self._image_table = images.image_table()

    @classmethod
    def open(cls, directory: Path | None = None, on_edit: Callable[[EditKind], object] | None = None) -> EditorSession:
        base = Path(directory) if directory is not None else data_dir()
        settings = JsonFileStore(base / SETTINGS_FILE_NAME)
        library = ImageLibrary(JsonFileStore(base / IMAGES_FILE_NAME), ImageIdAllocator(settings))
        return cls(settings, library, on_edit)

    @property
    def source(self) -> str:
        return self._source

    @property
    def bibliography(self) -> str:
        return self._bibliography

    @property
    def image_table(self) -> dict[str, str]:
        return dict(self._image_table)

    def _edited(self, kind: EditKind) -> None:
        if self.on_edit is not None:
            self.on_edit(kind)

    def set_source(self, source: str) -> None:
        if source == self._source:
            return
        self._source = source
        self.settings.put(SOURCE_KEY, source)
        self._edited(EditKind.SOURCE)

    def set_bibliography(self, bibliography: str) -> None:
        if bibliography == self._bibliography:
            return
        self._bibliography = bibliography
        self.settings.put(BIBLIOGRAPHY_KEY, bibliography)
        self._edited(EditKind.BIBLIOGRAPHY)

    def add_image(self, data: str, filename: str) -> str:
        image_id = self.images.store_image(data, filename)
        self._image_table[image_id] = data
        self._edited(EditKind.IMAGES)
        return image_id

    def remove_image(self, image_id: str) -> None:
        self.images.delete_image(image_id)
        if self._image_table.pop(image_id, None) is not None:
            self._edited(EditKind.IMAGES)

    def clear_images(self) -> None:
        had_images = bool(self._image_table)
        self.images.clear()
        self._image_table.clear()
        if had_images:
            self._edited(EditKind.IMAGES)

    def snapshot(self) -> RenderInputs:
        return RenderInputs.snapshot(self._source, self._bibliography, self._image_table)
