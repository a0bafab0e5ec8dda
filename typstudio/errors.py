from __future__ import annotations


class TypstudioError(Exception):
    """Base class for errors raised by typstudio."""


class EmptySourceError(TypstudioError):
    """The source text is blank, so there is nothing to render."""

    def __init__(self, message: str = "Source code is empty") -> None:
        super().__init__(message)


class RenderEngineError(TypstudioError):
    """The typesetting engine refused the compilation unit.

    `message` is shown to the user as-is; the core never parses it.
    """

    def __init__(self, message: str, warnings: tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.message = message
        self.warnings = tuple(warnings)


class ImageLimitReached(TypstudioError):
    def __init__(self, limit: int) -> None:
        super().__init__(f"Maximum image limit reached ({limit})")
        self.limit = limit


class ImageNotFound(TypstudioError, KeyError):
    def __init__(self, image_id: str) -> None:
        super().__init__(f"Image not found: {image_id}")
        self.image_id = image_id

    def __str__(self) -> str:
        return self.args[0]
