"""typstudio: Typst editor with a debounced live preview."""

from .assembler import AssemblyResult, CompilationUnit, RenderInputs, SkippedImage, StaticBlob, assemble
from .engine import Document, Page, RenderEngine, RenderMode, TypstCliEngine
from .errors import EmptySourceError, ImageLimitReached, ImageNotFound, RenderEngineError, TypstudioError
from .highlight import SyntaxNode, classify, highlight, highlight_source, parse_source
from .output import format_binary, format_document, format_pages
from .scheduler import EditKind, GenerationCounter, RenderFailure, RenderScheduler, RenderSuccess, run_pipeline

__version__ = "0.1.0"

__all__ = [
    "AssemblyResult",
    "CompilationUnit",
    "Document",
    "EditKind",
    "EmptySourceError",
    "GenerationCounter",
    "ImageLimitReached",
    "ImageNotFound",
    "Page",
    "RenderEngine",
    "RenderEngineError",
    "RenderFailure",
    "RenderInputs",
    "RenderMode",
    "RenderScheduler",
    "RenderSuccess",
    "SkippedImage",
    "StaticBlob",
    "SyntaxNode",
    "TypstCliEngine",
    "TypstudioError",
    "assemble",
    "classify",
    "format_binary",
    "format_document",
    "format_pages",
    "highlight",
    "highlight_source",
    "parse_source",
    "run_pipeline",
]
