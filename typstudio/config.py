"""Constants and environment-driven settings."""

from __future__ import annotations

import os
import shlex
import shutil
from pathlib import Path

DATA_DIR_NAME = ".typstudio"
SETTINGS_FILE_NAME = "settings.json"
IMAGES_FILE_NAME = "images.json"

RENDER_DEBOUNCE_MS = 500
TYPST_RENDER_TIMEOUT_SECONDS = 30
IMAGE_ID_LIMIT = 999

# Name the bibliography is registered under; documents cite it with
# #bibliography("refs.yml").
BIBLIOGRAPHY_BLOB_NAME = "refs.yml"
MAIN_FILE_NAME = "main.typ"

SOURCE_KEY = "typst_source"
BIBLIOGRAPHY_KEY = "typst_bibliography"
IMAGE_COUNTER_KEY = "image_counter"


def data_dir() -> Path:
    """Resolve the per-user data directory (override with TYPSTUDIO_HOME)."""
    env_value = os.environ.get("TYPSTUDIO_HOME", "").strip()
    if env_value:
        return Path(env_value).expanduser()
    return Path.home() / DATA_DIR_NAME


def resolve_typst_binary(explicit: str | None = None) -> str | None:
    """Locate the typst executable: argument, TYPSTUDIO_TYPST_BIN, then PATH."""
    candidates: list[str] = []
    if explicit:
        candidates.append(explicit)
    env_value = os.environ.get("TYPSTUDIO_TYPST_BIN", "").strip()
    if env_value:
        candidates.append(str(Path(env_value).expanduser()))
    candidates.append("typst")

    for candidate in candidates:
        found = shutil.which(candidate)
        if found:
            return found
    return None


def typst_extra_args() -> list[str]:
    raw = os.environ.get("TYPSTUDIO_TYPST_ARGS", "").strip()
    if not raw:
        return []
    return shlex.split(raw)
