"""Persistent settings and image storage."""

from __future__ import annotations

import base64
import json
import logging
import mimetypes
import os
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path

from .config import IMAGE_COUNTER_KEY, IMAGE_ID_LIMIT
from .errors import ImageLimitReached, ImageNotFound

logger = logging.getLogger(__name__)


class JsonFileStore:
    """String key/value store backed by one JSON file; last write wins."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._values = self._load()

    def _load(self) -> dict[str, str]:
        values: dict[str, str] = {}
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
            if isinstance(payload, dict):
                for key, value in payload.items():
                    if isinstance(key, str) and isinstance(value, str):
                        values[key] = value
        except FileNotFoundError:
            pass
        except (OSError, ValueError) as exc:
            # A damaged store should not keep the editor from starting.
            logger.warning("Ignoring unreadable store %s: %s", self.path, exc)
        return values

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(dict(sorted(self._values.items())), handle, indent=2)
                handle.write("\n")
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def get(self, key: str, default: str | None = None) -> str | None:
        return self._values.get(key, default)

    def put(self, key: str, value: str) -> None:
        self._values[key] = value
        self._save()

    def delete(self, key: str) -> None:
        if self._values.pop(key, None) is not None:
            self._save()

    def keys(self) -> list[str]:
        return sorted(self._values)


class ImageIdAllocator:
    """Hand out zero-padded sequential ids: 001, 002, ... up to `limit`."""

    def __init__(self, store: JsonFileStore, limit: int = IMAGE_ID_LIMIT):
        self.store = store
        self.limit = limit

    def _counter(self) -> int:
        try:
            return int(self.store.get(IMAGE_COUNTER_KEY) or 0)
        except ValueError:
            return 0

    def next_id(self) -> str:
        next_value = self._counter() + 1
        if next_value > self.limit:
            raise ImageLimitReached(self.limit)
        self.store.put(IMAGE_COUNTER_KEY, str(next_value))
        return f"{next_value:03d}"

    def reset(self) -> None:
        self.store.put(IMAGE_COUNTER_KEY, "0")


@dataclass(frozen=True)
class ImageRecord:
    id: str
    filename: str
    data: str
    timestamp: int = 0


class ImageLibrary:
    """Images keyed by allocated id, stored as JSON metadata records."""

    def __init__(self, store: JsonFileStore, allocator: ImageIdAllocator):
        self.store = store
        self.allocator = allocator

    def store_image(self, data: str, filename: str) -> str:
        image_id = self.allocator.next_id()
        record = {
            "id": image_id,
            "filename": filename,
            "data": data,
            "timestamp": int(time.time() * 1000),
        }
        self.store.put(image_id, json.dumps(record))
        logger.info("Image stored with ID: %s (%s)", image_id, filename)
        return image_id

    @staticmethod
    def _parse_record(image_id: str, raw: str) -> ImageRecord | None:
        try:
            payload = json.loads(raw)
        except ValueError:
            return None
        if not isinstance(payload, dict):
            return None
        timestamp = payload.get("timestamp", 0)
        return ImageRecord(
            id=image_id,
            filename=str(payload.get("filename") or ""),
            data=str(payload.get("data") or ""),
            timestamp=int(timestamp) if isinstance(timestamp, (int, float)) else 0,
        )

    def get_image(self, image_id: str) -> str:
        raw = self.store.get(image_id)
        record = self._parse_record(image_id, raw) if raw is not None else None
        if record is None:
            raise ImageNotFound(image_id)
        return record.data

    def list_images(self) -> list[ImageRecord]:
        records = []
        for key in self.store.keys():
            record = self._parse_record(key, self.store.get(key) or "")
            if record is not None:
                records.append(record)
        records.sort(key=lambda record: record.id)
        return records

    def delete_image(self, image_id: str) -> None:
        self.store.delete(image_id)

    def clear(self) -> None:
        """Delete every image and restart ids at 001."""
        for record in self.list_images():
            self.store.delete(record.id)
        self.allocator.reset()
        logger.info("Image library cleared")

    def image_table(self) -> dict[str, str]:
        return {record.id: record.data for record in self.list_images()}


def encode_image_file(path: Path) -> str:
    """Read an image file into a base64 data URL."""
    path = Path(path)
    mime_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    encoded = base64.b64encode(path.read_bytes()).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"
