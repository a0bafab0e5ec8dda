from __future__ import annotations

import stat
import sys
import threading
import time
from pathlib import Path

import pytest
from PySide6.QtCore import QCoreApplication

from typstudio.engine import Document, Page, RenderMode
from typstudio.errors import RenderEngineError


@pytest.fixture(scope="session")
def qapp():
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app


def _wait_until(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        QCoreApplication.processEvents()
        if predicate():
            return True
        time.sleep(0.005)
    QCoreApplication.processEvents()
    return bool(predicate())


def _spin(seconds: float) -> None:
    deadline = time.monotonic() + seconds
    while time.monotonic() < deadline:
        QCoreApplication.processEvents()
        time.sleep(0.005)


@pytest.fixture
def wait_until(qapp):
    return _wait_until


@pytest.fixture
def spin(qapp):
    return _spin


class RecordingEngine:
    """Renders one page per call whose fragment echoes the source."""

    def __init__(self) -> None:
        self.calls = []
        self._lock = threading.Lock()

    def render(self, unit, mode):
        with self._lock:
            self.calls.append((unit, mode))
        if mode is RenderMode.PDF:
            return Document((Page("", 595.0, 842.0),), b"%PDF-fake")
        return Document((Page(f"<svg>{unit.source}</svg>", 595.0, 842.0),))


class FailingEngine:
    def __init__(self, message: str = "error: unknown variable: foo") -> None:
        self.message = message
        self.calls = []

    def render(self, unit, mode):
        self.calls.append((unit, mode))
        raise RenderEngineError(self.message)


class GatedEngine:
    """Blocks call N until gate N is opened, so tests control completion order."""

    def __init__(self, gates: int = 4) -> None:
        self.gates = [threading.Event() for _ in range(gates)]
        self.calls = []
        self._lock = threading.Lock()

    def render(self, unit, mode):
        with self._lock:
            index = len(self.calls)
            self.calls.append((unit, mode))
        self.gates[index].wait(timeout=5)
        return Document((Page(f"<svg>{unit.source}</svg>"),))

    def open_all(self) -> None:
        for gate in self.gates:
            gate.set()


@pytest.fixture
def make_stub(tmp_path):
    """Write an executable shell script standing in for the typst binary."""
    if sys.platform == "win32":
        pytest.skip("shell stand-ins need a POSIX shell")

    def factory(body: str, name: str = "typst-stub") -> Path:
        path = tmp_path / name
        path.write_text("#!/bin/sh\n" + body, encoding="utf-8")
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return path

    return factory
