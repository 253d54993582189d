"""Shared fixtures for watcher tests."""

import pytest

from pollwatch.events import EventType
from pollwatch.observers import ObserverRegistry


@pytest.fixture
def watch_dir(tmp_path):
    """Directory holding three files with different extensions."""
    directory = tmp_path / "watcher-test"
    directory.mkdir()
    (directory / "config.ini").write_text("[]")
    (directory / "test.php").write_text("<?php ?>")
    (directory / "my.js").write_text("console.log('hello world'); ")
    return directory


class Recorder:
    """Registry plus the (event_type, path) pairs it received."""

    def __init__(self):
        self.registry = ObserverRegistry()
        self.events = []
        for kind in EventType:
            self.registry.register(kind, self._make_observer(kind))

    def _make_observer(self, kind):
        def observer(path):
            self.events.append((kind, path))
        return observer

    def of(self, kind):
        return [path for event_kind, path in self.events if event_kind == kind]


@pytest.fixture
def recorder():
    return Recorder()
