"""Polling watch loop that diffs consecutive directory snapshots."""
from __future__ import annotations

import dataclasses
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

from .config import GlobOptions, WatchConfig
from .events import EventType, FileEvent
from .exceptions import FilesystemError, WatcherRunningError
from .observers import ObserverRegistry
from .snapshot import Digest, Snapshot, take_snapshot

logger = logging.getLogger(__name__)


@dataclass
class WatcherStats:
    """Counters kept across the lifetime of a watcher."""

    cycles: int = 0
    events_emitted: int = 0
    skipped_cycles: int = 0


@dataclass
class WatcherState:
    """The two most recent snapshots and the cycle count of the current run."""

    previous: Snapshot
    current: Snapshot
    iterations: int = 0


class FileWatcher:
    """Polls one directory and notifies observers of created, deleted and modified files.

    The first cycle only records a baseline. Every later cycle compares the
    fresh snapshot with the one before it. Snapshots are kept between calls
    to :meth:`start`, so a second ``start()`` continues from where the first
    one left off; :meth:`reset` forgets them.

    Everything runs on the calling thread. An exception raised by an
    observer, or a :class:`FilesystemError` while polling, ends the loop
    and propagates out of :meth:`start` (unless the config sets
    ``skip_unreadable_cycles``).
    """

    def __init__(self, config: WatchConfig, observers: Optional[ObserverRegistry] = None):
        self._config = config
        self._observers = observers if observers is not None else ObserverRegistry()
        self._stop_event = threading.Event()
        self._run_lock = threading.Lock()
        self._state: Optional[WatcherState] = None
        self._stats = WatcherStats()

    def start(self) -> int:
        """Run the polling loop until the iteration bound or :meth:`stop`.

        Returns the number of cycles completed by this call.
        """

        if not self._run_lock.acquire(blocking=False):
            raise WatcherRunningError("Watcher is already running")

        iterations = 0
        logger.info(
            "Starting watcher for %s (pattern=%r, interval=%ss, max_iterations=%s)",
            self._config.directory,
            self._config.pattern,
            self._config.interval,
            "unbounded" if self._config.unbounded else self._config.max_iterations,
        )
        try:
            while not self._stop_event.is_set() and not self._bound_reached(iterations):
                self.poll()
                iterations += 1
                if self._state is not None:
                    self._state.iterations = iterations
                if self._bound_reached(iterations):
                    break
                if self._stop_event.wait(self._config.interval_ms / 1000):
                    break
        finally:
            self._stop_event.clear()
            self._run_lock.release()
            logger.info(
                "Watcher stopped after %s cycles (%s cycles, %s events since creation)",
                iterations,
                self._stats.cycles,
                self._stats.events_emitted,
            )
        return iterations

    def stop(self) -> None:
        """Stop the loop before its next cycle.

        A stop requested before :meth:`start` makes that run return without
        polling. The request is consumed when the run ends.
        """

        self._stop_event.set()

    def reset(self) -> None:
        """Forget retained snapshots so the next cycle is a new baseline."""

        if self.is_running:
            raise WatcherRunningError("Cannot reset a running watcher")
        self._state = None
        self._stop_event.clear()

    def poll(self) -> List[FileEvent]:
        """Run a single cycle, notify observers and return the events emitted."""

        try:
            snapshot = self._take_snapshot()
        except FilesystemError as exc:
            if not self._config.skip_unreadable_cycles:
                raise
            self._stats.skipped_cycles += 1
            logger.warning("Skipping poll of %s: %s", self._config.directory, exc)
            return []

        self._stats.cycles += 1
        if self._state is None:
            self._state = WatcherState(previous=snapshot, current=snapshot)
            logger.debug("Recorded baseline of %s file(s) in %s", len(snapshot), self._config.directory)
            return []

        self._state.previous = self._state.current
        self._state.current = snapshot

        events: List[FileEvent] = []
        for event in detect_created_deleted(self._state.previous, self._state.current):
            self._emit(event)
            events.append(event)
        for event in detect_modified(self._state.previous, self._state.current):
            self._emit(event)
            events.append(event)
        return events

    def set_pattern(self, pattern: str) -> None:
        self._replace_config(pattern=pattern)

    def set_interval(self, interval: int) -> None:
        self._replace_config(interval=interval)

    def set_glob_options(self, glob_options: GlobOptions) -> None:
        self._replace_config(glob_options=glob_options)

    def set_max_iterations(self, max_iterations: Optional[int]) -> None:
        self._replace_config(max_iterations=max_iterations)

    @property
    def config(self) -> WatchConfig:
        return self._config

    @property
    def observers(self) -> ObserverRegistry:
        return self._observers

    @property
    def directory(self) -> Path:
        return self._config.directory

    @property
    def pattern(self) -> str:
        return self._config.pattern

    @property
    def interval(self) -> int:
        return self._config.interval

    @property
    def interval_ms(self) -> int:
        return self._config.interval_ms

    @property
    def glob_options(self) -> GlobOptions:
        return self._config.glob_options

    @property
    def max_iterations(self) -> Optional[int]:
        return self._config.max_iterations

    @property
    def current(self) -> Optional[Snapshot]:
        return self._state.current if self._state is not None else None

    @property
    def previous(self) -> Optional[Snapshot]:
        return self._state.previous if self._state is not None else None

    @property
    def files(self) -> Tuple[Path, ...]:
        return self.current.paths if self.current is not None else ()

    @property
    def last_files(self) -> Tuple[Path, ...]:
        return self.previous.paths if self.previous is not None else ()

    @property
    def file_hashes(self) -> Dict[Path, Digest]:
        return dict(self.current.hashes) if self.current is not None else {}

    @property
    def last_file_hashes(self) -> Dict[Path, Digest]:
        return dict(self.previous.hashes) if self.previous is not None else {}

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    @property
    def stats(self) -> WatcherStats:
        return self._stats

    def _take_snapshot(self) -> Snapshot:
        return take_snapshot(
            self._config.directory,
            self._config.pattern,
            self._config.glob_options,
            self._config.hash_algorithm,
        )

    def _emit(self, event: FileEvent) -> None:
        logger.debug("Detected %s: %s", event.event_type.value, event.path)
        self._stats.events_emitted += 1
        self._observers.notify(event.event_type, event.path)

    def _bound_reached(self, iterations: int) -> bool:
        max_iterations = self._config.max_iterations
        return max_iterations is not None and iterations >= max_iterations

    def _replace_config(self, **changes) -> None:
        if self.is_running:
            raise WatcherRunningError("Watcher configuration cannot change while running")
        self._config = dataclasses.replace(self._config, check_directory=False, **changes)


def detect_created_deleted(previous: Snapshot, current: Snapshot) -> Iterator[FileEvent]:
    """Yield DELETE for paths only in ``previous``, then CREATE for paths only in ``current``."""

    previous_paths = previous.path_set
    current_paths = current.path_set

    for path in previous.paths:
        if path not in current_paths:
            yield FileEvent(event_type=EventType.DELETE, path=path, previous_digest=previous.digest(path))

    for path in current.paths:
        if path not in previous_paths:
            yield FileEvent(event_type=EventType.CREATE, path=path, digest=current.digest(path))


def detect_modified(previous: Snapshot, current: Snapshot) -> Iterator[FileEvent]:
    """Yield MODIFIED for paths hashed in both snapshots whose digests differ."""

    for path, digest in current.hashes.items():
        previous_digest = previous.hashes.get(path)
        if previous_digest is None:
            continue
        if digest != previous_digest:
            yield FileEvent(
                event_type=EventType.MODIFIED,
                path=path,
                digest=digest,
                previous_digest=previous_digest,
            )
