"""Observer registration, config-driven loading and dispatch."""
from __future__ import annotations

import importlib
import logging
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from types import ModuleType
from typing import Any, Callable, Dict, Iterable, List, cast

from .config import ObserverConfig
from .events import EventType
from .exceptions import InvalidConfiguration

logger = logging.getLogger(__name__)


Observer = Callable[[Path], None]
ObserverCallback = Callable[["ObserverContext", Dict[str, Any]], None]


@dataclass(frozen=True)
class ObserverContext:
    """Context passed to observers declared in the configuration file."""

    event_type: EventType
    path: Path
    directory: Path


@dataclass
class ObserverAction:
    """Configured callback bound to its options."""

    name: str
    callback: ObserverCallback
    options: Dict[str, Any]
    directory: Path

    def invoke(self, event_type: EventType, path: Path) -> None:
        logger.debug("Dispatching observer %s (%s %s)", self.name, event_type.value, path)
        context = ObserverContext(event_type=event_type, path=path, directory=self.directory)
        self.callback(context, self.options)


class ObserverRegistry:
    """Ordered observers per event kind.

    :meth:`notify` calls every observer registered for the kind, in
    registration order, on the caller's thread. Exceptions raised by an
    observer are not caught here; they reach whoever triggered the
    notification and abort the current poll.
    """

    def __init__(self) -> None:
        self._observers: Dict[EventType, List[Observer]] = {kind: [] for kind in EventType}

    @classmethod
    def from_config(cls, configs: Iterable[ObserverConfig], *, directory: Path) -> "ObserverRegistry":
        registry = cls()
        for config in configs:
            action = _load_action(config, directory)
            for kind in config.events:
                registry.register(kind, partial(action.invoke, kind))
        return registry

    def register(self, event_type: EventType, observer: Observer) -> Observer:
        kind = EventType(event_type)
        if not callable(observer):
            raise TypeError(f"observer for {kind.value} must be callable")
        self._observers[kind].append(observer)
        return observer

    def on(self, event_type: EventType) -> Callable[[Observer], Observer]:
        """Decorator form of :meth:`register`."""

        def decorator(observer: Observer) -> Observer:
            return self.register(event_type, observer)

        return decorator

    def unregister(self, event_type: EventType, observer: Observer) -> bool:
        observers = self._observers[EventType(event_type)]
        try:
            observers.remove(observer)
        except ValueError:
            return False
        return True

    def observers(self, event_type: EventType) -> List[Observer]:
        return list(self._observers[EventType(event_type)])

    def notify(self, event_type: EventType, path: Path) -> None:
        for observer in list(self._observers[EventType(event_type)]):
            observer(path)

    def clear(self) -> None:
        for observers in self._observers.values():
            observers.clear()

    def __len__(self) -> int:
        return sum(len(observers) for observers in self._observers.values())


def _load_action(config: ObserverConfig, directory: Path) -> ObserverAction:
    module = _import_module(config.module)
    try:
        callback = getattr(module, config.function)
    except AttributeError as exc:
        raise InvalidConfiguration(
            f"Observer '{config.name}' could not find function '{config.function}' in {config.module}"
        ) from exc

    if not callable(callback):
        raise InvalidConfiguration(
            f"Observer '{config.name}' attribute '{config.function}' in {config.module} is not callable"
        )

    callback_fn = cast(ObserverCallback, callback)
    return ObserverAction(
        name=config.name,
        callback=callback_fn,
        options=dict(config.options or {}),
        directory=directory,
    )


def _import_module(module_path: str) -> ModuleType:
    try:
        return importlib.import_module(module_path)
    except ImportError as exc:
        raise InvalidConfiguration(f"Unable to import observer module '{module_path}'") from exc
