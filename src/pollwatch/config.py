"""Configuration objects and YAML loading for the polling watcher."""
from __future__ import annotations

import hashlib
import logging
from dataclasses import InitVar, dataclass, field
from enum import Flag
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml # type: ignore

from .events import EventType
from .exceptions import InvalidConfiguration


logger = logging.getLogger(__name__)

DEFAULT_PATTERN = "*.{*}"
DEFAULT_INTERVAL = 1
DEFAULT_HASH_ALGORITHM = "md5"


class GlobOptions(Flag):
    """Flags controlling how the watch pattern is expanded."""

    NONE = 0
    BRACE = 1  # expand {a,b,c} alternation
    NOSORT = 2  # keep listing order instead of sorting each alternative
    PERIOD = 4  # let wildcards match names starting with "."


@dataclass(frozen=True)
class WatchConfig:
    """Options describing which directory to poll and how often.

    ``interval`` is given in whole seconds; the loop sleeps on
    :attr:`interval_ms`. ``max_iterations`` of ``None`` means the loop only
    ends when stopped. The directory must exist when the config is first
    built; copies made with ``check_directory=False`` skip that check.
    """

    directory: Path
    pattern: str = DEFAULT_PATTERN
    interval: int = DEFAULT_INTERVAL
    glob_options: GlobOptions = GlobOptions.BRACE
    max_iterations: Optional[int] = None
    hash_algorithm: str = DEFAULT_HASH_ALGORITHM
    skip_unreadable_cycles: bool = False

    check_directory: InitVar[bool] = True

    def __post_init__(self, check_directory: bool) -> None:
        if self.directory is None or str(self.directory) == "":
            raise InvalidConfiguration("You must pass in a non-empty directory to watch")
        directory = Path(self.directory)
        if check_directory and not directory.is_dir():
            raise InvalidConfiguration(f"The directory {directory} does not exist on the file system")
        object.__setattr__(self, "directory", directory)

        if not isinstance(self.pattern, str) or not self.pattern:
            raise InvalidConfiguration("pattern must be a non-empty string")
        if not _is_int(self.interval) or self.interval < 0:
            raise InvalidConfiguration("interval must be a non-negative integer number of seconds")
        if not isinstance(self.glob_options, GlobOptions):
            raise InvalidConfiguration("glob_options must be a GlobOptions value")
        if self.max_iterations is not None and (not _is_int(self.max_iterations) or self.max_iterations < 0):
            raise InvalidConfiguration("max_iterations must be a non-negative integer or None")
        try:
            hashlib.new(self.hash_algorithm)
        except (TypeError, ValueError) as exc:
            raise InvalidConfiguration(f"Unsupported hash algorithm: {self.hash_algorithm!r}") from exc

    @property
    def interval_ms(self) -> int:
        return self.interval * 1000

    @property
    def unbounded(self) -> bool:
        return self.max_iterations is None


@dataclass
class ObserverConfig:
    """Observer callback declared in the configuration file."""

    name: str
    module: str
    function: str
    events: Tuple[EventType, ...] = tuple(EventType)
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AppConfig:
    """Top-level configuration structure."""

    watch: WatchConfig
    observers: List[ObserverConfig] = field(default_factory=list)


def load_config(path: Path) -> AppConfig:
    """Load and validate the YAML configuration file."""

    if not path.exists():
        raise InvalidConfiguration(f"Configuration file not found: {path}")

    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as exc:  # pragma: no cover - logging helper
        raise InvalidConfiguration(f"Failed to parse YAML configuration: {exc}") from exc

    if not isinstance(data, dict):
        raise InvalidConfiguration("Configuration root must be a mapping")

    watch_cfg = _parse_watch_config(data.get("watch"), config_path=path)
    observers_cfg = _parse_observers_config(data.get("observers", []))

    return AppConfig(watch=watch_cfg, observers=observers_cfg)


def parse_glob_options(value: Union[None, str, List[Any]], field_name: str = "glob_options") -> GlobOptions:
    """Combine flag names such as ``["brace", "nosort"]`` into a GlobOptions value."""

    if value is None:
        return GlobOptions.NONE
    names = _ensure_str_list(value, field_name)
    options = GlobOptions.NONE
    for name in names:
        try:
            options |= GlobOptions[name.strip().upper()]
        except KeyError as exc:
            allowed = ", ".join(flag.name.lower() for flag in GlobOptions if flag.name != "NONE")
            raise InvalidConfiguration(f"{field_name} entries must be one of: {allowed}") from exc
    return options


def _parse_watch_config(raw: Any, *, config_path: Path) -> WatchConfig:
    if not isinstance(raw, dict):
        raise InvalidConfiguration("'watch' section must be a mapping")

    directory_raw = raw.get("directory")
    if not isinstance(directory_raw, str) or not directory_raw:
        raise InvalidConfiguration("watch.directory must be a string")

    directory = Path(directory_raw)
    if not directory.is_absolute():
        directory = (config_path.parent / directory).resolve()

    pattern = raw.get("pattern", DEFAULT_PATTERN)
    if not isinstance(pattern, str):
        raise InvalidConfiguration("watch.pattern must be a string")

    interval = raw.get("interval", DEFAULT_INTERVAL)
    if not _is_int(interval):
        raise InvalidConfiguration("watch.interval must be an integer number of seconds")

    max_iterations = raw.get("max_iterations")
    if max_iterations is not None and not _is_int(max_iterations):
        raise InvalidConfiguration("watch.max_iterations must be an integer or null")

    if "glob_options" in raw:
        glob_options = parse_glob_options(raw.get("glob_options"), "watch.glob_options")
    else:
        glob_options = GlobOptions.BRACE

    hash_algorithm = raw.get("hash_algorithm", DEFAULT_HASH_ALGORITHM)
    if not isinstance(hash_algorithm, str):
        raise InvalidConfiguration("watch.hash_algorithm must be a string")

    skip_flag = raw.get("skip_unreadable_cycles", False)
    if not isinstance(skip_flag, bool):
        raise InvalidConfiguration("watch.skip_unreadable_cycles must be a boolean")

    return WatchConfig(
        directory=directory,
        pattern=pattern,
        interval=interval,
        glob_options=glob_options,
        max_iterations=max_iterations,
        hash_algorithm=hash_algorithm,
        skip_unreadable_cycles=skip_flag,
    )


def _parse_observers_config(raw: Any) -> List[ObserverConfig]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise InvalidConfiguration("'observers' section must be a list")

    observers: List[ObserverConfig] = []
    for index, item in enumerate(raw):
        if not isinstance(item, dict):
            raise InvalidConfiguration(f"observers[{index}] must be a mapping")

        name = item.get("name") or f"observer_{index}"
        module = item.get("module")
        function = item.get("function")
        options = item.get("options", {})
        events = _parse_event_types(item.get("events"), observer_index=index)

        if not isinstance(module, str) or not isinstance(function, str):
            raise InvalidConfiguration(f"observers[{index}] must include 'module' and 'function' strings")
        if options is None:
            options = {}
        if not isinstance(options, dict):
            raise InvalidConfiguration(f"observers[{index}].options must be a mapping if provided")

        observer_cfg = ObserverConfig(
            name=str(name),
            module=module,
            function=function,
            events=events,
            options=options,
        )
        logger.info(
            "Loaded observer '%s' (%s.%s) events=%s",
            observer_cfg.name,
            observer_cfg.module,
            observer_cfg.function,
            ",".join(kind.value for kind in observer_cfg.events),
        )
        observers.append(observer_cfg)

    return observers


def _parse_event_types(raw: Any, *, observer_index: int) -> Tuple[EventType, ...]:
    if raw is None:
        return tuple(EventType)
    names = _ensure_str_list(raw, f"observers[{observer_index}].events")
    if not names:
        raise InvalidConfiguration(f"observers[{observer_index}].events must not be empty")

    kinds: List[EventType] = []
    for name in names:
        try:
            kind = EventType(name.strip().lower())
        except ValueError as exc:
            allowed = ", ".join(option.value for option in EventType)
            raise InvalidConfiguration(
                f"observers[{observer_index}].events entries must be one of: {allowed}"
            ) from exc
        if kind not in kinds:
            kinds.append(kind)
    return tuple(kinds)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _ensure_str_list(value: Any, field_name: str) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        raise InvalidConfiguration(f"{field_name} must be a list of strings")
    items: List[str] = []
    for elem in value:
        if not isinstance(elem, str):
            raise InvalidConfiguration(f"{field_name} must contain only strings")
        items.append(elem)
    return items
