"""Directory listing and content hashing for a single poll cycle."""
from __future__ import annotations

import hashlib
import logging
import os
from dataclasses import dataclass, field
from fnmatch import fnmatch
from pathlib import Path
from typing import Dict, FrozenSet, Iterable, List, NewType, Optional, Set, Tuple, Union

from .config import DEFAULT_HASH_ALGORITHM, GlobOptions
from .exceptions import FilesystemError

logger = logging.getLogger(__name__)

Digest = NewType("Digest", str)
PathLike = Union[str, "os.PathLike[str]"]

_CHUNK_SIZE = 65536


@dataclass(frozen=True)
class Snapshot:
    """Matched paths and their content digests captured during one poll."""

    paths: Tuple[Path, ...] = ()
    hashes: Dict[Path, Digest] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "paths", tuple(Path(path) for path in self.paths))
        object.__setattr__(self, "hashes", {Path(path): digest for path, digest in self.hashes.items()})
        unknown = set(self.hashes) - set(self.paths)
        if unknown:
            raise ValueError(f"hashes recorded for paths outside the snapshot: {sorted(map(str, unknown))}")

    @classmethod
    def empty(cls) -> "Snapshot":
        return cls()

    @property
    def path_set(self) -> FrozenSet[Path]:
        return frozenset(self.paths)

    def digest(self, path: Path) -> Optional[Digest]:
        return self.hashes.get(path)

    def __len__(self) -> int:
        return len(self.paths)

    def __contains__(self, path: object) -> bool:
        return path in self.path_set


def build_lookup(directory: PathLike, pattern: str) -> str:
    """Join ``directory`` and ``pattern`` with exactly one path separator."""

    directory_str = os.fspath(directory)
    if directory_str.endswith(os.sep) or (os.altsep and directory_str.endswith(os.altsep)):
        return directory_str + pattern
    return directory_str + os.sep + pattern


def expand_braces(pattern: str) -> List[str]:
    """Expand ``{a,b}`` alternation into the list of plain glob patterns.

    Groups may nest and several groups multiply out left to right, so
    ``"{a,b}.{x,y}"`` gives ``["a.x", "a.y", "b.x", "b.y"]``. A brace with
    no matching close is kept as literal text.
    """

    start = pattern.find("{")
    while start != -1:
        end = _matching_brace(pattern, start)
        if end is not None:
            break
        start = pattern.find("{", start + 1)
    else:
        return [pattern]

    prefix, body, suffix = pattern[:start], pattern[start + 1:end], pattern[end + 1:]
    expanded: List[str] = []
    for alternative in _split_alternatives(body):
        for candidate in expand_braces(prefix + alternative + suffix):
            if candidate not in expanded:
                expanded.append(candidate)
    return expanded


def list_files(
    directory: PathLike,
    pattern: str,
    glob_options: GlobOptions = GlobOptions.BRACE,
) -> List[Path]:
    """Return the regular files directly inside ``directory`` matching ``pattern``.

    Each brace alternative is listed in turn (sorted unless ``NOSORT``) and a
    path matched by several alternatives is only reported the first time.
    Raises :class:`FilesystemError` when the directory cannot be read.
    """

    directory_str = os.fspath(directory)
    try:
        with os.scandir(directory_str) as iterator:
            entries = [entry for entry in iterator if _is_regular_file(entry)]
    except OSError as exc:
        raise FilesystemError(f"Could not read watched directory {directory_str}: {exc}") from exc

    if GlobOptions.BRACE in glob_options:
        alternatives = expand_braces(pattern)
    else:
        alternatives = [pattern]

    names = [entry.name for entry in entries]
    results: List[Path] = []
    seen: Set[str] = set()
    for alternative in alternatives:
        matched = [name for name in names if _matches(name, alternative, glob_options)]
        if GlobOptions.NOSORT not in glob_options:
            matched.sort()
        for name in matched:
            if name in seen:
                continue
            seen.add(name)
            results.append(Path(build_lookup(directory_str, name)))

    logger.debug("Listed %s file(s) in %s matching %r", len(results), directory_str, pattern)
    return results


def hash_files(paths: Iterable[PathLike], algorithm: str = DEFAULT_HASH_ALGORITHM) -> Dict[Path, Digest]:
    """Read every file in ``paths`` and map it to its content digest.

    File content is always read in full; size and modification time are
    never consulted. An empty ``paths`` is an error: callers skip hashing
    for an empty listing.
    """

    path_list = [Path(path) for path in paths]
    if not path_list:
        raise FilesystemError("Could not obtain a list of files to hash for watching")

    return {path: compute_digest(path, algorithm) for path in path_list}


def compute_digest(path: Path, algorithm: str = DEFAULT_HASH_ALGORITHM) -> Digest:
    """Hash the content of a single file."""

    hasher = hashlib.new(algorithm)
    try:
        with open(path, "rb") as handle:
            for chunk in iter(lambda: handle.read(_CHUNK_SIZE), b""):
                hasher.update(chunk)
    except OSError as exc:
        raise FilesystemError(f"Could not hash {path}: {exc}") from exc
    return Digest(hasher.hexdigest())


def take_snapshot(
    directory: PathLike,
    pattern: str,
    glob_options: GlobOptions = GlobOptions.BRACE,
    algorithm: str = DEFAULT_HASH_ALGORITHM,
) -> Snapshot:
    """List and hash the directory; an empty listing skips hashing.

    A file removed between listing and hashing is left out of the snapshot,
    so the next cycle sees it as deleted (or never sees it at all).
    """

    paths = list_files(directory, pattern, glob_options)
    if not paths:
        return Snapshot.empty()

    hashes: Dict[Path, Digest] = {}
    for path in paths:
        try:
            hashes[path] = compute_digest(path, algorithm)
        except FilesystemError as exc:
            if not isinstance(exc.__cause__, FileNotFoundError):
                raise
            logger.debug("%s disappeared before it could be hashed", path)

    return Snapshot(paths=tuple(path for path in paths if path in hashes), hashes=hashes)


def _matches(name: str, pattern: str, glob_options: GlobOptions) -> bool:
    if name.startswith(".") and GlobOptions.PERIOD not in glob_options and not pattern.startswith("."):
        return False
    return fnmatch(name, pattern)


def _is_regular_file(entry: os.DirEntry) -> bool:
    try:
        return entry.is_file()
    except OSError:
        return False


def _matching_brace(text: str, start: int) -> Optional[int]:
    depth = 0
    for index in range(start, len(text)):
        char = text[index]
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index
    return None


def _split_alternatives(body: str) -> List[str]:
    parts: List[str] = []
    depth = 0
    current: List[str] = []
    for char in body:
        if char == "," and depth == 0:
            parts.append("".join(current))
            current = []
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
        current.append(char)
    parts.append("".join(current))
    return parts
