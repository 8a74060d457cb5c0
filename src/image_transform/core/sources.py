"""Source discovery: expand paths, directories and glob patterns into files."""

import glob
import os
import re
from enum import Enum
from typing import List, Optional, Sequence, Union

from .paths import PathLike, anchor
from .protocols import LoggerProtocol

GLOB_CHARACTERS = ("*", "?", "{")
FILE_PATTERN = re.compile(r"\.(\w+)$")
DIRECTORY_IMAGE_PATTERN = "**/*.{jpg,jpeg,png}"
DIRECTORY_IMAGE_EXTENSIONS = ("jpg", "jpeg", "png")

SourceSpec = Union[str, Sequence[str], None]


class SourceKind(str, Enum):
    GLOB = "glob"
    FILE = "file"
    DIRECTORY = "directory"


def classify_source(source: str) -> SourceKind:
    """Glob if it has a glob character, file if it ends in ``.ext``, else directory."""
    if any(char in source for char in GLOB_CHARACTERS):
        return SourceKind.GLOB
    if FILE_PATTERN.search(source):
        return SourceKind.FILE
    return SourceKind.DIRECTORY


def _split_alternatives(body: str) -> List[str]:
    parts: List[str] = []
    depth = 0
    current = ""
    for char in body:
        if char == "," and depth == 0:
            parts.append(current)
            current = ""
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
        current += char
    parts.append(current)
    return parts


def expand_braces(pattern: str) -> List[str]:
    """Expand ``{a,b}`` alternatives: ``"*.{jpg,png}"`` -> ``["*.jpg", "*.png"]``."""
    start = pattern.find("{")
    if start == -1:
        return [pattern]

    depth = 0
    end = -1
    for index in range(start, len(pattern)):
        if pattern[index] == "{":
            depth += 1
        elif pattern[index] == "}":
            depth -= 1
            if depth == 0:
                end = index
                break
    if end == -1:
        return [pattern]

    prefix, body, rest = pattern[:start], pattern[start + 1 : end], pattern[end + 1 :]
    alternatives = _split_alternatives(body)
    tails = expand_braces(rest)
    if len(alternatives) < 2:
        literal = pattern[start : end + 1]
        return [prefix + literal + tail for tail in tails]

    expanded: List[str] = []
    for alternative in alternatives:
        for head in expand_braces(prefix + alternative):
            for tail in tails:
                expanded.append(head + tail)
    return expanded


def glob_to_regex(pattern: str) -> "re.Pattern[str]":
    """Compile a glob (no braces) to a regex; ``**`` may span directories."""
    out = ""
    index = 0
    while index < len(pattern):
        if pattern.startswith("**/", index):
            out += "(?:.*/)?"
            index += 3
            continue
        if pattern.startswith("**", index):
            out += ".*"
            index += 2
            continue
        char = pattern[index]
        if char == "*":
            out += "[^/]*"
        elif char == "?":
            out += "[^/]"
        elif char == "[" and "]" in pattern[index + 1 :]:
            close = pattern.index("]", index + 1)
            body = pattern[index + 1 : close].replace("\\", "\\\\")
            if body.startswith("!"):
                body = "^" + body[1:]
            out += f"[{body}]"
            index = close
        else:
            out += re.escape(char)
        index += 1
    return re.compile(f"(?s:{out})\\Z")


def _posix(path: str) -> str:
    return os.path.normpath(path).replace("\\", "/")


def is_hidden(path: str) -> bool:
    """Dot-file check on the last path component."""
    name = os.path.basename(os.path.normpath(path))
    return name.startswith(".") and name not in (".", "..")


def glob_files(pattern: str) -> List[str]:
    """Expand a glob pattern (with braces) into sorted non-directory paths."""
    found: List[str] = []
    seen = set()
    for expanded in expand_braces(pattern):
        for path in glob.glob(expanded, recursive=True):
            if path in seen or os.path.isdir(path) or is_hidden(path):
                continue
            seen.add(path)
            found.append(path)
    return sorted(found)


def source_matches(source: str, path: str, base_dir: Optional[PathLike] = None) -> bool:
    """Whether ``path`` belongs to the files selected by ``source``."""
    kind = classify_source(source)
    candidate = _posix(path)
    if is_hidden(candidate):
        return False

    if kind is SourceKind.FILE:
        return candidate == _posix(anchor(source, base_dir))

    if kind is SourceKind.DIRECTORY:
        root = _posix(anchor(source, base_dir))
        inside = root == "." or candidate.startswith(root.rstrip("/") + "/")
        return inside and os.path.splitext(candidate)[1][1:] in DIRECTORY_IMAGE_EXTENSIONS

    for expanded in expand_braces(_posix(anchor(source, base_dir))):
        if glob_to_regex(expanded).match(candidate):
            return True
    return False


def watch_root(source: str, base_dir: Optional[PathLike] = None) -> str:
    """Directory that must be observed to see changes for ``source``."""
    kind = classify_source(source)
    anchored = anchor(source, base_dir)
    if kind is SourceKind.DIRECTORY:
        return anchored or "."
    if kind is SourceKind.FILE:
        return os.path.dirname(anchored) or "."

    static: List[str] = []
    for part in anchored.split(os.sep):
        if any(char in part for char in GLOB_CHARACTERS + ("[",)):
            break
        static.append(part)
    root = os.sep.join(static)
    if anchored.startswith(os.sep) and not root:
        return os.sep
    return root or "."


class LocalFileDiscoveryService:
    """Service for expanding a profile ``source`` into candidate files."""

    def __init__(
        self,
        logger: Optional[LoggerProtocol] = None,
        base_dir: Optional[PathLike] = None,
    ):
        self._logger = logger
        self._base_dir = base_dir

    @property
    def base_dir(self) -> Optional[PathLike]:
        return self._base_dir

    def discover_files(self, source_spec: SourceSpec) -> List[str]:
        """
        Expand ``source_spec`` into an ordered list of file paths.

        Lists are expanded entry by entry and concatenated in order;
        duplicates are kept.
        """
        if source_spec is None:
            return []
        sources = [source_spec] if isinstance(source_spec, str) else list(source_spec)

        files: List[str] = []
        for source in sources:
            if source:
                files.extend(self.discover_source(source))
        return files

    def discover_source(self, source: str) -> List[str]:
        kind = classify_source(source)
        if self._logger:
            self._logger.debug(f"Source {source} detected as {kind.value}")

        if kind is SourceKind.GLOB:
            if self._base_dir is not None and not os.path.isabs(source):
                pattern = os.path.join(glob.escape(os.fspath(self._base_dir)), source)
            else:
                pattern = source
            return glob_files(pattern)

        if kind is SourceKind.FILE:
            # Existence is checked when the file is processed.
            return [anchor(source, self._base_dir)]

        directory = glob.escape(anchor(source, self._base_dir))
        pattern = os.path.join(directory, DIRECTORY_IMAGE_PATTERN) if directory else DIRECTORY_IMAGE_PATTERN
        return glob_files(pattern)
