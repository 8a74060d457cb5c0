"""Output path resolution for exported files."""

import os
from pathlib import Path
from typing import Mapping, Optional, Tuple, Union

from .models import ResolvedTarget
from .naming import (
    MissingTokenPolicy,
    replace_literal_substrings,
    sanitize,
    substitute,
)

DEFAULT_FILE_NAME_FORMAT = "{name}.{ext}"
VERSIONED_FILE_NAME_FORMAT = "{name}__{version}.{ext}"

PathLike = Union[str, "os.PathLike[str]"]


def split_source(source: PathLike) -> Tuple[str, str, str]:
    """Split a path into (directory, base name without extension, extension)."""
    path = os.fspath(source)
    directory = os.path.dirname(path)
    base, dot_ext = os.path.splitext(os.path.basename(path))
    return directory, base, dot_ext[1:]


def anchor(path: PathLike, base_dir: Optional[PathLike]) -> str:
    """Join a relative path onto ``base_dir``; absolute paths pass through."""
    text = os.fspath(path)
    if base_dir is None or os.path.isabs(text):
        return text
    return os.path.join(os.fspath(base_dir), text)


def ensure_ext_suffix(fmt: str) -> str:
    """Guarantee the format string ends with ``.{ext}``."""
    return fmt if fmt.endswith(".{ext}") else f"{fmt}.{{ext}}"


def resolve_target(
    source: PathLike,
    ext: Optional[str] = None,
    dir: Optional[PathLike] = None,
    format: Optional[str] = None,
    replace_map: Optional[Mapping[str, str]] = None,
    format_data: Optional[Mapping[str, str]] = None,
    base_dir: Optional[PathLike] = None,
    missing: MissingTokenPolicy = MissingTokenPolicy.KEEP,
) -> ResolvedTarget:
    """
    Compute where an export of ``source`` is written.

    Args:
        source: Source image path
        ext: New extension without dot, defaults to the source extension
        dir: Output directory override, defaults to the source directory
        format: File name template, defaults to ``{name}.{ext}``
        replace_map: Literal replacements applied to the base name first
        format_data: Extra template tokens; never override ``name``,
            ``ext``, ``orgName`` or ``orgExt``
        base_dir: Anchor for a relative ``dir`` override
        missing: Policy for unknown template tokens

    Returns:
        The resolved directory, full file path and file name
    """
    source_dir, base, original_ext = split_source(source)
    name = replace_literal_substrings(base, replace_map)
    effective_ext = ext or original_ext
    template = ensure_ext_suffix(format or DEFAULT_FILE_NAME_FORMAT)

    data = dict(format_data or {})
    data.update(
        name=name,
        ext=effective_ext,
        orgExt=original_ext,
        orgName=name,
    )

    file_name = sanitize(substitute(template, data, missing))
    target_dir = anchor(dir, base_dir) if dir else source_dir
    return ResolvedTarget(
        dir=target_dir,
        file=os.path.join(target_dir, file_name),
        name=file_name,
    )


def ensure_dir(directory: PathLike) -> None:
    """Create ``directory`` and its parents; succeed if it already exists."""
    if os.fspath(directory):
        Path(directory).mkdir(parents=True, exist_ok=True)
