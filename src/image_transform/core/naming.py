"""File name templating: token substitution, literal replacement, sanitizing.

All functions here are pure.
"""

import re
from enum import Enum
from typing import Mapping, Optional

from .exceptions import TemplateError

TOKEN_PATTERN = re.compile(r"\{(\w+)\}")

# Characters that are unsafe in a file name on at least one platform.
UNSAFE_CHARACTERS = re.compile(r'["%*/:<>?\\|]')


class MissingTokenPolicy(str, Enum):
    """What ``substitute`` emits for a token absent from the data map."""

    EMPTY = "empty"
    NAME = "name"
    KEEP = "keep"
    ERROR = "error"


def substitute(
    fmt: str,
    data: Mapping[str, str],
    missing: MissingTokenPolicy = MissingTokenPolicy.KEEP,
) -> str:
    """
    Replace ``{token}`` placeholders in ``fmt`` with values from ``data``.

    Args:
        fmt: Format string, e.g. ``"{name}@2x.{ext}"``
        data: Token values
        missing: Policy for tokens not present in ``data``

    Returns:
        The formatted string

    Raises:
        TemplateError: If a token is missing and the policy is ``ERROR``
    """

    def _replace(match: "re.Match[str]") -> str:
        token = match.group(1)
        if token in data:
            return str(data[token])
        if missing is MissingTokenPolicy.EMPTY:
            return ""
        if missing is MissingTokenPolicy.NAME:
            return token
        if missing is MissingTokenPolicy.ERROR:
            raise TemplateError(f"Unknown file name token: {{{token}}}")
        return match.group(0)

    return TOKEN_PATTERN.sub(_replace, fmt)


def replace_literal_substrings(text: str, mapping: Optional[Mapping[str, str]]) -> str:
    """Apply each ``old -> new`` replacement in order, on the whole string."""
    if not mapping:
        return text
    for old, new in mapping.items():
        if old:
            text = text.replace(old, new)
    return text


def sanitize(name: str) -> str:
    """
    Reduce ``name`` to a bare, path-safe file name.

    Directory components are dropped first, then unsafe characters are
    removed: ``"../../etc/passwd"`` becomes ``"passwd"`` and
    ``"a:b*c?.jpg"`` becomes ``"abc.jpg"``.

    Raises:
        TemplateError: If nothing usable is left
    """
    bare = re.split(r"[/\\]", name)[-1]
    cleaned = UNSAFE_CHARACTERS.sub("", bare).strip()
    if cleaned in ("", ".", ".."):
        raise TemplateError(f"File name {name!r} is empty after sanitizing")
    return cleaned
