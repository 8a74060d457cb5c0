"""Profile resolution: config file or command-line flags into one validated Profile."""

import json
import os
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from pydantic import ValidationError

from .exceptions import (
    ConfigurationError,
    ProfileNotFoundError,
    ProfileValidationError,
)
from .models import (
    EXPORT_FORMATS,
    OPTIONS_MODELS,
    Profile,
    TransformConfig,
)
from .paths import DEFAULT_FILE_NAME_FORMAT, PathLike, anchor
from .protocols import LoggerProtocol

DEFAULT_CONFIG_FILE = "image-transform.config.json"

DATA_ENTRY_PATTERN = re.compile(r"^(\w+)=(.+)$")


@dataclass
class FlagOptions:
    """Profile-shaping command-line flags."""

    source: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    with_enlargement: bool = False
    keep_meta: bool = False
    jpeg: bool = False
    png: bool = False
    webp: bool = False
    avif: bool = False
    out: Optional[str] = None
    name_format: str = DEFAULT_FILE_NAME_FORMAT
    name_remove: Optional[str] = None
    formats: List[str] = field(default_factory=list)

    @property
    def requested_formats(self) -> List[str]:
        return [fmt for fmt in EXPORT_FORMATS if getattr(self, fmt) or fmt in self.formats]


def parse_data_entries(entries: Optional[Iterable[str]]) -> Dict[str, str]:
    """
    Parse repeated ``key=value`` entries.

    Raises:
        ConfigurationError: If an entry does not look like ``key=value``.
    """
    data: Dict[str, str] = {}
    for entry in entries or []:
        match = DATA_ENTRY_PATTERN.match(entry)
        if not match:
            raise ConfigurationError(f"Invalid data format, should be 'key=value': {entry}")
        data[match.group(1)] = match.group(2)
    return data


def load_config(path: PathLike, base_dir: Optional[PathLike] = None) -> TransformConfig:
    resolved = anchor(path, base_dir)
    if not os.path.isfile(resolved):
        raise ConfigurationError(f"Config file not found: {resolved}")
    try:
        with open(resolved, "r", encoding="utf-8") as handle:
            raw = json.load(handle)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Config file {resolved} is not valid JSON: {exc}") from exc
    try:
        return TransformConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigurationError(f"Config file {resolved} is invalid:\n{exc}") from exc


def profile_from_flags(flags: FlagOptions) -> Profile:
    """Build an ad-hoc profile from command-line flags."""
    resize = None
    if flags.width or flags.height:
        resize = {
            "width": flags.width,
            "height": flags.height,
            "withoutEnlargement": not flags.with_enlargement,
        }
    replace = {flags.name_remove: ""} if flags.name_remove else {}
    raw = {
        "name": "cli",
        "source": flags.source,
        "transforms": [{"keepMeta": flags.keep_meta, "resize": resize}],
        "export": {fmt: True for fmt in flags.requested_formats},
        "output": {
            "dir": flags.out,
            "fileNameFormat": flags.name_format,
            "fileNameReplace": replace,
        },
    }
    try:
        return Profile.model_validate(raw)
    except ValidationError as exc:
        raise ProfileValidationError(f"Invalid command-line options:\n{exc}") from exc


def apply_quality(profile: Profile, quality: int) -> Profile:
    """
    Set ``quality`` on every enabled export format.

    A format enabled with ``true`` becomes ``{"quality": quality}``; a
    format with options keeps them and gets ``quality`` set or replaced.
    """
    export = profile.export.model_copy()
    for fmt in EXPORT_FORMATS:
        value = getattr(export, fmt)
        if value is None or value is False:
            continue
        if value is True:
            try:
                setattr(export, fmt, OPTIONS_MODELS[fmt](quality=quality))
            except ValidationError as exc:
                raise ProfileValidationError(f"Invalid quality {quality}:\n{exc}") from exc
        else:
            setattr(export, fmt, value.model_copy(update={"quality": quality}))
    return profile.model_copy(update={"export": export})


def merge_file_name_data(profile: Profile, data: Dict[str, str]) -> Profile:
    """Overlay ``data`` on the profile's template data; ``data`` wins."""
    merged = {**profile.output.file_name_data, **data}
    output = profile.output.model_copy(update={"file_name_data": merged})
    return profile.model_copy(update={"output": output})


def validate_profile(profile: Profile) -> Profile:
    """Re-validate a profile after programmatic edits."""
    try:
        return Profile.model_validate(profile.to_json_dict())
    except ValidationError as exc:
        raise ProfileValidationError(
            f"Profile {profile.name or '<flags>'} is invalid:\n{exc}"
        ) from exc


class ProfileResolver:
    """Resolves the effective Profile for one invocation."""

    def __init__(
        self,
        base_dir: Optional[PathLike] = None,
        logger: Optional[LoggerProtocol] = None,
    ):
        self.base_dir = base_dir
        self._logger = logger

    def profile_from_config(
        self, name: str, config_file: PathLike = DEFAULT_CONFIG_FILE
    ) -> Profile:
        config = load_config(config_file, self.base_dir)
        profile = config.find_profile(name)
        if profile is None:
            raise ProfileNotFoundError(f"Profile not found: {name}")
        if self._logger:
            self._logger.debug(f"Using profile {name} from {config_file}")
        return profile

    def resolve(
        self,
        profile_name: Optional[str] = None,
        config_file: PathLike = DEFAULT_CONFIG_FILE,
        flags: Optional[FlagOptions] = None,
        quality: Optional[int] = None,
        data: Optional[Dict[str, str]] = None,
    ) -> Profile:
        """
        Pick the profile source, then apply the overrides.

        A named profile takes precedence over flags. ``quality`` applies
        only when given; ``data`` is merged into the template data.

        Raises:
            ConfigurationError: If neither a profile name nor a source is
                given, or the config cannot be loaded.
            ProfileNotFoundError: If the named profile does not exist.
            ProfileValidationError: If the resulting profile is invalid.
        """
        if profile_name:
            profile = self.profile_from_config(profile_name, config_file)
        elif flags is not None and flags.source:
            profile = profile_from_flags(flags)
        else:
            raise ConfigurationError("Please provide a profile name or a source path")

        if quality is not None:
            profile = apply_quality(profile, quality)
        if data:
            profile = merge_file_name_data(profile, data)
        return validate_profile(profile)
