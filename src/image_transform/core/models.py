"""Shared data models for image-transform.

Config-facing models accept the camelCase keys used in
``image-transform.config.json`` and expose snake_case attributes.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)
from pydantic.alias_generators import to_camel


EXPORT_FORMATS: Tuple[str, ...] = ("jpeg", "png", "webp", "avif")

# File extension written for each export format.
FORMAT_EXTENSIONS: Dict[str, str] = {
    "jpeg": "jpg",
    "png": "png",
    "webp": "webp",
    "avif": "avif",
}

FitMode = Literal["cover", "contain", "fill", "inside", "outside"]
Kernel = Literal["nearest", "cubic", "mitchell", "lanczos2", "lanczos3"]


class CamelModel(BaseModel):
    """Base model reading camelCase JSON keys into snake_case fields."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class RgbaColor(CamelModel):
    r: Optional[int] = Field(default=None, ge=0, le=255)
    g: Optional[int] = Field(default=None, ge=0, le=255)
    b: Optional[int] = Field(default=None, ge=0, le=255)
    alpha: Optional[float] = Field(default=None, ge=0, le=1)


Background = Union[str, RgbaColor]


class ResizeOptions(CamelModel):
    """Resize step of a transform action."""

    width: Optional[int] = Field(default=None, gt=0)
    height: Optional[int] = Field(default=None, gt=0)
    fit: Optional[FitMode] = None
    position: Optional[Union[str, int]] = None
    background: Optional[Background] = None
    without_enlargement: Optional[bool] = None
    without_reduction: Optional[bool] = None
    fast_shrink_on_load: Optional[bool] = None
    kernel: Optional[Kernel] = None

    @property
    def applies(self) -> bool:
        """A resize without width and height is a no-op."""
        return bool(self.width or self.height)


class RotateExtra(CamelModel):
    background: Optional[Background] = None


class RotateOptions(CamelModel):
    """Rotate step of a transform action, clockwise degrees."""

    angle: float
    background: Optional[Background] = None
    options: Optional[RotateExtra] = None

    @property
    def fill(self) -> Optional[Background]:
        if self.background is not None:
            return self.background
        return self.options.background if self.options else None


class TransformAction(CamelModel):
    """One ordered step of the transform pipeline."""

    name: Optional[str] = None
    label: Optional[str] = None
    keep_meta: bool = False
    resize: Optional[ResizeOptions] = None
    rotate: Optional[RotateOptions] = None

    @property
    def tag(self) -> Optional[str]:
        return self.label or self.name


class OutputFormatOptions(CamelModel):
    force: Optional[bool] = None
    quality: Optional[int] = Field(default=None, ge=1, le=100)


class JpegOptions(OutputFormatOptions):
    progressive: Optional[bool] = None
    chroma_subsampling: Optional[str] = None
    trellis_quantisation: Optional[bool] = None
    overshoot_deringing: Optional[bool] = None
    optimise_scans: Optional[bool] = None
    optimise_coding: Optional[bool] = None
    optimize_coding: Optional[bool] = None
    quantisation_table: Optional[int] = None
    quantization_table: Optional[int] = None
    mozjpeg: Optional[bool] = None


class PngOptions(OutputFormatOptions):
    progressive: Optional[bool] = None
    compression_level: Optional[int] = Field(default=None, ge=0, le=9)
    adaptive_filtering: Optional[bool] = None
    effort: Optional[int] = None
    palette: Optional[bool] = None
    colors: Optional[int] = Field(default=None, ge=2, le=256)
    dither: Optional[float] = None


class WebpOptions(OutputFormatOptions):
    alpha_quality: Optional[int] = Field(default=None, ge=0, le=100)
    lossless: Optional[bool] = None
    near_lossless: Optional[bool] = None
    smart_subsample: Optional[bool] = None
    effort: Optional[int] = Field(default=None, ge=0, le=6)
    min_size: Optional[bool] = None
    mixed: Optional[bool] = None
    loop: Optional[int] = None
    delay: Optional[Union[int, List[int]]] = None


class AvifOptions(OutputFormatOptions):
    lossless: Optional[bool] = None
    effort: Optional[int] = Field(default=None, ge=0, le=9)
    chroma_subsampling: Optional[str] = None


FormatOptions = Union[JpegOptions, PngOptions, WebpOptions, AvifOptions]

OPTIONS_MODELS: Dict[str, type] = {
    "jpeg": JpegOptions,
    "png": PngOptions,
    "webp": WebpOptions,
    "avif": AvifOptions,
}


@dataclass(frozen=True)
class UseDefaults:
    """Export entry given as ``true``: encoder defaults."""

    def to_options(self) -> Dict[str, Any]:
        return {}


@dataclass(frozen=True)
class WithOptions:
    """Export entry given as an options object."""

    options: Dict[str, Any]

    def to_options(self) -> Dict[str, Any]:
        return dict(self.options)


ExportSetting = Union[UseDefaults, WithOptions]


class ExportMap(CamelModel):
    """Requested output encodings; ``true`` means encoder defaults."""

    jpeg: Optional[Union[bool, JpegOptions]] = None
    png: Optional[Union[bool, PngOptions]] = None
    webp: Optional[Union[bool, WebpOptions]] = None
    avif: Optional[Union[bool, AvifOptions]] = None

    def settings(self) -> Dict[str, ExportSetting]:
        """Normalize the truthy entries, in canonical format order."""
        result: Dict[str, ExportSetting] = {}
        for fmt in EXPORT_FORMATS:
            value = getattr(self, fmt)
            if value is None or value is False:
                continue
            if value is True:
                result[fmt] = UseDefaults()
            else:
                result[fmt] = WithOptions(value.model_dump(exclude_none=True))
        return result

    @property
    def has_exports(self) -> bool:
        return bool(self.settings())


class OutputOptions(CamelModel):
    """Naming policy for exported files."""

    dir: Optional[str] = None
    file_name_format: Optional[str] = None
    file_name_replace: Dict[str, str] = Field(default_factory=dict)
    file_name_data: Dict[str, str] = Field(default_factory=dict)

    @field_validator("file_name_data", mode="before")
    @classmethod
    def _stringify_data(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {str(k): str(v) for k, v in value.items()}
        return value

    @field_validator("file_name_replace", "file_name_data", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return {} if value is None else value


class Profile(CamelModel):
    """Declarative description of one transform run."""

    name: Optional[str] = None
    source: Optional[Union[str, List[str]]] = None
    transforms: List[TransformAction] = Field(
        default_factory=list,
        validation_alias=AliasChoices("transforms", "transform"),
    )
    export: ExportMap
    output: OutputOptions = Field(default_factory=OutputOptions)

    @field_validator("transforms", mode="before")
    @classmethod
    def _single_action(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, (dict, TransformAction)):
            return [value]
        return value

    @field_validator("output", mode="before")
    @classmethod
    def _default_output(cls, value: Any) -> Any:
        return {} if value is None else value

    @property
    def sources(self) -> List[str]:
        if self.source is None:
            return []
        if isinstance(self.source, str):
            return [self.source] if self.source else []
        return list(self.source)


class TransformConfig(CamelModel):
    """Top level of ``image-transform.config.json``."""

    schema_url: Optional[str] = Field(default=None, alias="$schema")
    version: float
    profiles: List[Profile] = Field(default_factory=list)

    def find_profile(self, name: str) -> Optional[Profile]:
        for profile in self.profiles:
            if profile.name == name:
                return profile
        return None


class RunConfig(BaseModel):
    """Runtime settings for one invocation."""

    concurrency: int = Field(default=1, ge=1, le=10)
    watch: bool = False
    watch_initial: bool = False
    strict: bool = False
    debug: bool = False
    base_dir: Optional[Path] = None
    # Seconds a file size must stay unchanged before a watch event fires.
    stability_threshold: float = Field(default=2.0, ge=0)
    poll_interval: float = Field(default=0.1, gt=0)


@dataclass(frozen=True)
class ImageMetadata:
    width: int
    height: int
    format: Optional[str]
    size_bytes: int


@dataclass(frozen=True)
class OutputInfo:
    width: int
    height: int
    size: int


@dataclass(frozen=True)
class ResolvedTarget:
    """Output location computed for one export."""

    dir: str
    file: str
    name: str


@dataclass(frozen=True)
class SourceDescriptor:
    """Stat-backed view of one input file for one processing pass."""

    file_path: str
    file_extension: str
    width: int
    height: int
    format: Optional[str]
    byte_size: int
    stat: Optional[os.stat_result] = None


class ExportReport(BaseModel):
    """Result of one successful export."""

    model_config = ConfigDict(frozen=True)

    source_file: str
    source_size: int
    format: str
    output: OutputInfo
    target: ResolvedTarget
    label: Optional[str] = None

    @property
    def output_path(self) -> str:
        return self.target.file

    @property
    def is_larger_than_source(self) -> bool:
        return self.output.size > self.source_size


class BatchResult(BaseModel):
    """Aggregated outcome of a batch run."""

    total_files: int = 0
    processed_files: int = 0
    failed_files: int = 0
    skipped_files: int = 0
    planned_exports: int = 0
    failed_exports: int = 0
    reports: List[ExportReport] = Field(default_factory=list)
    processing_time: float = 0.0

    @property
    def succeeded_exports(self) -> int:
        return len(self.reports)

    @property
    def has_failures(self) -> bool:
        return self.failed_files > 0 or self.failed_exports > 0
