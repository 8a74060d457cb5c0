"""Human-readable formatting of export reports."""

import math
from typing import Optional

from .models import ExportReport

UNITS = ("B", "kB", "MB", "GB", "TB", "PB")


def format_size(size: float) -> str:
    """
    Format a byte count with decimal units and three significant digits.

    Examples:
        >>> format_size(999)
        '999 B'
        >>> format_size(1234)
        '1.23 kB'
    """
    if size < 1:
        return f"{size:g} B"
    exponent = min(int(math.floor(math.log10(size) / 3)), len(UNITS) - 1)
    value = size / 1000**exponent
    return f"{float(f'{value:.3g}'):g} {UNITS[exponent]}"


def percent(base: float, value: float, char: bool = True, sign: bool = False) -> str:
    """
    Express ``value`` as a rounded percentage of ``base``.

    Examples:
        >>> percent(100, 50)
        '50%'
        >>> percent(100, 50, sign=True)
        '↓ 50%'
    """
    result = round(value / base * 100) if base else 0
    text = f"{result}{'%' if char else ''}"
    if sign:
        text = f"{'↓' if value < base else '↑'} {text}"
    return text


def change_marker(base: float, value: float) -> str:
    if value > base:
        return "↑"
    if value < base:
        return "↓"
    return "="


def format_report(report: ExportReport, label: Optional[str] = None) -> str:
    """One log line: label, output path, dimensions, sizes and change."""
    label = label if label is not None else report.label
    parts = [
        f"[ {label} ]" if label else "",
        report.target.file,
        f"{report.output.width}x{report.output.height}",
        f"{format_size(report.output.size)} / {format_size(report.source_size)}",
        f"{percent(report.source_size, report.output.size)} {change_marker(report.source_size, report.output.size)}",
    ]
    return "   ".join(part for part in parts if part)
