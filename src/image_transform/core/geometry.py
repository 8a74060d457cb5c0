"""Output dimension arithmetic shared by the image engines."""

import math
from typing import Optional, Tuple

from .models import ResizeOptions

DEFAULT_FIT = "cover"


def _scaled(length: int, scale: float) -> int:
    return max(1, round(length * scale))


def resize_dimensions(
    width: int, height: int, options: ResizeOptions
) -> Optional[Tuple[int, int]]:
    """
    Final size of a ``width`` x ``height`` image after ``options``.

    One missing dimension keeps the aspect ratio. With both dimensions,
    ``cover``/``contain``/``fill`` produce exactly the requested box while
    ``inside``/``outside`` keep the aspect ratio within/around it.

    Returns:
        ``None`` when the resize does not apply, including when it would
        enlarge under ``without_enlargement`` or shrink under
        ``without_reduction``.
    """
    if not options.applies or width <= 0 or height <= 0:
        return None

    fit = options.fit or DEFAULT_FIT
    if options.width and options.height:
        scale_x = options.width / width
        scale_y = options.height / height
        if fit == "inside":
            scale_x = scale_y = min(scale_x, scale_y)
            size = (_scaled(width, scale_x), _scaled(height, scale_y))
        elif fit == "outside":
            scale_x = scale_y = max(scale_x, scale_y)
            size = (_scaled(width, scale_x), _scaled(height, scale_y))
        else:
            if fit == "cover":
                scale_x = scale_y = max(scale_x, scale_y)
            elif fit == "contain":
                scale_x = scale_y = min(scale_x, scale_y)
            size = (options.width, options.height)
    elif options.width:
        scale_x = scale_y = options.width / width
        size = (options.width, _scaled(height, scale_y))
    else:
        scale_x = scale_y = options.height / height
        size = (_scaled(width, scale_x), options.height)

    if options.without_enlargement and (scale_x > 1 or scale_y > 1):
        return None
    if options.without_reduction and (scale_x < 1 or scale_y < 1):
        return None
    return size


def rotated_dimensions(width: int, height: int, angle: float) -> Tuple[int, int]:
    """Bounding box of a ``width`` x ``height`` image rotated by ``angle`` degrees."""
    quarter = angle % 360
    if quarter in (0, 180):
        return width, height
    if quarter in (90, 270):
        return height, width
    radians = math.radians(quarter)
    cos, sin = abs(math.cos(radians)), abs(math.sin(radians))
    return (
        math.ceil(width * cos + height * sin - 1e-9),
        math.ceil(width * sin + height * cos - 1e-9),
    )
