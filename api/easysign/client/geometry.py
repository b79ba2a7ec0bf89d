"""Placement rules for dragging and resizing fields on a page.

Coordinates are in reference units: a page rendered ``REFERENCE_PAGE_WIDTH``
wide, origin top-left, ``x``/``y`` naming the centre of a field.
"""
from typing import NamedTuple, Tuple

REFERENCE_PAGE_WIDTH = 700
MIN_FIELD_WIDTH = 50
MIN_FIELD_HEIGHT = 30
DUPLICATE_OFFSET = 16
MIN_FONT_SIZE = 10
MAX_FONT_SIZE = 48

RESIZE_HANDLES = ("n", "s", "e", "w", "ne", "nw", "se", "sw")


class Box(NamedTuple):
    x: float
    y: float
    width: float
    height: float


class PageSize(NamedTuple):
    width: float
    height: float


def clamp_position_to_page(x: float, y: float, width: float, height: float,
                           page_width: float, page_height: float) -> Tuple[float, float]:
    half_w = width / 2
    half_h = height / 2
    max_x = max(half_w, page_width - half_w)
    max_y = max(half_h, page_height - half_h)
    return min(max(x, half_w), max_x), min(max(y, half_h), max_y)


def clamp_size_to_page(width: float, height: float,
                       page_width: float, page_height: float) -> Tuple[float, float]:
    return min(width, page_width), min(height, page_height)


def resize_field(start: Box, handle: str, dx: float, dy: float, page: PageSize) -> Box:
    """Size and centre of ``start`` after dragging ``handle`` by ``dx``/``dy``."""
    if handle not in RESIZE_HANDLES:
        raise ValueError(f"Unknown resize handle: {handle!r}")

    width, height = start.width, start.height
    if "e" in handle:
        width = max(MIN_FIELD_WIDTH, start.width + dx)
    elif "w" in handle:
        width = max(MIN_FIELD_WIDTH, start.width - dx)
    if "s" in handle:
        height = max(MIN_FIELD_HEIGHT, start.height + dy)
    elif "n" in handle:
        height = max(MIN_FIELD_HEIGHT, start.height - dy)

    # corners keep the starting aspect ratio
    if len(handle) == 2:
        ratio = start.width / start.height
        if width / height > ratio:
            width = height * ratio
        else:
            height = width / ratio

    width, height = clamp_size_to_page(width, height, page.width, page.height)

    cx, cy = start.x, start.y
    if "w" in handle:
        cx = start.x - (width - start.width) / 2
    elif "e" in handle:
        cx = start.x + (width - start.width) / 2
    if "n" in handle:
        cy = start.y - (height - start.height) / 2
    elif "s" in handle:
        cy = start.y + (height - start.height) / 2

    cx, cy = clamp_position_to_page(cx, cy, width, height, page.width, page.height)
    return Box(cx, cy, width, height)


def to_reference_units(value: float, rendered_width: float) -> float:
    return value * REFERENCE_PAGE_WIDTH / rendered_width


def from_reference_units(value: float, rendered_width: float) -> float:
    return value * rendered_width / REFERENCE_PAGE_WIDTH


def clamp_font_size(size: float) -> float:
    return min(max(size, MIN_FONT_SIZE), MAX_FONT_SIZE)
