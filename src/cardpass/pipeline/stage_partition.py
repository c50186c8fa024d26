"""Partition Stage - Split a card image into field regions.

Regions come from a fixed fractional layout table scaled to the image
dimensions. Pure function of the image size; no detection involved.
"""

import math

import numpy as np

from cardpass.models import DEFAULT_LAYOUT, CardImage, CardLayout, FieldType, Region


def compute_region(
    field_type: FieldType,
    layout: CardLayout,
    image_width: int,
    image_height: int,
) -> Region:
    """Scale one layout box to pixel coordinates.

    Args:
        field_type: Field whose box to scale.
        layout: Fractional layout table.
        image_width: Image width in pixels.
        image_height: Image height in pixels.

    Returns:
        Region inside the image with positive width and height.
    """
    box = layout.box_for(field_type)

    x = math.floor(image_width * box.fx)
    y = math.floor(image_height * box.fy)
    width = math.floor(image_width * box.fw)
    height = math.floor(image_height * box.fh)

    # Tiny images can floor a dimension to zero
    width = max(1, width)
    height = max(1, height)
    x = min(x, image_width - width)
    y = min(y, image_height - height)

    return Region(field_type=field_type, x=x, y=y, width=width, height=height)


def partition(
    image: CardImage,
    layout: CardLayout = DEFAULT_LAYOUT,
) -> dict[FieldType, Region]:
    """Compute the region of every field on a card.

    Args:
        image: Card image.
        layout: Fractional layout table.

    Returns:
        Mapping of every FieldType to its region.
    """
    return {
        field_type: compute_region(field_type, layout, image.width, image.height)
        for field_type in FieldType
    }


def crop(image: CardImage, region: Region) -> np.ndarray:
    """Copy a region's pixels out of the card image.

    Args:
        image: Card image.
        region: Region to copy.

    Returns:
        Writable RGB array of shape (region.height, region.width, 3).
    """
    return image.pixels[region.y : region.y2, region.x : region.x2].copy()
