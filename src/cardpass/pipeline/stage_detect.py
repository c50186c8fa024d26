"""Card Bounds Stage - Crop the card out of a wider photo.

Looks for the card's brand colors (blue header, orange sidebar) on a
sampling grid and takes the union of their extents as the card bounds.
Axis-aligned only; the card is assumed to be roughly level in the frame.
"""

import logging

import numpy as np

from cardpass.models import CardImage

logger = logging.getLogger(__name__)

# Header blue: strong blue channel, weak red/green
BLUE_MIN_B = 150
BLUE_MAX_R = 100
BLUE_MAX_G = 130

# Sidebar orange/yellow
ORANGE_MIN_R = 200
ORANGE_MIN_G = 150
ORANGE_MAX_B = 100

MIN_COLOR_SAMPLES = 10
GRID_DIVISIONS = 50
MARGIN = 5


def detect_card_bounds(image: CardImage) -> tuple[int, int, int, int]:
    """Locate the card inside a photo.

    Args:
        image: Captured photo.

    Returns:
        Tuple of (x, y, width, height). The whole image when too few
        brand-colored samples are found.
    """
    step = max(1, image.width // GRID_DIVISIONS)
    samples = image.pixels[::step, ::step].astype(np.int16)
    red, green, blue = samples[..., 0], samples[..., 1], samples[..., 2]

    blue_mask = (blue > BLUE_MIN_B) & (red < BLUE_MAX_R) & (green < BLUE_MAX_G)
    orange_mask = (red > ORANGE_MIN_R) & (green > ORANGE_MIN_G) & (blue < ORANGE_MAX_B)

    blue_ys, blue_xs = np.nonzero(blue_mask)
    orange_ys, orange_xs = np.nonzero(orange_mask)

    if len(blue_xs) <= MIN_COLOR_SAMPLES or len(orange_xs) <= MIN_COLOR_SAMPLES:
        logger.debug(
            "Card colors not found (blue=%d, orange=%d), using full frame",
            len(blue_xs),
            len(orange_xs),
        )
        return 0, 0, image.width, image.height

    xs = np.concatenate([blue_xs, orange_xs]) * step
    ys = np.concatenate([blue_ys, orange_ys]) * step

    left = max(0, int(xs.min()) - MARGIN)
    top = max(0, int(ys.min()) - MARGIN)
    right = min(image.width, int(xs.max()) + MARGIN)
    bottom = min(image.height, int(ys.max()) + MARGIN)

    return left, top, right - left, bottom - top


def crop_to_card(image: CardImage) -> CardImage:
    """Crop a photo to the detected card bounds.

    Args:
        image: Captured photo.

    Returns:
        Cropped card image (the input itself when no card was found).
    """
    x, y, width, height = detect_card_bounds(image)
    if (x, y, width, height) == (0, 0, image.width, image.height):
        return image

    logger.info("Card detected at x=%d y=%d w=%d h=%d", x, y, width, height)
    return image.crop(x, y, width, height)
