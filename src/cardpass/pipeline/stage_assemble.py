"""Assembly Stage - Build the final card record.

Fills in defaults, derives the confidence map and draws a barcode picture
for display. The picture only resembles a stacked barcode; it is not a
scannable symbology. The pass issuer encodes the real barcode from the
record's value.
"""

import io
from typing import Union

import numpy as np
from PIL import Image, ImageDraw, ImageFont

from cardpass.models import (
    DEFAULT_CARD_ID,
    DEFAULT_NAME,
    DEFAULT_YEAR,
    CardRecord,
    ConfidenceLevel,
)

BARCODE_CANVAS_SIZE = (320, 120)
BARCODE_ROWS = 8
BARCODE_ROW_HEIGHT = 8
BARCODE_TOP = 15
BARCODE_LEFT = 40
BARCODE_CAPTION_Y = 95


def encode_png(image: Union[Image.Image, np.ndarray]) -> bytes:
    """Encode a Pillow image or RGB array as PNG bytes."""
    if isinstance(image, np.ndarray):
        image = Image.fromarray(image)
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def _fill_bar(draw: ImageDraw.ImageDraw, x: int, y: int, width: int) -> None:
    draw.rectangle([x, y, x + width - 1, y + BARCODE_ROW_HEIGHT - 2], fill="black")


def draw_barcode(value: str) -> Image.Image:
    """Draw a stacked-barcode lookalike for a digit string.

    Every row starts and ends with a guard bar. In between, each digit
    contributes four modules whose widths and gaps depend on the digit and
    the row number, so the picture is a deterministic function of the value.

    Args:
        value: Digits to depict. Non-digits are skipped in the pattern.

    Returns:
        RGB Pillow image.
    """
    image = Image.new("RGB", BARCODE_CANVAS_SIZE, "white")
    draw = ImageDraw.Draw(image)
    digits = [int(char) for char in value if char.isdigit()]

    for row in range(BARCODE_ROWS):
        y = BARCODE_TOP + row * BARCODE_ROW_HEIGHT
        x = BARCODE_LEFT

        _fill_bar(draw, x, y, 2)
        x += 4

        for digit in digits:
            for j in range(4):
                width = ((digit + j + row) % 4) + 1
                if (digit + j + row) % 3 != 1:
                    _fill_bar(draw, x, y, width)
                x += width + 1

        _fill_bar(draw, x, y, 2)

    font = ImageFont.load_default()
    caption_width = draw.textlength(value, font=font)
    draw.text(
        ((BARCODE_CANVAS_SIZE[0] - caption_width) / 2, BARCODE_CAPTION_Y),
        value,
        fill="black",
        font=font,
    )

    return image


def render_barcode_image(value: str) -> bytes:
    """Render the barcode picture of a value as PNG bytes."""
    return encode_png(draw_barcode(value))


def assemble(
    name: str,
    card_id: str,
    year: str,
    barcode: str,
    photo_pixels: np.ndarray,
) -> CardRecord:
    """Combine field values into a complete card record.

    Args:
        name: Recognized or default name.
        card_id: Recognized or default ID number.
        year: Recognized or default class year.
        barcode: Recognized barcode digits, empty if recognition failed.
        photo_pixels: Enhanced photo region (RGB).

    Returns:
        CardRecord with every field populated. The barcode falls back to the
        card ID; a field is tagged low confidence when it holds its default.
    """
    name = name or DEFAULT_NAME
    card_id = card_id or DEFAULT_CARD_ID
    year = year or DEFAULT_YEAR
    barcode_value = barcode or card_id

    def level(is_default: bool) -> ConfidenceLevel:
        return ConfidenceLevel.LOW if is_default else ConfidenceLevel.HIGH

    confidence = {
        "name": level(name == DEFAULT_NAME),
        "card_id": level(card_id == DEFAULT_CARD_ID),
        "year": level(year == DEFAULT_YEAR),
        "barcode": level(not barcode),
    }

    return CardRecord(
        name=name,
        card_id=card_id,
        year=year,
        barcode=barcode_value,
        photo=encode_png(photo_pixels),
        barcode_image=render_barcode_image(barcode_value),
        confidence=confidence,
    )
