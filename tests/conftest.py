"""Pytest configuration and fixtures."""

from unittest.mock import MagicMock

import numpy as np
import pytest

from cardpass.models import CardImage
from cardpass.pipeline.stage_partition import partition


@pytest.fixture
def card_image():
    """Create a plain light-gray 500x300 card image."""
    pixels = np.full((300, 500, 3), 200, dtype=np.uint8)
    # A few dark strokes so binarization has something to keep
    pixels[220:235, 40:200] = 20
    pixels[215:260, 320:460:4] = 10
    return CardImage(pixels=pixels)


@pytest.fixture
def make_engine(card_image):
    """Build a stub OCR engine answering per field.

    Fields are told apart by region shape, which differs for every text
    field of the default layout. A response may be an exception to raise.
    """

    def factory(responses):
        shapes = {
            (region.height, region.width): field_type
            for field_type, region in partition(card_image).items()
            if field_type in responses
        }

        def read_text(pixels, whitelist, psm):
            response = responses[shapes[pixels.shape[:2]]]
            if isinstance(response, Exception):
                raise response
            return response

        engine = MagicMock()
        engine.read_text.side_effect = read_text
        return engine

    return factory
