"""Tests for region partitioning and layout tables."""

import json

import numpy as np
import pytest
from pydantic import ValidationError

from cardpass.models import DEFAULT_LAYOUT, CardImage, CardLayout, FieldType, FractionalBox
from cardpass.pipeline.stage_partition import compute_region, crop, partition


def _image(width: int, height: int) -> CardImage:
    return CardImage(pixels=np.zeros((height, width, 3), dtype=np.uint8))


class TestPartition:
    """Tests for partition()."""

    @pytest.mark.parametrize(
        "width,height",
        [(1, 1), (2, 3), (7, 5), (64, 40), (500, 300), (1920, 1080), (3024, 4032)],
    )
    def test_total_coverage(self, width, height):
        """Every field gets a non-empty region inside the image."""
        regions = partition(_image(width, height))

        assert set(regions) == set(FieldType)
        for field_type, region in regions.items():
            assert region.field_type == field_type
            assert region.width > 0
            assert region.height > 0
            assert region.fits_within(width, height)

    def test_floor_scaling(self):
        """Bounds are floored products of the image size and fractions."""
        layout = DEFAULT_LAYOUT.model_copy(
            update={"name": FractionalBox(fx=0.25, fy=0.5, fw=0.5, fh=0.125)}
        )

        region = compute_region(FieldType.NAME, layout, 101, 83)

        assert (region.x, region.y, region.width, region.height) == (25, 41, 50, 10)

    def test_default_layout_placement(self):
        """Photo sits on the left, barcode on the right, text in the lower band."""
        regions = partition(_image(1000, 600))

        assert regions[FieldType.PHOTO].x2 <= 400
        assert regions[FieldType.BARCODE].x >= 590
        for field_type in (FieldType.NAME, FieldType.ID, FieldType.YEAR):
            assert regions[field_type].y >= 0.7 * 600
            assert regions[field_type].y2 <= 0.97 * 600

    def test_same_input_same_regions(self):
        """Partitioning is a pure function of the image size."""
        assert partition(_image(640, 400)) == partition(_image(640, 400))

    def test_crop_copies_region(self):
        """Cropped pixels are a writable copy of the region."""
        pixels = (np.arange(20 * 10 * 3) % 256).astype(np.uint8).reshape(10, 20, 3)
        image = CardImage(pixels=pixels)
        region = partition(image)[FieldType.BARCODE]

        region_pixels = crop(image, region)

        assert region_pixels.shape == (region.height, region.width, 3)
        np.testing.assert_array_equal(
            region_pixels, pixels[region.y : region.y2, region.x : region.x2]
        )
        region_pixels[:] = 0
        np.testing.assert_array_equal(image.pixels, pixels)


class TestCardLayout:
    """Tests for layout tables."""

    def test_from_file(self, tmp_path):
        """Layouts load from JSON files."""
        data = DEFAULT_LAYOUT.model_dump()
        data["barcode"] = {"fx": 0.5, "fy": 0.5, "fw": 0.5, "fh": 0.5}
        path = tmp_path / "layout.json"
        path.write_text(json.dumps(data))

        layout = CardLayout.from_file(path)

        assert layout.box_for(FieldType.BARCODE) == FractionalBox(fx=0.5, fy=0.5, fw=0.5, fh=0.5)
        assert layout.box_for(FieldType.NAME) == DEFAULT_LAYOUT.name

    def test_box_must_fit(self):
        """Boxes reaching past the image edge are rejected."""
        with pytest.raises(ValidationError):
            FractionalBox(fx=0.7, fy=0.1, fw=0.5, fh=0.1)

    def test_box_must_be_non_empty(self):
        """Zero-size boxes are rejected."""
        with pytest.raises(ValidationError):
            FractionalBox(fx=0.1, fy=0.1, fw=0.0, fh=0.1)

    def test_missing_field_rejected(self):
        """A layout must define every field."""
        data = DEFAULT_LAYOUT.model_dump()
        del data["photo"]
        with pytest.raises(ValidationError):
            CardLayout.model_validate(data)
