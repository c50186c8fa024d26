"""Fractional card layout table.

Region bounds are expressed as fractions of the card image's width and
height, so one table serves every capture resolution. The default table
matches the supported student ID template; other templates are supplied
as JSON files with the same shape.
"""

import json
from pathlib import Path
from typing import Union

from pydantic import BaseModel, Field, model_validator

from .base import FieldType


class FractionalBox(BaseModel):
    """Rectangle expressed as fractions (0-1) of the image dimensions."""

    fx: float = Field(..., ge=0.0, lt=1.0, description="Left edge / width")
    fy: float = Field(..., ge=0.0, lt=1.0, description="Top edge / height")
    fw: float = Field(..., gt=0.0, le=1.0, description="Box width / width")
    fh: float = Field(..., gt=0.0, le=1.0, description="Box height / height")

    @model_validator(mode="after")
    def check_inside_unit_square(self) -> "FractionalBox":
        # Small tolerance for float sums like 0.05 + 0.95
        if self.fx + self.fw > 1.0 + 1e-9:
            raise ValueError("fx + fw must not exceed 1")
        if self.fy + self.fh > 1.0 + 1e-9:
            raise ValueError("fy + fh must not exceed 1")
        return self

    class Config:
        frozen = True


class CardLayout(BaseModel):
    """One fractional box per field type."""

    photo: FractionalBox
    name: FractionalBox
    id: FractionalBox
    year: FractionalBox
    barcode: FractionalBox

    def box_for(self, field_type: FieldType) -> FractionalBox:
        """Get the box of a field."""
        return getattr(self, field_type.value)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "CardLayout":
        """Load a layout table from a JSON file.

        The file maps field names to ``{"fx", "fy", "fw", "fh"}`` objects.
        """
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        return cls.model_validate(data)

    class Config:
        frozen = True


DEFAULT_LAYOUT = CardLayout(
    # Left side, mid-height
    photo=FractionalBox(fx=0.03, fy=0.20, fw=0.35, fh=0.50),
    # Full-width band under the photo
    name=FractionalBox(fx=0.05, fy=0.72, fw=0.90, fh=0.08),
    id=FractionalBox(fx=0.05, fy=0.80, fw=0.25, fh=0.08),
    year=FractionalBox(fx=0.05, fy=0.88, fw=0.40, fh=0.08),
    # Right side, lower half
    barcode=FractionalBox(fx=0.60, fy=0.70, fw=0.35, fh=0.20),
)
