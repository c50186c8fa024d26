"""Base models and common types for the card extraction pipeline."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class FieldType(str, Enum):
    """Fields printed on the ID card."""

    PHOTO = "photo"
    NAME = "name"
    ID = "id"
    YEAR = "year"
    BARCODE = "barcode"


# Fields read through OCR (everything except the photo)
TEXT_FIELDS: tuple[FieldType, ...] = (
    FieldType.NAME,
    FieldType.ID,
    FieldType.YEAR,
    FieldType.BARCODE,
)


class ConfidenceLevel(str, Enum):
    """Whether a field holds a validated recognition or a substituted default."""

    HIGH = "high"
    LOW = "low"


class Region(BaseModel):
    """Pixel rectangle on a card image assigned to one field."""

    field_type: FieldType
    x: int = Field(..., ge=0, description="Left edge in pixels")
    y: int = Field(..., ge=0, description="Top edge in pixels")
    width: int = Field(..., gt=0, description="Region width in pixels")
    height: int = Field(..., gt=0, description="Region height in pixels")

    @property
    def x2(self) -> int:
        """Right edge (exclusive)."""
        return self.x + self.width

    @property
    def y2(self) -> int:
        """Bottom edge (exclusive)."""
        return self.y + self.height

    def fits_within(self, image_width: int, image_height: int) -> bool:
        """Check that the region lies entirely inside an image."""
        return self.x2 <= image_width and self.y2 <= image_height

    class Config:
        frozen = True


class ProgressEvent(BaseModel):
    """Progress notification emitted while a card is being extracted."""

    stage: str = Field(..., description="started, field or assembled")
    field_type: Optional[FieldType] = None
    message: str = ""
    completed: int = Field(default=0, ge=0)
    total: int = Field(default=0, ge=0)

    @property
    def fraction(self) -> float:
        """Completed share of the work, 0-1."""
        if self.total == 0:
            return 0.0
        return self.completed / self.total

    class Config:
        frozen = True
