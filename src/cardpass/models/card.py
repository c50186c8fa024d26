"""Recognition results and the assembled card record."""

import base64
from typing import Optional

from pydantic import BaseModel, Field

from .base import ConfidenceLevel, FieldType

DEFAULT_NAME = "Student Name"
DEFAULT_CARD_ID = "000000"
DEFAULT_YEAR = "Class Year Unknown"
DEFAULT_BARCODE = ""

# Values substituted when a field cannot be recognized or fails validation
FIELD_DEFAULTS: dict[FieldType, str] = {
    FieldType.NAME: DEFAULT_NAME,
    FieldType.ID: DEFAULT_CARD_ID,
    FieldType.YEAR: DEFAULT_YEAR,
    FieldType.BARCODE: DEFAULT_BARCODE,
}


class RecognitionResult(BaseModel):
    """Normalized OCR output for one text field."""

    field_type: FieldType
    text: str = Field(..., description="Validated value or the field default")
    confidence: ConfidenceLevel
    raw_text: Optional[str] = Field(
        None, description="Verbatim OCR output, None if the engine failed"
    )

    @property
    def is_default(self) -> bool:
        """Check if the field default was substituted."""
        return self.confidence == ConfidenceLevel.LOW

    @classmethod
    def default_for(
        cls, field_type: FieldType, raw_text: Optional[str] = None
    ) -> "RecognitionResult":
        """Build the low-confidence default result of a field."""
        return cls(
            field_type=field_type,
            text=FIELD_DEFAULTS[field_type],
            confidence=ConfidenceLevel.LOW,
            raw_text=raw_text,
        )

    class Config:
        frozen = True


class CardRecord(BaseModel):
    """
    Final, always-complete output of the extraction pipeline.

    Every text field is populated (with defaults if necessary) so the
    pass issuer never rejects a record for missing data.
    """

    name: str = Field(..., min_length=1)
    card_id: str = Field(..., min_length=1)
    year: str = Field(..., min_length=1)
    barcode: str = Field(..., min_length=1)
    photo: bytes = Field(..., description="Enhanced photo region as PNG")
    barcode_image: bytes = Field(..., description="Cosmetic barcode rendering as PNG")
    confidence: dict[str, ConfidenceLevel] = Field(
        default_factory=dict,
        description="Per-field confidence: name, card_id, year, barcode",
    )

    @property
    def needs_review(self) -> bool:
        """Check if any field should be confirmed by the user."""
        return any(level == ConfidenceLevel.LOW for level in self.confidence.values())

    @property
    def low_confidence_fields(self) -> list[str]:
        """Names of the fields holding substituted values."""
        return [key for key, level in self.confidence.items() if level == ConfidenceLevel.LOW]

    def to_pass_payload(self) -> dict[str, str]:
        """Request body expected by the pass issuer."""
        photo = base64.b64encode(self.photo).decode("ascii")
        return {
            "name": self.name,
            "cardId": self.card_id,
            "year": self.year,
            "photo": f"data:image/png;base64,{photo}",
            "barcode": self.barcode,
        }

    class Config:
        frozen = True
        ser_json_bytes = "base64"
