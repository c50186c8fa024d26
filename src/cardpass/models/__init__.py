"""Data models for the card extraction pipeline.

All models are Pydantic models and are immutable once built. Nothing here
outlives a single extraction run.

Model flow:
- CardImage → Regions (via CardLayout) → RecognitionResults → CardRecord
"""

from .base import (
    TEXT_FIELDS,
    ConfidenceLevel,
    FieldType,
    ProgressEvent,
    Region,
)
from .card import (
    DEFAULT_BARCODE,
    DEFAULT_CARD_ID,
    DEFAULT_NAME,
    DEFAULT_YEAR,
    FIELD_DEFAULTS,
    CardRecord,
    RecognitionResult,
)
from .image import CardImage
from .layout import (
    DEFAULT_LAYOUT,
    CardLayout,
    FractionalBox,
)

__all__ = [
    # Base types
    "ConfidenceLevel",
    "FieldType",
    "ProgressEvent",
    "Region",
    "TEXT_FIELDS",
    # Image
    "CardImage",
    # Layout
    "CardLayout",
    "DEFAULT_LAYOUT",
    "FractionalBox",
    # Results
    "CardRecord",
    "RecognitionResult",
    "FIELD_DEFAULTS",
    "DEFAULT_NAME",
    "DEFAULT_CARD_ID",
    "DEFAULT_YEAR",
    "DEFAULT_BARCODE",
]
