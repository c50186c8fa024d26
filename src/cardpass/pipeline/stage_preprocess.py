"""Preprocessing Stage - Prepare region pixels for OCR.

Each field type has a profile: photos get a mild color boost, text fields
are converted to luminance, contrast-stretched and binarized, and barcodes
get an extra horizontal gap-fill pass that joins bars broken by scan noise.

All transforms return a new RGB uint8 array of the same height and width.
"""

from typing import Optional

import cv2
import numpy as np
from pydantic import BaseModel, Field

from cardpass.models import FieldType

# ITU-R BT.601 luma weights
LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float64)


class PreprocessProfile(BaseModel):
    """Set of transforms applied to a region before recognition."""

    name: str
    grayscale: bool = Field(default=True, description="Convert to luminance")
    brightness: float = Field(default=1.0, gt=0.0, description="Channel gain (color only)")
    punch: int = Field(
        default=0, ge=0, description="Push values away from mid-gray (color only)"
    )
    contrast: float = Field(default=1.0, gt=0.0, description="Stretch around 128")
    threshold: Optional[int] = Field(
        default=None, ge=0, le=254, description="Binarize: > threshold becomes 255"
    )
    gap_fill: bool = Field(default=False, description="Join single-pixel gaps in dark runs")

    @property
    def binarizes(self) -> bool:
        """Check if the profile's output only holds 0 and 255."""
        return self.grayscale and self.threshold is not None

    class Config:
        frozen = True


PHOTO_PROFILE = PreprocessProfile(name="photo", grayscale=False, brightness=1.1, punch=10)
NAME_PROFILE = PreprocessProfile(name="name", threshold=170)
NAME_DARK_TEXT_PROFILE = PreprocessProfile(name="name-dark-text", threshold=100)
DIGITS_PROFILE = PreprocessProfile(name="digits", contrast=1.5, threshold=150)
BARCODE_PROFILE = PreprocessProfile(name="barcode", threshold=130, gap_fill=True)
# Alternate pass for the barcode retry: high contrast, grayscale kept
BARCODE_RETRY_PROFILE = PreprocessProfile(name="barcode-retry", contrast=1.8)

PROFILES: dict[FieldType, PreprocessProfile] = {
    FieldType.PHOTO: PHOTO_PROFILE,
    FieldType.NAME: NAME_PROFILE,
    FieldType.ID: DIGITS_PROFILE,
    FieldType.YEAR: DIGITS_PROFILE,
    FieldType.BARCODE: BARCODE_PROFILE,
}


def profile_for(field_type: FieldType, dark_text: bool = False) -> PreprocessProfile:
    """Select the preprocessing profile of a field.

    Args:
        field_type: Field being processed.
        dark_text: Use the lower name threshold for dark, low-contrast print.

    Returns:
        The field's profile.
    """
    if field_type == FieldType.NAME and dark_text:
        return NAME_DARK_TEXT_PROFILE
    return PROFILES[field_type]


def to_luminance(pixels: np.ndarray) -> np.ndarray:
    """Weighted luminance of an RGB array as float64 (H, W)."""
    return pixels[..., :3].astype(np.float64) @ LUMA_WEIGHTS


def stretch_contrast(gray: np.ndarray, factor: float) -> np.ndarray:
    """Scale values away from mid-gray, clipped to 0-255."""
    return np.clip((gray - 128.0) * factor + 128.0, 0.0, 255.0)


def binarize(gray: np.ndarray, threshold: int) -> np.ndarray:
    """Threshold a luminance array to 0/255 uint8."""
    _, binary = cv2.threshold(gray.astype(np.float32), threshold, 255, cv2.THRESH_BINARY)
    return binary.astype(np.uint8)


def fill_horizontal_gaps(binary: np.ndarray) -> np.ndarray:
    """Darken light pixels sitting between two dark pixels on the same row.

    Gaps are found on the input, so filled pixels never create new gaps and
    a second pass is a no-op.

    Args:
        binary: 0/255 uint8 array (H, W).

    Returns:
        New array with single-pixel gaps closed.
    """
    dark = binary == 0
    gaps = np.zeros_like(dark)
    gaps[:, 1:-1] = ~dark[:, 1:-1] & dark[:, :-2] & dark[:, 2:]

    filled = binary.copy()
    filled[gaps] = 0
    return filled


def enhance_color(pixels: np.ndarray, brightness: float, punch: int) -> np.ndarray:
    """Boost channel gain, then push each channel away from mid-gray.

    Args:
        pixels: RGB uint8 array.
        brightness: Channel multiplier.
        punch: Amount subtracted below 128 and added from 128 up.

    Returns:
        New RGB uint8 array.
    """
    boosted = np.clip(np.rint(pixels[..., :3].astype(np.float64) * brightness), 0, 255)
    if punch:
        boosted = np.where(
            boosted < 128,
            np.maximum(0, boosted - punch),
            np.minimum(255, boosted + punch),
        )
    return boosted.astype(np.uint8)


def preprocess(pixels: np.ndarray, profile: PreprocessProfile) -> np.ndarray:
    """Apply a preprocessing profile to region pixels.

    Args:
        pixels: RGB uint8 array (H, W, 3). Not modified.
        profile: Transforms to apply.

    Returns:
        New RGB uint8 array with the same height and width. Binarizing
        profiles produce only 0 and 255, identical on all three channels.
    """
    if not profile.grayscale:
        return enhance_color(pixels, profile.brightness, profile.punch)

    gray = to_luminance(pixels)

    if profile.contrast != 1.0:
        gray = stretch_contrast(gray, profile.contrast)

    if profile.threshold is not None:
        single = binarize(gray, profile.threshold)
        if profile.gap_fill:
            single = fill_horizontal_gaps(single)
    else:
        single = np.clip(np.rint(gray), 0, 255).astype(np.uint8)

    return cv2.cvtColor(single, cv2.COLOR_GRAY2RGB)
