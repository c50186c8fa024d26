"""Card image pixel buffer."""

import io
from pathlib import Path
from typing import Union

import numpy as np
from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel, field_validator

from cardpass.exceptions import ImageDecodeError


class CardImage(BaseModel):
    """
    Immutable RGB pixel buffer of a captured card.

    Pixels are stored as a write-protected ``uint8`` array of shape
    (height, width, 3). Pipeline stages read from it and work on copies.
    """

    pixels: np.ndarray

    @field_validator("pixels", mode="before")
    @classmethod
    def validate_pixels(cls, value: np.ndarray) -> np.ndarray:
        array = np.asarray(value)
        if array.ndim == 2:
            array = np.stack([array] * 3, axis=-1)
        if array.ndim != 3 or array.shape[2] not in (3, 4):
            raise ValueError(f"Expected an HxWx3 or HxWx4 array, got shape {array.shape}")
        if array.shape[0] == 0 or array.shape[1] == 0:
            raise ValueError("Image must have positive dimensions")

        # Drop alpha, copy so the caller's buffer is never aliased
        array = np.ascontiguousarray(array[:, :, :3], dtype=np.uint8).copy()
        array.setflags(write=False)
        return array

    @property
    def width(self) -> int:
        """Image width in pixels."""
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        """Image height in pixels."""
        return int(self.pixels.shape[0])

    @classmethod
    def from_pil(cls, image: Image.Image) -> "CardImage":
        """Build from a Pillow image (any mode)."""
        return cls(pixels=np.array(image.convert("RGB")))

    @classmethod
    def from_bytes(cls, data: bytes) -> "CardImage":
        """Decode an encoded image (PNG, JPEG, ...).

        Raises:
            ImageDecodeError: If the bytes are not a decodable image.
        """
        try:
            with Image.open(io.BytesIO(data)) as image:
                return cls.from_pil(image)
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
            raise ImageDecodeError(f"Cannot decode image: {e}") from e

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "CardImage":
        """Load and decode an image file.

        Raises:
            ImageDecodeError: If the file is missing or not a decodable image.
        """
        path = Path(path)
        try:
            data = path.read_bytes()
        except OSError as e:
            raise ImageDecodeError(f"Cannot read image {path}: {e}") from e
        return cls.from_bytes(data)

    def crop(self, x: int, y: int, width: int, height: int) -> "CardImage":
        """Return a new image holding a rectangular part of this one."""
        return CardImage(pixels=self.pixels[y : y + height, x : x + width])

    class Config:
        arbitrary_types_allowed = True
        frozen = True
