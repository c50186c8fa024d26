"""Recognition Stage - Read and validate card text fields.

Uses Tesseract OCR through pytesseract. Each field type gets its own
character whitelist and page segmentation mode, and its own normalization
and validation rule. Recognition problems never escape this stage: an OCR
error, a timeout or a value failing validation yields the field default
with low confidence.
"""

import asyncio
import functools
import logging
import re
import shlex
import string
import time
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Callable, Optional, Protocol

import numpy as np
import pytesseract
from PIL import Image
from pydantic import BaseModel

from cardpass.config import settings
from cardpass.exceptions import RecognitionError
from cardpass.models import ConfidenceLevel, FieldType, RecognitionResult
from cardpass.pipeline.stage_preprocess import (
    BARCODE_RETRY_PROFILE,
    PreprocessProfile,
    preprocess,
    profile_for,
)

logger = logging.getLogger(__name__)

DIGITS = string.digits
NAME_CHARACTERS = string.ascii_uppercase + string.ascii_lowercase + " -'"

# Tesseract page segmentation modes
PSM_UNIFORM_BLOCK = 6
PSM_SINGLE_LINE = 7

ID_MIN_DIGITS = 5
ID_MAX_DIGITS = 8
BARCODE_MIN_DIGITS = 5

NAME_PATTERN = re.compile(r"^[A-Z][a-z]+ [A-Z][a-z]+$")
CLASS_OF_PATTERN = re.compile(r"class\s+of\s+(\d{4})", re.IGNORECASE)
FOUR_DIGITS_PATTERN = re.compile(r"(?<!\d)(\d{4})(?!\d)")


class OCRFieldConfig(BaseModel):
    """Tesseract settings for one field type."""

    whitelist: Optional[str] = None
    psm: int = PSM_SINGLE_LINE

    class Config:
        frozen = True


OCR_CONFIGS: dict[FieldType, OCRFieldConfig] = {
    FieldType.NAME: OCRFieldConfig(whitelist=NAME_CHARACTERS, psm=PSM_SINGLE_LINE),
    FieldType.ID: OCRFieldConfig(whitelist=DIGITS, psm=PSM_SINGLE_LINE),
    FieldType.YEAR: OCRFieldConfig(whitelist=DIGITS, psm=PSM_UNIFORM_BLOCK),
    FieldType.BARCODE: OCRFieldConfig(whitelist=DIGITS, psm=PSM_UNIFORM_BLOCK),
}


class OCREngine(Protocol):
    """Anything that turns region pixels into text."""

    def read_text(self, pixels: np.ndarray, whitelist: Optional[str], psm: int) -> str:
        """Read text from an RGB array; raise RecognitionError on failure."""
        ...


class TesseractOCR:
    """OCR engine using Tesseract."""

    def __init__(
        self,
        language: Optional[str] = None,
        oem: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        """Initialize Tesseract OCR.

        Args:
            language: Tesseract language code(s), e.g., 'eng'.
            oem: OCR Engine mode (3 = default, based on what's available).
            timeout: Seconds before a Tesseract call is abandoned.
        """
        self.language = language or settings.ocr_language
        self.oem = oem if oem is not None else settings.ocr_oem
        self.timeout = timeout if timeout is not None else settings.ocr_timeout_seconds

    def build_config(self, whitelist: Optional[str], psm: int) -> str:
        """Build Tesseract configuration string."""
        config_parts = [
            f"--psm {psm}",
            f"--oem {self.oem}",
        ]
        if whitelist:
            # pytesseract splits the config with shlex
            config_parts.append(f"-c {shlex.quote('tessedit_char_whitelist=' + whitelist)}")
        return " ".join(config_parts)

    def read_text(self, pixels: np.ndarray, whitelist: Optional[str], psm: int) -> str:
        """Extract plain text from region pixels.

        Args:
            pixels: RGB uint8 array.
            whitelist: Characters Tesseract may output, None for any.
            psm: Page segmentation mode.

        Returns:
            Recognized text.

        Raises:
            RecognitionError: Tesseract is missing, failed or timed out.
        """
        pil_image = Image.fromarray(pixels)

        try:
            return pytesseract.image_to_string(
                pil_image,
                lang=self.language,
                config=self.build_config(whitelist, psm),
                timeout=self.timeout,
            )
        except pytesseract.TesseractNotFoundError as e:
            raise RecognitionError("Tesseract is not installed or not in PATH") from e
        except pytesseract.TesseractError as e:
            raise RecognitionError(f"Tesseract failed: {e.message}") from e
        except RuntimeError as e:
            # pytesseract signals its timeout with a bare RuntimeError
            raise RecognitionError(f"Tesseract timed out after {self.timeout}s") from e


def normalize_name(text: str) -> Optional[str]:
    """Title-case a name and accept only 'First Last'.

    Args:
        text: Raw OCR text.

    Returns:
        Normalized name, or None if it is not two capitalized words.
    """
    collapsed = re.sub(r"\s+", " ", text).strip()
    titled = re.sub(
        r"\w\S*",
        lambda match: match.group(0)[0].upper() + match.group(0)[1:].lower(),
        collapsed,
    )
    if NAME_PATTERN.match(titled):
        return titled
    return None


def normalize_card_id(text: str) -> Optional[str]:
    """Keep the digits of an ID number if there are 5 to 8 of them."""
    digits = re.sub(r"\D", "", text)
    if ID_MIN_DIGITS <= len(digits) <= ID_MAX_DIGITS:
        return digits
    return None


def normalize_year(text: str) -> Optional[str]:
    """Extract 'Class of YYYY' from OCR text.

    Prefers an explicit 'class of YYYY' phrase and falls back to the first
    standalone four-digit run.
    """
    match = CLASS_OF_PATTERN.search(text)
    if match is None:
        match = FOUR_DIGITS_PATTERN.search(text)
    if match is None:
        return None
    return f"Class of {match.group(1)}"


def normalize_barcode(text: str) -> Optional[str]:
    """Keep the digits of a barcode caption if there are at least 5."""
    digits = re.sub(r"\D", "", text)
    if len(digits) >= BARCODE_MIN_DIGITS:
        return digits
    return None


NORMALIZERS: dict[FieldType, Callable[[str], Optional[str]]] = {
    FieldType.NAME: normalize_name,
    FieldType.ID: normalize_card_id,
    FieldType.YEAR: normalize_year,
    FieldType.BARCODE: normalize_barcode,
}


class FieldRecognizer:
    """Recognizes card text fields from raw region pixels.

    Holds no per-scan state; one instance can serve concurrent scans.
    """

    def __init__(
        self,
        engine: Optional[OCREngine] = None,
        dark_text: Optional[bool] = None,
        timeout: Optional[float] = None,
    ):
        """Initialize the recognizer.

        Args:
            engine: OCR engine, Tesseract by default.
            dark_text: Use the lower name threshold for dark print.
            timeout: Deadline in seconds for each OCR call.
        """
        self.engine = engine or TesseractOCR(timeout=timeout)
        self.dark_text = settings.dark_text if dark_text is None else dark_text
        self.timeout = timeout if timeout is not None else settings.ocr_timeout_seconds

    def recognize(
        self,
        pixels: np.ndarray,
        field_type: FieldType,
        deadline: Optional[float] = None,
    ) -> RecognitionResult:
        """Read, normalize and validate one field.

        Args:
            pixels: Raw RGB pixels of the field's region.
            field_type: Field to read (any but PHOTO).
            deadline: ``time.monotonic()`` value after which no further OCR
                call is started.

        Returns:
            Validated value with high confidence, or the field default with
            low confidence.
        """
        if field_type not in NORMALIZERS:
            raise ValueError(f"{field_type.value} is not a text field")

        profile = profile_for(field_type, dark_text=self.dark_text)
        raw_text = self._read(pixels, field_type, profile)
        if raw_text is None:
            return RecognitionResult.default_for(field_type)

        value = NORMALIZERS[field_type](raw_text)

        if value is None and field_type == FieldType.BARCODE:
            if deadline is not None and time.monotonic() >= deadline:
                logger.warning("Barcode deadline passed, skipping retry")
                return RecognitionResult.default_for(field_type, raw_text=raw_text)
            logger.info("Barcode has too few digits (%r), retrying", raw_text.strip())
            retry_text = self._read(pixels, field_type, BARCODE_RETRY_PROFILE)
            if retry_text is not None:
                raw_text = retry_text
                value = normalize_barcode(retry_text)

        if value is None:
            logger.warning("Rejected %s value %r, using default", field_type.value, raw_text.strip())
            return RecognitionResult.default_for(field_type, raw_text=raw_text)

        return RecognitionResult(
            field_type=field_type,
            text=value,
            confidence=ConfidenceLevel.HIGH,
            raw_text=raw_text,
        )

    async def arecognize(
        self,
        pixels: np.ndarray,
        field_type: FieldType,
        executor: Optional[Executor] = None,
    ) -> RecognitionResult:
        """Recognize a field in a worker thread under a deadline.

        Expiry counts as a recognition failure and yields the field default.
        A stuck OCR call is abandoned, not waited for: without an executor a
        private one is used and shut down without joining its thread.

        Args:
            pixels: Raw RGB pixels of the field's region.
            field_type: Field to read (any but PHOTO).
            executor: Thread pool to run the OCR call on.
        """
        # The barcode may need a second OCR call
        attempts = 2 if field_type == FieldType.BARCODE else 1
        budget = self.timeout * attempts
        deadline = time.monotonic() + budget

        own_executor = executor is None
        if own_executor:
            executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="cardpass-ocr")

        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(
                    executor, functools.partial(self.recognize, pixels, field_type, deadline)
                ),
                timeout=budget,
            )
        except asyncio.TimeoutError:
            logger.warning("OCR of %s timed out, using default", field_type.value)
            return RecognitionResult.default_for(field_type)
        finally:
            if own_executor:
                executor.shutdown(wait=False, cancel_futures=True)

    def _read(
        self,
        pixels: np.ndarray,
        field_type: FieldType,
        profile: PreprocessProfile,
    ) -> Optional[str]:
        """Preprocess and OCR a region; None if the engine failed."""
        config = OCR_CONFIGS[field_type]
        prepared = preprocess(pixels, profile)

        try:
            return self.engine.read_text(prepared, config.whitelist, config.psm)
        except Exception as e:
            logger.warning("OCR of %s failed (%s), using default", field_type.value, e)
            return None
