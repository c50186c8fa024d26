"""Pipeline orchestrator - Run all stages on one card.

Flow: optional card crop → partition → five concurrent branches (four OCR
fields plus photo enhancement) → assembly. Branches share nothing but the
read-only card image and never cancel each other; a failing branch
resolves to its field default.
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Optional, Union

from cardpass.config import settings
from cardpass.models import (
    DEFAULT_LAYOUT,
    TEXT_FIELDS,
    CardImage,
    CardLayout,
    CardRecord,
    FieldType,
    ProgressEvent,
    RecognitionResult,
)
from cardpass.pipeline.stage_assemble import assemble
from cardpass.pipeline.stage_detect import crop_to_card
from cardpass.pipeline.stage_partition import crop, partition
from cardpass.pipeline.stage_preprocess import PHOTO_PROFILE, preprocess
from cardpass.pipeline.stage_recognize import FieldRecognizer

logger = logging.getLogger(__name__)


def load_layout(layout_file: Optional[Path] = None) -> CardLayout:
    """Load the layout table from a file, the configured file, or the built-in default."""
    layout_file = layout_file or settings.layout_file
    if layout_file is not None:
        return CardLayout.from_file(layout_file)
    return DEFAULT_LAYOUT


class CardExtractor:
    """Extracts a CardRecord from a card image.

    Stateless between calls; concurrent extractions on one instance are safe.
    """

    def __init__(
        self,
        recognizer: Optional[FieldRecognizer] = None,
        layout: Optional[CardLayout] = None,
        detect_card_bounds: Optional[bool] = None,
    ):
        """Initialize the extractor.

        Args:
            recognizer: Field recognizer, Tesseract-backed by default.
            layout: Region layout table. Defaults to the layout file from
                settings, or the built-in layout.
            detect_card_bounds: Crop the card out of the photo first.
        """
        self.recognizer = recognizer or FieldRecognizer()
        self.layout = layout or load_layout()
        self.detect_card_bounds = (
            settings.detect_card_bounds if detect_card_bounds is None else detect_card_bounds
        )

    async def extract(
        self,
        image: CardImage,
        progress: Optional[asyncio.Queue] = None,
    ) -> CardRecord:
        """Run the full pipeline on a decoded card image.

        Args:
            image: Decoded card image.
            progress: Optional queue receiving ProgressEvent objects.

        Returns:
            Complete CardRecord; never raises for a decoded image.
        """
        total = len(TEXT_FIELDS) + 1

        def report(
            stage: str,
            completed: int,
            field_type: Optional[FieldType] = None,
            message: str = "",
        ) -> None:
            if progress is None:
                return
            event = ProgressEvent(
                stage=stage,
                field_type=field_type,
                message=message,
                completed=completed,
                total=total,
            )
            try:
                progress.put_nowait(event)
            except asyncio.QueueFull:
                logger.debug("Progress queue full, dropping %s event", stage)

        report("started", 0, message=f"Processing {image.width}x{image.height} image")

        if self.detect_card_bounds:
            image = crop_to_card(image)

        regions = partition(image, self.layout)
        logger.debug("Regions: %s", {k.value: v.model_dump() for k, v in regions.items()})

        completed = 0
        # Private pool: stuck OCR threads are abandoned, never joined
        executor = ThreadPoolExecutor(
            max_workers=len(TEXT_FIELDS) + 1, thread_name_prefix="cardpass"
        )
        loop = asyncio.get_running_loop()

        async def run_field(field_type: FieldType) -> RecognitionResult:
            nonlocal completed
            result = await self.recognizer.arecognize(
                crop(image, regions[field_type]), field_type, executor=executor
            )
            completed += 1
            report("field", completed, field_type, result.text)
            logger.info("%s: %r (%s)", field_type.value, result.text, result.confidence.value)
            return result

        async def run_photo():
            nonlocal completed
            photo = await loop.run_in_executor(
                executor, preprocess, crop(image, regions[FieldType.PHOTO]), PHOTO_PROFILE
            )
            completed += 1
            report("field", completed, FieldType.PHOTO, "Photo enhanced")
            return photo

        try:
            *results, photo = await asyncio.gather(
                *(run_field(field_type) for field_type in TEXT_FIELDS),
                run_photo(),
            )
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        by_field = {result.field_type: result for result in results}

        record = assemble(
            name=by_field[FieldType.NAME].text,
            card_id=by_field[FieldType.ID].text,
            year=by_field[FieldType.YEAR].text,
            barcode=by_field[FieldType.BARCODE].text,
            photo_pixels=photo,
        )

        report("assembled", total, message="Card record ready")
        if record.needs_review:
            logger.info("Low confidence fields: %s", ", ".join(record.low_confidence_fields))

        return record


def extract_card_data(
    source: Union[CardImage, str, Path, bytes],
    extractor: Optional[CardExtractor] = None,
) -> CardRecord:
    """Synchronous entry point: decode if needed and extract a card.

    Runs its own event loop, so it cannot be called from a coroutine;
    async callers should await ``CardExtractor.extract`` instead.

    Args:
        source: Decoded image, image path or encoded image bytes.
        extractor: Configured extractor, default settings otherwise.

    Returns:
        Complete CardRecord.

    Raises:
        ImageDecodeError: If the source cannot be decoded.
        RuntimeError: If called while an event loop is running.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        pass
    else:
        raise RuntimeError(
            "extract_card_data() cannot run inside an event loop; await CardExtractor.extract()"
        )

    if isinstance(source, bytes):
        image = CardImage.from_bytes(source)
    elif isinstance(source, (str, Path)):
        image = CardImage.from_path(source)
    else:
        image = source

    extractor = extractor or CardExtractor()
    return asyncio.run(extractor.extract(image))
