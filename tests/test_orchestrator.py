"""Tests for the end-to-end extraction pipeline."""

import asyncio
import io
import json
import time
from unittest.mock import MagicMock

import numpy as np
import pytest
from PIL import Image

from cardpass.config import settings
from cardpass.exceptions import ImageDecodeError, RecognitionError
from cardpass.models import (
    DEFAULT_CARD_ID,
    DEFAULT_LAYOUT,
    DEFAULT_NAME,
    DEFAULT_YEAR,
    CardImage,
    ConfidenceLevel,
    FieldType,
)
from cardpass.pipeline.orchestrator import CardExtractor, extract_card_data, load_layout
from cardpass.pipeline.stage_recognize import FieldRecognizer

GOOD_READS = {
    FieldType.NAME: "jane  DOE\n",
    FieldType.ID: "ID 123456",
    FieldType.YEAR: "CLASS OF 2027",
    FieldType.BARCODE: "2000 1234 56",
}


def _extractor(engine) -> CardExtractor:
    return CardExtractor(
        recognizer=FieldRecognizer(engine=engine, dark_text=False, timeout=5),
        layout=DEFAULT_LAYOUT,
        detect_card_bounds=False,
    )


class TestCardExtractor:
    """Tests for CardExtractor.extract()."""

    def test_all_fields(self, card_image, make_engine):
        """Recognized fields flow into the record."""
        extractor = _extractor(make_engine(GOOD_READS))

        record = asyncio.run(extractor.extract(card_image))

        assert record.name == "Jane Doe"
        assert record.card_id == "123456"
        assert record.year == "Class of 2027"
        assert record.barcode == "2000123456"
        assert not record.needs_review

    def test_photo_is_enhanced_region(self, card_image, make_engine):
        """The record photo is the photo region, enhanced."""
        record = asyncio.run(_extractor(make_engine(GOOD_READS)).extract(card_image))

        photo = np.array(Image.open(io.BytesIO(record.photo)))
        region_height = int(300 * 0.50)
        assert abs(photo.shape[0] - region_height) <= 1
        # 200 * 1.1 = 220, pushed up by 10
        assert (photo == 230).all()

    def test_failing_ocr_gives_defaults(self, card_image, make_engine):
        """A failing engine never aborts the pipeline."""
        error = RecognitionError("tesseract missing")
        engine = make_engine({field_type: error for field_type in GOOD_READS})

        record = asyncio.run(_extractor(engine).extract(card_image))

        assert record.name == DEFAULT_NAME
        assert record.card_id == DEFAULT_CARD_ID
        assert record.year == DEFAULT_YEAR
        assert record.barcode == DEFAULT_CARD_ID
        assert set(record.confidence.values()) == {ConfidenceLevel.LOW}
        assert all(record.to_pass_payload().values())

    def test_barcode_falls_back_to_card_id(self, card_image, make_engine):
        """Short barcode reads on both passes give the card ID."""
        engine = make_engine({**GOOD_READS, FieldType.BARCODE: "12"})

        record = asyncio.run(_extractor(engine).extract(card_image))

        assert record.barcode == record.card_id == "123456"
        assert record.confidence["barcode"] == ConfidenceLevel.LOW
        assert record.confidence["card_id"] == ConfidenceLevel.HIGH

    def test_one_branch_failing_spares_others(self, card_image, make_engine):
        """A failing field does not affect its siblings."""
        engine = make_engine({**GOOD_READS, FieldType.YEAR: RecognitionError("boom")})

        record = asyncio.run(_extractor(engine).extract(card_image))

        assert record.year == DEFAULT_YEAR
        assert record.name == "Jane Doe"
        assert record.low_confidence_fields == ["year"]

    def test_deterministic(self, card_image, make_engine):
        """Two runs on the same input give identical records."""
        extractor = _extractor(make_engine(GOOD_READS))

        first = asyncio.run(extractor.extract(card_image))
        second = asyncio.run(extractor.extract(card_image))

        assert first == second
        assert first.model_dump_json() == second.model_dump_json()

    def test_progress_events(self, card_image, make_engine):
        """Progress is reported on the supplied queue."""

        async def run():
            queue = asyncio.Queue()
            await _extractor(make_engine(GOOD_READS)).extract(card_image, progress=queue)
            events = []
            while not queue.empty():
                events.append(queue.get_nowait())
            return events

        events = asyncio.run(run())

        assert events[0].stage == "started"
        assert events[-1].stage == "assembled"
        assert events[-1].fraction == 1.0
        field_events = [event for event in events if event.stage == "field"]
        assert {event.field_type for event in field_events} == set(FieldType)
        assert [event.completed for event in field_events] == [1, 2, 3, 4, 5]

    def test_bounded_progress_queue(self, card_image, make_engine):
        """A full progress queue drops events instead of failing the scan."""

        async def run():
            queue = asyncio.Queue(maxsize=1)
            record = await _extractor(make_engine(GOOD_READS)).extract(card_image, progress=queue)
            return record, queue

        record, queue = asyncio.run(run())

        assert record.name == "Jane Doe"
        assert queue.qsize() == 1
        assert queue.get_nowait().stage == "started"

    def test_card_detection_crops_first(self):
        """With detection on, regions are computed on the cropped card."""
        pixels = np.full((400, 600, 3), 90, dtype=np.uint8)
        pixels[80:140, 100:500] = (20, 60, 200)
        pixels[80:330, 100:160] = (240, 170, 30)
        engine = MagicMock()
        engine.read_text.return_value = ""
        extractor = CardExtractor(
            recognizer=FieldRecognizer(engine=engine, timeout=5),
            layout=DEFAULT_LAYOUT,
            detect_card_bounds=True,
        )

        asyncio.run(extractor.extract(CardImage(pixels=pixels)))

        widths = {call.args[0].shape[1] for call in engine.read_text.call_args_list}
        # Name band is 90% of the cropped card width, not of the photo
        assert max(widths) < 0.9 * 600 * 0.8


class TestLoadLayout:
    """Tests for load_layout()."""

    def test_default(self):
        """Without a file the built-in layout is used."""
        assert load_layout() == DEFAULT_LAYOUT

    def test_from_file(self, tmp_path):
        """An explicit file wins."""
        data = DEFAULT_LAYOUT.model_dump()
        data["id"] = {"fx": 0.1, "fy": 0.1, "fw": 0.1, "fh": 0.1}
        path = tmp_path / "layout.json"
        path.write_text(json.dumps(data))

        assert load_layout(path).id.fx == 0.1

    def test_from_settings(self, tmp_path, monkeypatch):
        """The configured layout file is used when none is given."""
        data = DEFAULT_LAYOUT.model_dump()
        data["year"] = {"fx": 0.2, "fy": 0.5, "fw": 0.3, "fh": 0.1}
        path = tmp_path / "layout.json"
        path.write_text(json.dumps(data))
        monkeypatch.setattr(settings, "layout_file", path)

        assert load_layout().year.fx == 0.2
        assert CardExtractor(recognizer=MagicMock()).layout.year.fy == 0.5


class TestExtractCardData:
    """Tests for the synchronous entry point."""

    def test_from_bytes(self, card_image, make_engine):
        """Encoded images are decoded and extracted."""
        buffer = io.BytesIO()
        Image.fromarray(card_image.pixels).save(buffer, format="PNG")

        record = extract_card_data(buffer.getvalue(), extractor=_extractor(make_engine(GOOD_READS)))

        assert record.name == "Jane Doe"

    def test_from_path(self, tmp_path, card_image, make_engine):
        """Image paths are loaded and extracted."""
        path = tmp_path / "card.png"
        Image.fromarray(card_image.pixels).save(path)

        record = extract_card_data(path, extractor=_extractor(make_engine(GOOD_READS)))

        assert record.card_id == "123456"

    def test_decode_error_propagates(self):
        """Undecodable input fails before extraction."""
        extractor = _extractor(MagicMock())

        with pytest.raises(ImageDecodeError):
            extract_card_data(b"not an image", extractor=extractor)

        extractor.recognizer.engine.read_text.assert_not_called()

    def test_stuck_engine_does_not_block(self, card_image):
        """Expired OCR calls are abandoned rather than awaited."""
        engine = MagicMock()
        engine.read_text.side_effect = lambda *args: time.sleep(1.0) or "12"
        extractor = CardExtractor(
            recognizer=FieldRecognizer(engine=engine, timeout=0.1),
            layout=DEFAULT_LAYOUT,
            detect_card_bounds=False,
        )

        started = time.monotonic()
        record = extract_card_data(card_image, extractor=extractor)
        elapsed = time.monotonic() - started

        assert record.low_confidence_fields == ["name", "card_id", "year", "barcode"]
        assert elapsed < 0.9

    def test_rejects_running_loop(self, card_image, make_engine):
        """Async callers are pointed to CardExtractor.extract."""
        extractor = _extractor(make_engine(GOOD_READS))

        async def run():
            with pytest.raises(RuntimeError, match="CardExtractor.extract"):
                extract_card_data(card_image, extractor=extractor)
            return await extractor.extract(card_image)

        assert asyncio.run(run()).name == "Jane Doe"
