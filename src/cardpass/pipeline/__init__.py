"""Pipeline stages for student ID card extraction.

Stages (strictly forward, no stage depends on a later one):
0. stage_detect - Optional crop of the card out of a wider photo
1. stage_partition - Fractional layout → field regions
2. stage_preprocess - Per-field pixel transforms
3. stage_recognize - Tesseract OCR, normalization, validation
4. stage_assemble - Defaults, confidence map, barcode picture

The orchestrator runs the recognition branches concurrently and joins
them before assembly.
"""

from .orchestrator import CardExtractor, extract_card_data, load_layout
from .stage_assemble import assemble, render_barcode_image
from .stage_detect import crop_to_card, detect_card_bounds
from .stage_partition import crop, partition
from .stage_preprocess import PreprocessProfile, preprocess, profile_for
from .stage_recognize import FieldRecognizer, TesseractOCR

__all__ = [
    # Orchestration
    "CardExtractor",
    "extract_card_data",
    "load_layout",
    # Card bounds
    "crop_to_card",
    "detect_card_bounds",
    # Partition
    "crop",
    "partition",
    # Preprocessing
    "PreprocessProfile",
    "preprocess",
    "profile_for",
    # Recognition
    "FieldRecognizer",
    "TesseractOCR",
    # Assembly
    "assemble",
    "render_barcode_image",
]
