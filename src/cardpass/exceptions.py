"""Exception hierarchy for cardpass."""


class CardPassError(Exception):
    """Base class for all cardpass errors."""


class ImageDecodeError(CardPassError):
    """The input image could not be loaded or decoded.

    Raised before any extraction starts; no partial record is produced.
    """


class RecognitionError(CardPassError):
    """The OCR engine failed to read a region.

    Always recovered inside the recognizer by substituting the field default.
    """
