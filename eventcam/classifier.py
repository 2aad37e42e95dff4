from enum import Enum


# Fallback for submissions stored before dimensions were recorded
DEFAULT_WIDTH = 1920
DEFAULT_HEIGHT = 1080

# 1 - SQUARE_TOLERANCE <= width/height <= 1 + SQUARE_TOLERANCE  ->  square
# Camera resolutions checked against this band:
#   1920x1080 (1.78), 4032x3024 (1.33), 1350x1080 (1.25) -> landscape
#   1080x1080 (1.00), 1000x960 (1.04)                    -> square
#   1080x1350 (0.80), 3024x4032 (0.75), 1080x1920 (0.56) -> portrait
SQUARE_TOLERANCE = 0.1


class Bucket(Enum):
    LANDSCAPE = "16:9"
    SQUARE = "1:1"
    PORTRAIT = "9:16"


def _positive_number(value):
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number != number or number <= 0 or number == float('inf'):
        return None
    return number


def resolve_dimensions(width, height):
    """
    Return usable (width, height) for a submission.

    Missing, zero, negative or non-numeric values on either side make the
    pair unusable, in which case the 1920x1080 landscape default is returned.
    """
    w = _positive_number(width)
    h = _positive_number(height)
    if w is None or h is None:
        return DEFAULT_WIDTH, DEFAULT_HEIGHT
    return max(1, int(round(w))), max(1, int(round(h)))


def classify(width, height, tolerance=SQUARE_TOLERANCE):
    """Map stored pixel dimensions to an aspect-ratio bucket. Never raises."""
    w = _positive_number(width)
    h = _positive_number(height)
    if w is None or h is None:
        w, h = DEFAULT_WIDTH, DEFAULT_HEIGHT

    ratio = w / h
    if 1.0 - tolerance <= ratio <= 1.0 + tolerance:
        return Bucket.SQUARE
    if ratio > 1.0:
        return Bucket.LANDSCAPE
    return Bucket.PORTRAIT


def bucket_for(submission, tolerance=SQUARE_TOLERANCE):
    return classify(submission.width, submission.height, tolerance)
