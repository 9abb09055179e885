"""Infer candidate SKUs from product photo filenames."""
import logging
import re
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)

IMAGE_EXTENSION_RE = re.compile(r"\.(jpg|jpeg|png|webp|gif|bmp|svg|tiff?)$", re.IGNORECASE)
EXACT_NUMERIC_RE = re.compile(r"^\d{3,8}$", re.ASCII)
DIGIT_RUN_RE = re.compile(r"\d{3,8}", re.ASCII)
PATH_NUMERIC_RE = re.compile(r"^\d{3,}$", re.ASCII)

# "455470.455471", "23319.23320", "447799.453343.blue", "111-222_333"
MULTI_SKU_PATTERNS = (
    re.compile(r"^(\d{3,8}(?:\.\d{3,8})+)\.?$", re.ASCII),
    re.compile(r"^(\d{3,8}(?:[._-]\d{3,8})+)[._-]?[a-zA-Z]*\.?$", re.ASCII),
)

# Order matters: the index feeds the confidence score.
ENHANCED_PATTERNS = (
    re.compile(r"(?<!\d)(\d{3,8})(?:[._-][a-zA-Z]+)+", re.ASCII),  # 67890_front, 447799.blue
    re.compile(r"^(\d{3,8})[a-zA-Z_-]+$", re.ASCII),  # 12345abc
    re.compile(r"^[a-zA-Z_-]+(\d{3,8})$", re.ASCII),  # img_12345
    re.compile(r"(?<!\d)(\d{3,8})(?!\d)", re.ASCII),  # any whole digit run
)

MULTI_SKU_START_CONFIDENCE = 90
MULTI_SKU_STEP = 3
MULTI_SKU_FLOOR = 70
ENHANCED_BASE_CONFIDENCE = 60
ENHANCED_FLOOR = 30
PATH_CONFIDENCE = 60


class ExtractionSource(str, Enum):
    """Which heuristic produced an extracted SKU."""

    EXACT_NUMERIC_FILENAME = "exact_numeric_filename"
    ZERO_PADDED_VARIATION = "zero_padded_variation"
    TRIMMED_ZEROS = "trimmed_zeros"
    MULTI_SKU = "multi_sku"
    ENHANCED_PATTERN = "enhanced_pattern"
    PATH_FOLDER_NUMERIC = "path_folder_numeric"


@dataclass(frozen=True)
class ExtractedSKU:
    sku: str
    confidence: int
    source: ExtractionSource


def clean_filename(filename):
    """Drop the image extension and any stray trailing dots ("23319.23320..png")."""
    cleaned = IMAGE_EXTENSION_RE.sub("", filename.strip())
    return cleaned.rstrip(".")


def extract_skus(filename, path=None):
    """Return candidate SKUs for a filename, best first.

    Heuristics run in layers, each adding to the same result list:

    1. the whole name is a 3-8 digit SKU (plus padded/unpadded variants)
    2. several SKUs joined by ``.``, ``-`` or ``_``
    3. looser patterns when nothing was found or the name has dots in it
    4. numeric folder names in ``path`` as a last resort

    Never raises; a name without usable digits yields ``[]``.
    """
    if not filename:
        return []

    name = clean_filename(filename)
    found = []

    if EXACT_NUMERIC_RE.match(name):
        found.extend(_exact_numeric(name))
        # A bare SKU filename is as good as it gets
        return _ranked(found, filename)

    found.extend(_multi_sku(name))

    if not found or "." in name:
        found.extend(_enhanced_patterns(name, known={s.sku for s in found}))

    if not found and path:
        found.extend(_path_segments(path))

    return _ranked(found, filename)


def _exact_numeric(name):
    yield ExtractedSKU(name, 100, ExtractionSource.EXACT_NUMERIC_FILENAME)

    if len(name) == 5 and not name.startswith("0"):
        yield ExtractedSKU("0" + name, 95, ExtractionSource.ZERO_PADDED_VARIATION)

    if name.startswith("0") and len(name) > 3:
        trimmed = name.lstrip("0")
        if len(trimmed) >= 3:
            yield ExtractedSKU(trimmed, 95, ExtractionSource.TRIMMED_ZEROS)


def _multi_sku(name):
    for pattern in MULTI_SKU_PATTERNS:
        match = pattern.match(name)
        if not match:
            continue
        # dict.fromkeys keeps first-seen order while dropping repeats
        runs = list(dict.fromkeys(DIGIT_RUN_RE.findall(match.group(1))))
        return [
            ExtractedSKU(
                sku,
                max(MULTI_SKU_START_CONFIDENCE - index * MULTI_SKU_STEP, MULTI_SKU_FLOOR),
                ExtractionSource.MULTI_SKU,
            )
            for index, sku in enumerate(runs)
        ]
    return []


def _enhanced_patterns(name, known):
    results = []
    seen = set(known)
    for index, pattern in enumerate(ENHANCED_PATTERNS):
        for match in pattern.finditer(name):
            digits = match.group(1)
            if digits in seen:
                continue
            seen.add(digits)
            results.append(
                ExtractedSKU(
                    digits,
                    _enhanced_confidence(name, digits, index),
                    ExtractionSource.ENHANCED_PATTERN,
                )
            )
    return results


def _enhanced_confidence(name, digits, pattern_index):
    confidence = ENHANCED_BASE_CONFIDENCE - pattern_index * 10
    if name == digits:
        confidence = 90
    elif name.startswith(digits):
        confidence = 80
    elif pattern_index == 0:
        confidence = 75
    elif name.endswith(digits):
        confidence = 70
    return max(ENHANCED_FLOOR, confidence)


def _path_segments(path):
    results = []
    seen = set()
    for segment in path.split("/"):
        if PATH_NUMERIC_RE.match(segment) and segment not in seen:
            seen.add(segment)
            results.append(
                ExtractedSKU(segment, PATH_CONFIDENCE, ExtractionSource.PATH_FOLDER_NUMERIC)
            )
    return results


def _ranked(found, filename):
    ranked = sorted(found, key=lambda s: s.confidence, reverse=True)
    if ranked:
        logger.debug(
            "Extracted from %s: %s",
            filename,
            ", ".join(f"{s.sku}({s.confidence})" for s in ranked),
        )
    return ranked
