"""Pair storage images with catalog products by SKU."""
import logging
from dataclasses import dataclass
from imagelinker.services.sku_extraction import extract_skus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchResult:
    image: object  # StorageObject
    product: object  # CatalogProduct
    sku_confidence: int
    extraction_source: object  # ExtractionSource
    extracted_sku: str
    discarded_skus: tuple = ()


def normalize_sku(sku):
    """Case-insensitive form without leading zeros ("00123" == "123")."""
    cleaned = str(sku).strip().lower()
    return cleaned.lstrip("0") or "0"


def build_sku_index(products):
    """Map normalized SKU -> product. The first product wins a collision."""
    index = {}
    for product in products:
        if not product.sku:
            continue
        key = normalize_sku(product.sku)
        if key in index:
            logger.warning(
                "SKU %s collides with %s after normalization; keeping product %s",
                product.sku,
                index[key].sku,
                index[key].id,
            )
            continue
        index[key] = product
    return index


def match_image(image, sku_index):
    """Best product for one image, or None.

    Extracted SKUs are tried best-first; the first one that names a catalog
    product wins and the rest are only reported.
    """
    extracted = extract_skus(image.filename, image.name)
    for position, candidate in enumerate(extracted):
        product = sku_index.get(normalize_sku(candidate.sku))
        if product is None:
            continue
        discarded = tuple(s.sku for s in extracted[position + 1:])
        if discarded:
            logger.debug(
                "%s matched %s; ignoring other SKUs %s",
                image.name,
                product.sku,
                ", ".join(discarded),
            )
        return MatchResult(
            image=image,
            product=product,
            sku_confidence=candidate.confidence,
            extraction_source=candidate.source,
            extracted_sku=candidate.sku,
            discarded_skus=discarded,
        )
    return None


def match_images(images, products):
    """Match every image against ``products``; unmatched images are dropped."""
    sku_index = build_sku_index(products)
    results = []
    for image in images:
        result = match_image(image, sku_index)
        if result is not None:
            results.append(result)
    logger.info("Matched %d of %d images", len(results), len(images))
    return results
