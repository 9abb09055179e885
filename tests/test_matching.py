"""Tests for SKU normalization and image matching."""
from imagelinker.services.catalog_service import CatalogProduct
from imagelinker.services.matching_service import (
    build_sku_index,
    match_image,
    match_images,
    normalize_sku,
)
from imagelinker.services.sku_extraction import ExtractionSource
from imagelinker.services.storage_service import StorageObject


def test_normalize_sku():
    assert normalize_sku("00123") == "123"
    assert normalize_sku(" 123 ") == "123"
    assert normalize_sku("AB-12") == "ab-12"
    assert normalize_sku("000") == "0"


def test_first_product_wins_on_collision():
    first = CatalogProduct(1, "123", "First")
    second = CatalogProduct(2, "00123", "Second")
    index = build_sku_index([first, second])
    assert index == {"123": first}


def test_match_ignores_zero_padding():
    product = CatalogProduct(7, "00123", "Opener")
    result = match_image(StorageObject("123.jpg"), build_sku_index([product]))
    assert result.product is product
    assert result.sku_confidence == 100
    assert result.extraction_source is ExtractionSource.EXACT_NUMERIC_FILENAME


def test_match_takes_best_extracted_sku_with_a_product():
    products = [CatalogProduct(1, "455471", "Gift Box Large")]
    result = match_image(StorageObject("455470.455471.jpg"), build_sku_index(products))
    assert result.extracted_sku == "455471"
    assert result.sku_confidence == 87
    assert result.extraction_source is ExtractionSource.MULTI_SKU


def test_match_reports_discarded_skus():
    products = [CatalogProduct(1, "455470", "Gift Box Small")]
    result = match_image(StorageObject("455470.455471.jpg"), build_sku_index(products))
    assert result.extracted_sku == "455470"
    assert result.discarded_skus == ("455471",)


def test_no_match():
    products = [CatalogProduct(1, "12345", "Mug")]
    assert match_image(StorageObject("99999.jpg"), build_sku_index(products)) is None
    assert match_image(StorageObject("logo.png"), build_sku_index(products)) is None


def test_match_uses_folder_name():
    products = [CatalogProduct(3, "31415", "Pie Dish")]
    result = match_image(StorageObject("catalog/31415/front.webp"), build_sku_index(products))
    assert result.product.id == 3
    assert result.sku_confidence == 60


def test_match_images_drops_unmatched():
    products = [CatalogProduct(1, "12345", "Mug"), CatalogProduct(2, "67890", "Towel")]
    images = [
        StorageObject("12345.jpg"),
        StorageObject("67890_front.png"),
        StorageObject("99999.jpg"),
    ]
    results = match_images(images, products)
    assert [(r.image.name, r.product.sku, r.sku_confidence) for r in results] == [
        ("12345.jpg", "12345", 100),
        ("67890_front.png", "67890", 80),
    ]
