"""
Tests for the result store and its text/JSON export.
"""

import json

import pytest

from site_scraper.crawler.parser import Product
from site_scraper.storage.results import ResultStore, SaveError


def widget(**kwargs) -> Product:
    kwargs.setdefault('name', 'Widget')
    kwargs.setdefault('price', '$9.99')
    kwargs.setdefault('url', 'https://shop.test/product/widget')
    return Product(**kwargs)


def test_duplicate_text_blocks_collapse():
    store = ResultStore()
    assert store.add_text("Catalog page")
    assert not store.add_text("Catalog page")
    assert store.add_text("Product page")
    assert store.text_count == 2
    assert sorted(store.all_text().split("\n\n")) == ["Catalog page", "Product page"]


def test_products_json_field_order():
    store = ResultStore()
    store.add_product(widget(brand="Acme", image="https://shop.test/img/a.png"))

    data = json.loads(store.products_as_json())
    assert list(data[0].keys()) == [
        'name', 'price', 'description', 'availability',
        'specifications', 'brand', 'image', 'url',
    ]
    assert data[0]['brand'] == "Acme"
    assert data[0]['description'] is None


def test_products_json_is_pretty_printed():
    store = ResultStore()
    store.add_product(widget())
    assert store.products_as_json().startswith("[\n  {\n")


def test_empty_store_exports():
    store = ResultStore()
    assert store.all_text() == ""
    assert store.products_as_json() == "[]"


def test_save_creates_parent_directories(tmp_path):
    store = ResultStore()
    store.add_text("Ünïcode text")
    store.add_product(widget())

    text_path = tmp_path / "nested" / "dir" / "all.txt"
    products_path = tmp_path / "other" / "products.json"
    store.save_text(str(text_path))
    store.save_products(str(products_path))

    assert text_path.read_text(encoding="utf-8") == "Ünïcode text"
    assert json.loads(products_path.read_text(encoding="utf-8"))[0]['name'] == "Widget"


def test_save_failure_raises_and_keeps_state(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")

    store = ResultStore()
    store.add_text("kept")
    with pytest.raises(SaveError):
        store.save_text(str(blocker / "all.txt"))
    assert store.get_texts() == ["kept"]
