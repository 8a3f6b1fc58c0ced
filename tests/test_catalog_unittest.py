import os
import sys
import unittest
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from catalog import CatalogSnapshot, filter_products
from schemas import Product

PRODUCTS = [
    Product.model_validate({"id": 1, "name": "Leather Sandals", "variants": [
        {"id": 10, "sku": "SND-42-BRN", "price": 4500, "stock_quantity": 4, "barcode": "5901234123457"},
    ]}),
    Product.model_validate({"id": 2, "name": "Cotton Tee", "variants": [
        {"id": 20, "sku": "TEE-S-WHT", "price": 1500, "stock_quantity": 30},
        {"id": 21, "sku": "TEE-M-BLK", "price": 1500, "stock_quantity": 2, "size": "M", "color": "Black"},
    ]}),
    Product.model_validate({"id": 3, "name": "Tote Bag", "variants": [
        {"id": 30, "sku": "BAG-01", "price": 2000, "stock_quantity": 0},
    ]}),
]


class FilterTests(unittest.TestCase):
    def test_empty_query_returns_everything(self):
        self.assertEqual(filter_products(PRODUCTS, ""), PRODUCTS)

    def test_no_match_returns_empty(self):
        self.assertEqual(filter_products(PRODUCTS, "umbrella"), [])

    def test_sku_match_is_case_insensitive(self):
        result = filter_products(PRODUCTS, "tee-m-blk")
        self.assertEqual([p.id for p in result], ["2"])

    def test_name_match_is_case_insensitive(self):
        self.assertEqual([p.id for p in filter_products(PRODUCTS, "SANDAL")], ["1"])

    def test_barcode_substring_match(self):
        self.assertEqual([p.id for p in filter_products(PRODUCTS, "12345")], ["1"])

    def test_none_query_returns_everything(self):
        self.assertEqual(filter_products(PRODUCTS, None), PRODUCTS)

    def test_whitespace_query_is_a_literal_match(self):
        result = filter_products(PRODUCTS, " ")
        self.assertEqual([p.id for p in result], ["1", "2", "3"])
        self.assertEqual(filter_products(PRODUCTS, "   "), [])

    def test_order_is_preserved(self):
        result = filter_products(PRODUCTS, "o")
        self.assertEqual([p.id for p in result], ["2", "3"])


class SnapshotTests(unittest.TestCase):
    def setUp(self):
        self.catalog = CatalogSnapshot(PRODUCTS)

    def test_find_variant(self):
        product, variant = self.catalog.find_variant(21)
        self.assertEqual(product.name, "Cotton Tee")
        self.assertEqual(variant.label, "M / Black")
        self.assertIsNone(self.catalog.find_variant("missing"))

    def test_find_by_code_exact_sku_or_barcode(self):
        self.assertEqual(self.catalog.find_by_code("bag-01")[1].id, "30")
        self.assertEqual(self.catalog.find_by_code(" 5901234123457 ")[1].id, "10")
        self.assertIsNone(self.catalog.find_by_code("BAG"))
        self.assertIsNone(self.catalog.find_by_code(""))

    def test_low_stock_sorted(self):
        rows = self.catalog.low_stock(threshold=4)
        self.assertEqual([v.id for _, v in rows], ["30", "21", "10"])

    def test_variant_rows_flatten(self):
        rows = self.catalog.variant_rows()
        self.assertEqual(len(rows), 4)
        self.assertEqual(rows[1]["sku"], "TEE-S-WHT")
        self.assertEqual(rows[1]["price"], 1500.0)


if __name__ == '__main__':
    unittest.main()
