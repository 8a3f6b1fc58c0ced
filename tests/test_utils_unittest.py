import os
import sys
import shutil
import tempfile
import unittest
from decimal import Decimal
from unittest import mock
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import pandas as pd

from api import ApiClient, ApiError
from catalog import CatalogSnapshot
from schemas import BalanceSheet, Order, Product, ProfitLossReport
from utils import (
    export_inventory_csv,
    generate_financial_report,
    generate_inventory_report,
    generate_orders_report,
    generate_pdf_receipt,
    generate_txt_receipt,
    import_inventory_csv,
    products_from_frame,
    receipt_file_path,
)

RECEIPT = {
    "invoice_number": "INV/0042",
    "items": [("Kaftan (L)", 2, Decimal("250.00"), Decimal("500.00")),
              ("Cap", 1, Decimal("700"), Decimal("700"))],
    "subtotal": Decimal("1200.00"),
    "total": Decimal("1200.00"),
    "payment_method": "Cash",
    "customer": "Walk-in Customer",
    "timestamp": "2024-05-01T10:30:00",
}


class ReceiptTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def test_receipt_path_is_filesystem_safe(self):
        path = receipt_file_path(os.path.join(self.tmpdir, "r"), RECEIPT, "txt")
        self.assertEqual(os.path.basename(path), "receipt_INV_0042.txt")
        self.assertTrue(os.path.isdir(os.path.join(self.tmpdir, "r")))

    def test_txt_receipt(self):
        path = generate_txt_receipt(RECEIPT, os.path.join(self.tmpdir, "r.txt"), currency="N")
        with open(path, encoding="utf-8") as f:
            text = f.read()
        self.assertIn("Invoice: INV/0042", text)
        self.assertIn("N   1200.00", text)
        self.assertIn("Payment:      Cash", text)

    def test_pdf_receipt(self):
        path = generate_pdf_receipt(RECEIPT, os.path.join(self.tmpdir, "r.pdf"))
        with open(path, "rb") as f:
            self.assertEqual(f.read(4), b"%PDF")


class ReportTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.catalog = CatalogSnapshot([
            Product.model_validate({"id": 1, "name": "Kaftan", "variants": [
                {"id": 11, "sku": "KAF-M", "price": 700, "cost_price": 400, "stock_quantity": 5},
                {"id": 12, "sku": "KAF-L", "price": 250, "cost_price": 100, "stock_quantity": 2},
            ]}),
        ])

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def test_orders_report_summary_and_csv(self):
        orders = [
            Order.model_validate({"id": 1, "invoice_number": "INV-1", "total_amount": 1000,
                                  "created_at": "2024-05-01T09:00:00", "customer": {"name": "Ada"},
                                  "items": [{"id": 1, "product_variant_id": 11, "quantity": 2, "price": 500}]}),
            Order.model_validate({"id": 2, "invoice_number": "INV-2", "total_amount": 500,
                                  "created_at": "2024-05-02T09:00:00"}),
        ]
        path = os.path.join(self.tmpdir, "orders.csv")
        df, summary = generate_orders_report(orders, path)
        self.assertEqual(summary["num_transactions"], 2)
        self.assertEqual(summary["total_sales"], 1500.0)
        self.assertEqual(summary["average_sale"], 750.0)
        written = pd.read_csv(path)
        self.assertEqual(list(written["customer"]), ["Ada", "Walk-in Customer"])
        self.assertEqual(list(written["items"]), [2, 0])

    def test_orders_report_empty(self):
        df, message = generate_orders_report([])
        self.assertIsNone(df)
        self.assertEqual(message, "No orders found.")

    def test_inventory_report_values(self):
        df, summary = generate_inventory_report(self.catalog, low_stock_threshold=2)
        self.assertEqual(summary["total_items"], 2)
        self.assertEqual(summary["total_value"], 2200.0)
        self.assertEqual(summary["retail_value"], 4000.0)
        self.assertEqual(summary["low_stock_count"], 1)
        self.assertEqual(summary["low_stock_items"][0]["sku"], "KAF-L")

    def test_inventory_report_pdf(self):
        path = os.path.join(self.tmpdir, "inv.pdf")
        generate_inventory_report(self.catalog, path, "pdf")
        self.assertTrue(os.path.getsize(path) > 0)

    def test_financial_report_csv(self):
        pl = ProfitLossReport.model_validate({"revenue": 5000, "expenses": 3500, "net_profit": 1500, "breakdown": [
            {"date": "Mon", "revenue": 4000, "expense": 2400},
            {"date": "Tue", "revenue": 1000, "expense": 1100},
        ]})
        bs = BalanceSheet.model_validate({"assets": 9000, "liabilities": 2000, "equity": 7000})
        path = os.path.join(self.tmpdir, "fin.csv")
        df, summary = generate_financial_report(pl, bs, path, "csv")
        self.assertEqual(summary["net_profit"], 1500.0)
        self.assertEqual(summary["equity"], 7000.0)
        self.assertEqual(list(df["net"]), [1600.0, -100.0])
        written = pd.read_csv(path)
        self.assertEqual(written.iloc[0]["date"], "TOTAL")
        self.assertEqual(len(written), 3)

    def test_financial_report_pdf_without_breakdown(self):
        pl = ProfitLossReport.model_validate({"revenue": 1, "expenses": 1, "net_profit": 0})
        bs = BalanceSheet.model_validate({"assets": 1, "liabilities": 0, "equity": 1})
        path = os.path.join(self.tmpdir, "fin.pdf")
        df, _ = generate_financial_report(pl, bs, path, "pdf")
        self.assertTrue(df.empty)
        self.assertTrue(os.path.exists(path))


class InventoryImportTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def test_rows_grouped_into_products(self):
        df = pd.DataFrame([
            {"name": "Tee", "sku": "TEE-S", "price": 1500, "stock_quantity": 4, "size": "S"},
            {"name": "Tee", "sku": "TEE-M", "price": 1500, "stock_quantity": 2, "size": "M"},
            {"name": "Cap", "sku": "CAP", "price": 800, "stock_quantity": 1, "size": None},
            {"name": "Bad", "sku": None, "price": 10, "stock_quantity": 1, "size": None},
        ])
        products, errors = products_from_frame(df)
        self.assertEqual([p.name for p in products], ["Tee", "Cap"])
        self.assertEqual([v.sku for v in products[0].variants], ["TEE-S", "TEE-M"])
        self.assertEqual(products[0].variants[1].size, "M")
        self.assertEqual(len(errors), 1)
        self.assertTrue(errors[0].startswith("Bad"))

    def test_unreadable_stock_skips_only_that_product(self):
        df = pd.DataFrame([
            {"name": "A", "sku": "A-1", "price": 10, "stock_quantity": "3"},
            {"name": "B", "sku": "B-1", "price": 10, "stock_quantity": "lots"},
            {"name": "C", "sku": "C-1", "price": 10, "stock_quantity": "1"},
        ])
        products, errors = products_from_frame(df)
        self.assertEqual([p.name for p in products], ["A", "C"])
        self.assertEqual(products[0].variants[0].stock_quantity, 3)
        self.assertEqual(len(errors), 1)
        self.assertTrue(errors[0].startswith("B:"))

    def test_api_failure_on_one_product_keeps_going(self):
        path = os.path.join(self.tmpdir, "inv.csv")
        pd.DataFrame([
            {"name": "A", "sku": "A-1", "price": 10, "stock_quantity": 1},
            {"name": "B", "sku": "B-1", "price": 10, "stock_quantity": 1},
            {"name": "C", "sku": "C-1", "price": 10, "stock_quantity": "lots"},
            {"name": "D", "sku": "D-1", "price": 10, "stock_quantity": 1},
        ]).to_csv(path, index=False)
        api = mock.Mock(spec=ApiClient)
        api.create_product.side_effect = [None, ApiError("The sku has already been taken.", status=422), None]

        created, skipped = import_inventory_csv(api, path)

        self.assertEqual((created, skipped), (2, 2))
        sent = [c[0][0].name for c in api.create_product.call_args_list]
        self.assertEqual(sent, ["A", "B", "D"])

    def test_missing_columns(self):
        with self.assertRaises(ValueError):
            products_from_frame(pd.DataFrame([{"name": "x"}]))

    def test_export_then_import_through_api(self):
        catalog = CatalogSnapshot([
            Product.model_validate({"id": 1, "name": "Kaftan", "variants": [
                {"id": 11, "sku": "KAF-M", "price": 700, "stock_quantity": 5, "barcode": "0012"},
            ]}),
        ])
        path = export_inventory_csv(catalog, os.path.join(self.tmpdir, "inv.csv"))
        api = mock.Mock(spec=ApiClient)

        created, skipped = import_inventory_csv(api, path)

        self.assertEqual((created, skipped), (1, 0))
        sent = api.create_product.call_args[0][0]
        self.assertEqual(sent.name, "Kaftan")
        self.assertEqual(sent.variants[0].barcode, "0012")
        self.assertEqual(sent.variants[0].price, Decimal("700.0"))


if __name__ == '__main__':
    unittest.main()
