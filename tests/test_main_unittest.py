import os
import sys
import json
import logging
import shutil
import tempfile
import unittest
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import main
from logger import configure_logger
from models import Cart
from schemas import Product
from storage import SessionStore


class ConfigTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.config_path = os.path.join(self.tmpdir, "config.json")

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def test_missing_config_is_created_with_defaults(self):
        config = main.load_config(self.config_path)
        self.assertTrue(os.path.exists(self.config_path))
        self.assertEqual(config["api"]["per_page"], 100)
        self.assertEqual(config["currency"], "$")

    def test_partial_config_is_merged_over_defaults(self):
        with open(self.config_path, "w") as f:
            json.dump({"api": {"base_url": "https://shop.example/api"}, "currency": "N"}, f)
        config = main.load_config(self.config_path)
        self.assertEqual(config["api"]["base_url"], "https://shop.example/api")
        self.assertEqual(config["api"]["timeout"], 30)
        self.assertEqual(config["currency"], "N")
        self.assertEqual(config["receipt"]["receipt_dir"], "receipts")

    def test_unreadable_config_falls_back_to_defaults(self):
        with open(self.config_path, "w") as f:
            f.write("{{")
        config = main.load_config(self.config_path)
        self.assertEqual(config["theme"], "default")

    def test_defaults_are_not_mutated(self):
        merged = main.merge_config(main.DEFAULT_CONFIG, {"api": {"token": "abc"}})
        merged["api"]["per_page"] = 5
        self.assertIsNone(main.DEFAULT_CONFIG["api"]["token"])
        self.assertEqual(main.DEFAULT_CONFIG["api"]["per_page"], 100)

    def test_arguments(self):
        args = main.parse_arguments(["--debug", "--token", "t0k"])
        self.assertTrue(args.debug)
        self.assertEqual(args.token, "t0k")
        self.assertEqual(args.config, "config.json")


class LoggerTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()

    def tearDown(self):
        configure_logger({"logging": {"file": None}})
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def test_configure_replaces_handlers(self):
        log_file = os.path.join(self.tmpdir, "logs", "pos.log")
        config = {"logging": {"file": log_file, "level": "warning"}}
        configure_logger(config)
        log = configure_logger(config, debug=True)
        self.assertEqual(len(log.handlers), 2)
        self.assertEqual(log.level, logging.DEBUG)
        self.assertTrue(os.path.exists(log_file))

    def test_level_from_config(self):
        log = configure_logger({"logging": {"file": None, "level": "error"}})
        self.assertEqual(log.level, logging.ERROR)
        self.assertEqual(len(log.handlers), 1)


class BuildSystemTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.config = main.merge_config(main.DEFAULT_CONFIG, {
            "session": {"state_file": os.path.join(self.tmpdir, "session.json")},
            "api": {"base_url": "http://pos.local/api/"},
        })

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def test_restores_cart_and_token(self):
        store = SessionStore(self.config["session"]["state_file"])
        product = Product.model_validate({"id": 1, "name": "Tee", "variants": [
            {"id": 2, "sku": "TEE", "price": 10, "stock_quantity": 5}]})
        cart = Cart(on_change=store.save_cart)
        cart.add_to_cart(product, product.variants[0])
        store.save_token("saved-token")

        system = main.build_system(self.config)

        self.assertEqual(system.api.token, "saved-token")
        self.assertEqual(system.api.base_url, "http://pos.local/api")
        self.assertEqual(len(system.cart), 1)

        # later mutations are persisted
        system.cart.clear_cart()
        cart_data, _ = SessionStore(self.config["session"]["state_file"]).load()
        self.assertEqual(cart_data["lines"], [])

    def test_cli_token_wins_and_is_stored(self):
        system = main.build_system(self.config, token="cli-token")
        self.assertEqual(system.api.token, "cli-token")
        _, token = SessionStore(self.config["session"]["state_file"]).load()
        self.assertEqual(token, "cli-token")


if __name__ == '__main__':
    unittest.main()
