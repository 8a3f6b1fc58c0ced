import os
import sys
import json
import shutil
import tempfile
import unittest
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import main
from models import Cart
from schemas import Product
from storage import SessionStore


class SessionStoreTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.path = os.path.join(self.tmpdir, "state", "session.json")
        self.product = Product.model_validate({"id": 1, "name": "Wrapper", "variants": [
            {"id": 2, "sku": "WRP-1", "price": "350.00", "stock_quantity": 4}]})

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def test_missing_file_is_empty_session(self):
        cart_data, token = SessionStore(self.path).load()
        self.assertEqual(cart_data, {"lines": []})
        self.assertIsNone(token)

    def test_cart_saved_on_every_change_and_restored(self):
        store = SessionStore(self.path)
        cart = Cart(on_change=store.save_cart)
        cart.add_to_cart(self.product, self.product.variants[0])
        cart.add_to_cart(self.product, self.product.variants[0])
        store.save_token("tok-123")

        cart_data, token = SessionStore(self.path).load()
        restored = Cart().load_dict(cart_data)

        self.assertEqual(token, "tok-123")
        self.assertEqual(len(restored), 1)
        self.assertEqual(restored.lines[0].quantity, 2)
        self.assertEqual(restored.cart_total(), cart.cart_total())

    def test_clear_token_keeps_cart(self):
        store = SessionStore(self.path)
        cart = Cart(on_change=store.save_cart)
        cart.add_to_cart(self.product, self.product.variants[0])
        store.save_token("tok")
        store.clear_token()
        with open(self.path) as f:
            data = json.load(f)
        self.assertIsNone(data["token"])
        self.assertEqual(len(data["cart"]["lines"]), 1)

    def test_corrupt_file_is_ignored(self):
        os.makedirs(os.path.dirname(self.path))
        with open(self.path, "w") as f:
            f.write("{not json")
        cart_data, token = SessionStore(self.path).load()
        self.assertEqual(cart_data, {"lines": []})
        self.assertIsNone(token)

    def test_wrong_shaped_cart_is_ignored(self):
        os.makedirs(os.path.dirname(self.path))
        for state in ({"cart": ["x"], "token": "tok"},
                      {"cart": {"lines": 5}, "token": "tok"},
                      {"cart": "lines", "token": 42}):
            with open(self.path, "w") as f:
                json.dump(state, f)
            cart_data, token = SessionStore(self.path).load()
            self.assertEqual(cart_data, {"lines": []})
            self.assertEqual(len(Cart().load_dict(cart_data)), 0)
        self.assertIsNone(token)

    def test_startup_survives_wrong_shaped_session(self):
        os.makedirs(os.path.dirname(self.path))
        with open(self.path, "w") as f:
            json.dump({"cart": {"lines": 5}, "token": "tok"}, f)
        config = main.merge_config(main.DEFAULT_CONFIG, {"session": {"state_file": self.path}})
        system = main.build_system(config)
        self.assertEqual(len(system.cart), 0)
        self.assertEqual(system.api.token, "tok")

        # the next mutation rewrites a well-formed session
        system.cart.add_to_cart(self.product, self.product.variants[0])
        cart_data, _ = SessionStore(self.path).load()
        self.assertEqual(len(cart_data["lines"]), 1)

    def test_write_failure_returns_false(self):
        blocker = os.path.join(self.tmpdir, "file")
        open(blocker, "w").close()
        store = SessionStore(os.path.join(blocker, "session.json"))
        self.assertFalse(store.save_token("x"))


if __name__ == '__main__':
    unittest.main()
