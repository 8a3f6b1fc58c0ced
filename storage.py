# storage.py
import json
import logging
import os

logger = logging.getLogger("pos_client.storage")


class SessionStore:
    """
    Persists the cart and the API token between runs in one JSON file.
    Loaded once on start, written after every change.
    """
    def __init__(self, path: str = "session.json"):
        self.path = path
        self._state = {"cart": {"lines": []}, "token": None}

    def load(self):
        """Return (cart_dict, token). A missing or corrupt file yields an empty session."""
        if not os.path.exists(self.path):
            return self._state["cart"], self._state["token"]
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Ignoring unreadable session file {self.path}: {e}")
            return self._state["cart"], self._state["token"]
        if not isinstance(data, dict):
            logger.error(f"Ignoring malformed session file {self.path}")
            return self._state["cart"], self._state["token"]
        cart = data.get("cart") or {"lines": []}
        if not isinstance(cart, dict) or not isinstance(cart.get("lines", []), list):
            logger.error(f"Ignoring malformed cart in session file {self.path}")
            cart = {"lines": []}
        token = data.get("token")
        self._state["cart"] = cart
        self._state["token"] = token if isinstance(token, str) else None
        logger.info(f"Session restored from {self.path}")
        return self._state["cart"], self._state["token"]

    def _write(self):
        tmp = self.path + ".tmp"
        try:
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(self._state, f, indent=2)
            os.replace(tmp, self.path)
        except OSError as e:
            logger.error(f"Failed to save session to {self.path}: {e}")
            return False
        return True

    def save_cart(self, cart):
        self._state["cart"] = cart.to_dict()
        return self._write()

    def save_token(self, token: str):
        self._state["token"] = token
        return self._write()

    def clear_token(self):
        self._state["token"] = None
        return self._write()
