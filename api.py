# api.py
import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from decimal import Decimal
from enum import Enum

from schemas import (
    BalanceSheet,
    Customer,
    NewCustomer,
    NewProduct,
    NewUser,
    Order,
    Product,
    ProductHistoryEntry,
    ProfitLossReport,
    User,
    parse,
    parse_list,
    unwrap,
)

logger = logging.getLogger("pos_client.api")

DEFAULT_BASE_URL = "http://localhost:8000/api"


class ApiError(Exception):
    """
    A request to the bookkeeping API failed. `message` is the server's
    own message when the error body carries one.
    """
    def __init__(self, message: str, status: int = None):
        self.message = message
        self.status = status
        super().__init__(message)


def _json_default(value):
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _error_message(exc: urllib.error.HTTPError):
    """Pull the server's message out of an error response, if any."""
    try:
        body = exc.read().decode("utf-8", errors="ignore")
    except (OSError, AttributeError):
        body = ""
    if body:
        try:
            data = json.loads(body)
        except ValueError:
            data = None
        if isinstance(data, dict):
            if data.get("message"):
                return str(data["message"])
            if data.get("error"):
                return str(data["error"])
    return str(exc.reason or f"HTTP {exc.code}")


class ApiClient:
    """
    Thin JSON client for the bookkeeping API. Every method returns
    validated schema objects; transport and HTTP failures surface as
    ApiError, shape mismatches as schemas.DecodeError.
    """
    def __init__(self, base_url: str = DEFAULT_BASE_URL, token: str = None, timeout: float = 30):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout

    def set_token(self, token):
        self.token = token

    def _request(self, method: str, path: str, payload=None, params=None):
        url = self.base_url + path
        if params:
            url += "?" + urllib.parse.urlencode(params, doseq=True)
        data = None
        if payload is not None:
            data = json.dumps(payload, default=_json_default).encode("utf-8")
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        req = urllib.request.Request(url, data=data, method=method, headers=headers)
        logger.debug(f"{method} {url}")
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                body = resp.read().decode("utf-8")
        except urllib.error.HTTPError as e:
            message = _error_message(e)
            logger.warning(f"{method} {path} failed with HTTP {e.code}: {message}")
            raise ApiError(message, status=e.code) from e
        except urllib.error.URLError as e:
            logger.warning(f"{method} {path} unreachable: {e.reason}")
            raise ApiError(f"Could not reach server: {e.reason}") from e
        if not body:
            return None
        try:
            return json.loads(body)
        except ValueError as e:
            raise ApiError(f"Invalid JSON from {path}") from e

    # Products
    def list_products(self, per_page: int = 100):
        """Fetch the catalog, products with nested variants."""
        return parse_list(Product, self._request("GET", "/products", params={"per_page": per_page}))

    def create_product(self, product: NewProduct):
        data = self._request("POST", "/products", payload=product.model_dump())
        return parse(Product, unwrap(data))

    def update_product(self, product_id, product: NewProduct):
        data = self._request("PUT", f"/products/{product_id}", payload=product.model_dump())
        return parse(Product, unwrap(data))

    def product_history(self, product_id):
        return parse_list(ProductHistoryEntry, self._request("GET", f"/products/{product_id}/history"))

    # Customers
    def list_customers(self, search: str = ""):
        params = {"filter[name]": search} if search else None
        return parse_list(Customer, self._request("GET", "/customers", params=params))

    def create_customer(self, customer: NewCustomer):
        data = self._request("POST", "/customers", payload=customer.model_dump())
        return parse(Customer, unwrap(data))

    # Orders and returns
    def list_orders(self):
        return parse_list(Order, self._request("GET", "/orders"))

    def create_order(self, payload: dict):
        """payload: {customer_id, items: [{variant_id, quantity}], payment_method}"""
        data = self._request("POST", "/orders", payload=payload)
        return parse(Order, unwrap(data))

    def create_return(self, payload: dict):
        """payload: {order_id, items: [{variant_id, quantity}], reason}"""
        return self._request("POST", "/returns", payload=payload)

    # Users
    def list_users(self):
        return parse_list(User, self._request("GET", "/users"))

    def create_user(self, user: NewUser):
        data = self._request("POST", "/users", payload=user.model_dump())
        return parse(User, unwrap(data))

    def delete_user(self, user_id):
        self._request("DELETE", f"/users/{user_id}")

    # Reports
    def profit_loss(self):
        return parse(ProfitLossReport, unwrap(self._request("GET", "/reports/profit-loss")))

    def balance_sheet(self):
        return parse(BalanceSheet, unwrap(self._request("GET", "/reports/balance-sheet")))
