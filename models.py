# models.py
import logging
import time
from datetime import datetime
from decimal import Decimal

from pydantic import ValidationError

from api import ApiClient, ApiError
from catalog import CatalogSnapshot
from schemas import (
    Customer,
    DecodeError,
    NewCustomer,
    NewProduct,
    NewUser,
    Order,
    PaymentMethod,
    Product,
    User,
    Variant,
)

logger = logging.getLogger("pos_client.cart")


def log_notice(level: str, message: str):
    """Default notifier: write user-facing notices to the log."""
    logger.log(logging.WARNING if level in ("warning", "error") else logging.INFO, message)


class CartLine:
    """One line in the current cart: a variant snapshot plus a quantity."""
    def __init__(self, cart_id: str, product_name: str, variant_id: str, sku: str,
                 price: Decimal, stock_quantity: int, quantity: int = 1,
                 cost_price: Decimal = Decimal("0"), size=None, color=None, barcode=None):
        self.cart_id = cart_id
        self.product_name = product_name
        self.variant_id = str(variant_id)
        self.sku = sku
        self.price = Decimal(price)
        self.cost_price = Decimal(cost_price)
        self.stock_quantity = stock_quantity
        self.quantity = quantity
        self.size = size
        self.color = color
        self.barcode = barcode

    @classmethod
    def from_variant(cls, cart_id: str, product: Product, variant: Variant):
        return cls(
            cart_id=cart_id,
            product_name=product.name,
            variant_id=variant.id,
            sku=variant.sku,
            price=variant.price,
            cost_price=variant.cost_price,
            stock_quantity=variant.stock_quantity,
            size=variant.size,
            color=variant.color,
            barcode=variant.barcode,
        )

    @property
    def line_total(self):
        return self.price * self.quantity

    @property
    def label(self):
        extra = " / ".join(p for p in (self.size, self.color) if p)
        return f"{self.product_name} ({extra})" if extra else self.product_name

    def to_dict(self):
        return {
            "cart_id": self.cart_id,
            "product_name": self.product_name,
            "variant_id": self.variant_id,
            "sku": self.sku,
            "price": str(self.price),
            "cost_price": str(self.cost_price),
            "stock_quantity": self.stock_quantity,
            "quantity": self.quantity,
            "size": self.size,
            "color": self.color,
            "barcode": self.barcode,
        }

    @classmethod
    def from_dict(cls, data: dict):
        return cls(
            cart_id=data["cart_id"],
            product_name=data["product_name"],
            variant_id=data["variant_id"],
            sku=data["sku"],
            price=Decimal(str(data["price"])),
            cost_price=Decimal(str(data.get("cost_price", "0"))),
            stock_quantity=int(data["stock_quantity"]),
            quantity=int(data["quantity"]),
            size=data.get("size"),
            color=data.get("color"),
            barcode=data.get("barcode"),
        )


class Cart:
    """
    Holds the lines of the sale in progress.

    At most one line per variant, and every line keeps
    1 <= quantity <= stock_quantity. Stock violations are reported through
    `notify(level, message)` and leave the cart untouched. `on_change` is
    called with the cart after every mutation (used to persist it).
    """
    def __init__(self, notify=None, on_change=None):
        self._lines = []
        self.notify = notify or log_notice
        self.on_change = on_change
        self._next_seq = int(time.time() * 1000)

    @property
    def lines(self):
        return tuple(self._lines)

    def __len__(self):
        return len(self._lines)

    def __iter__(self):
        return iter(self._lines)

    def _new_cart_id(self, variant_id):
        seq = self._next_seq
        self._next_seq += 1
        return f"{variant_id}-{seq}"

    def _changed(self):
        if self.on_change:
            self.on_change(self)

    def find_line(self, cart_id: str):
        for line in self._lines:
            if line.cart_id == cart_id:
                return line
        return None

    def line_for_variant(self, variant_id):
        variant_id = str(variant_id)
        for line in self._lines:
            if line.variant_id == variant_id:
                return line
        return None

    def add_to_cart(self, product: Product, variant: Variant):
        """Add one unit of `variant`. Returns True if the cart changed."""
        if variant.stock_quantity <= 0:
            self.notify("warning", "This item cannot be added.")
            return False

        line = self.line_for_variant(variant.id)
        current = line.quantity if line else 0
        if current + 1 > variant.stock_quantity:
            self.notify("warning", f"Only {variant.stock_quantity} units available.")
            return False

        if line:
            line.quantity += 1
            line.price = variant.price
            line.cost_price = variant.cost_price
            line.stock_quantity = variant.stock_quantity
        else:
            self._lines.append(CartLine.from_variant(self._new_cart_id(variant.id), product, variant))
        self._changed()
        return True

    def remove_from_cart(self, cart_id: str):
        before = len(self._lines)
        self._lines = [line for line in self._lines if line.cart_id != cart_id]
        if len(self._lines) != before:
            self._changed()

    def update_quantity(self, cart_id: str, delta: int):
        """
        Shift a line's quantity by delta. Going below 1 is ignored (removal
        is explicit); going above stock is rejected with a warning.
        """
        line = self.find_line(cart_id)
        if not line:
            return False
        new_qty = line.quantity + delta
        if new_qty < 1:
            return False
        if new_qty > line.stock_quantity:
            self.notify("warning", f"Cannot sell more than {line.stock_quantity} units.")
            return False
        line.quantity = new_qty
        self._changed()
        return True

    def clear_cart(self):
        self._lines = []
        self._changed()

    def cart_total(self):
        return sum((line.price * line.quantity for line in self._lines), Decimal("0"))

    def item_count(self):
        return sum(line.quantity for line in self._lines)

    def sync_stock(self, catalog: CatalogSnapshot):
        """Re-read price and stock ceilings from a fresh catalog."""
        kept = []
        changed = False
        for line in self._lines:
            found = catalog.find_variant(line.variant_id)
            if not found or found[1].stock_quantity <= 0:
                self.notify("warning", f"{line.product_name} is no longer available and was removed from the cart.")
                changed = True
                continue
            variant = found[1]
            if (line.price, line.stock_quantity) != (variant.price, variant.stock_quantity):
                changed = True
            line.price = variant.price
            line.cost_price = variant.cost_price
            line.stock_quantity = variant.stock_quantity
            if line.quantity > variant.stock_quantity:
                line.quantity = variant.stock_quantity
                self.notify("warning", f"Only {variant.stock_quantity} units of {line.product_name} available; quantity adjusted.")
            kept.append(line)
        self._lines = kept
        if changed:
            self._changed()

    def to_dict(self):
        return {"lines": [line.to_dict() for line in self._lines]}

    def load_dict(self, data: dict):
        """Rehydrate from `to_dict` output. Invalid or duplicate lines are dropped."""
        lines = []
        seen = set()
        raw_lines = data.get("lines") if isinstance(data, dict) else None
        for raw in raw_lines if isinstance(raw_lines, list) else []:
            if not isinstance(raw, dict):
                logger.warning(f"Skipping unreadable cart line {raw!r}")
                continue
            try:
                line = CartLine.from_dict(raw)
            except (KeyError, TypeError, ValueError, ArithmeticError) as e:
                logger.warning(f"Skipping unreadable cart line {raw!r}: {e}")
                continue
            if line.variant_id in seen or not 1 <= line.quantity <= line.stock_quantity:
                logger.warning(f"Skipping invalid cart line {line.cart_id}")
                continue
            seen.add(line.variant_id)
            lines.append(line)
            suffix = line.cart_id.rsplit("-", 1)[-1]
            if suffix.isdigit():
                self._next_seq = max(self._next_seq, int(suffix) + 1)
        self._lines = lines
        return self


class CheckoutSelection:
    """Customer and payment method chosen for the sale being checked out."""
    def __init__(self):
        self.customer = None
        self.payment_method = PaymentMethod.CASH

    def reset(self):
        self.customer = None
        self.payment_method = PaymentMethod.CASH

    @property
    def customer_id(self):
        return self.customer.id if self.customer else None


class ActionResult:
    """Outcome of a user action, ready to show as a notification."""
    def __init__(self, ok: bool, message: str, value=None, receipt=None):
        self.ok = ok
        self.message = message
        self.value = value
        self.receipt = receipt

    @property
    def invoice_number(self):
        return self.value.invoice_number if isinstance(self.value, Order) else None

    def __bool__(self):
        return self.ok

    def __repr__(self):
        return f"ActionResult(ok={self.ok}, message={self.message!r})"


def _failure_message(exc, fallback):
    if isinstance(exc, ApiError) and exc.message:
        return exc.message
    return fallback


class CashierSystem:
    """
    Coordinates catalog, cart and checkout against the bookkeeping API.
    """
    def __init__(self, api: ApiClient, cart: Cart = None, notify=None):
        self.api = api
        self.notify = notify or log_notice
        self.cart = cart if cart is not None else Cart(notify=self.notify)
        self.catalog = CatalogSnapshot()
        self.selection = CheckoutSelection()
        self.customers = []
        self.users = []
        self._submitting = False

    @property
    def submitting(self):
        return self._submitting

    def _fail(self, message):
        self.notify("error", message)
        return ActionResult(False, message)

    def refresh_catalog(self, per_page: int = 100):
        """Fetch products and re-check cart lines against the new stock levels."""
        try:
            products = self.api.list_products(per_page=per_page)
        except (ApiError, DecodeError) as e:
            logger.error(f"Catalog refresh failed: {e}")
            return self._fail(_failure_message(e, "Could not load products."))
        self.catalog = CatalogSnapshot(products)
        self.cart.sync_stock(self.catalog)
        logger.info(f"Catalog loaded: {len(self.catalog)} products")
        return ActionResult(True, f"{len(self.catalog)} products loaded", value=self.catalog)

    def search(self, query: str):
        return self.catalog.search(query)

    def add_to_cart(self, product: Product, variant: Variant):
        return self.cart.add_to_cart(product, variant)

    def scan_and_add(self, code: str):
        """Add one unit of the variant whose SKU or barcode equals `code`."""
        found = self.catalog.find_by_code(code)
        if not found:
            self.notify("warning", "Product not found.")
            return False
        return self.cart.add_to_cart(*found)

    def cart_total(self):
        return self.cart.cart_total()

    def load_customers(self, search: str = ""):
        try:
            self.customers = self.api.list_customers(search)
        except (ApiError, DecodeError) as e:
            logger.error(f"Loading customers failed: {e}")
            return self._fail(_failure_message(e, "Could not load customers."))
        return ActionResult(True, f"{len(self.customers)} customers", value=self.customers)

    def select_customer(self, customer: Customer = None):
        self.selection.customer = customer

    def set_payment_method(self, method):
        self.selection.payment_method = PaymentMethod(method)

    def quick_add_customer(self, name: str, email: str = None, phone: str = None, address: str = None):
        """Create a customer out of band and select it for this checkout."""
        try:
            new = NewCustomer(name=name or "", email=email, phone=phone, address=address)
        except ValidationError as e:
            message = e.errors()[0]["msg"].removeprefix("Value error, ")
            return self._fail(message)
        try:
            customer = self.api.create_customer(new)
        except (ApiError, DecodeError) as e:
            logger.error(f"Creating customer failed: {e}")
            return self._fail(_failure_message(e, "Error creating customer."))
        self.customers.append(customer)
        self.selection.customer = customer
        self.notify("success", "Customer Added")
        logger.info(f"Customer created: {customer.id} {customer.name}")
        return ActionResult(True, "Customer Added", value=customer)

    def order_payload(self):
        return {
            "customer_id": self.selection.customer_id,
            "items": [{"variant_id": line.variant_id, "quantity": line.quantity}
                      for line in self.cart],
            "payment_method": self.selection.payment_method.value,
        }

    def build_receipt(self, order: Order = None):
        total = self.cart.cart_total()
        return {
            "invoice_number": order.invoice_number if order else None,
            "items": [(line.label, line.quantity, line.price, line.line_total)
                      for line in self.cart],
            "subtotal": total,
            "total": total,
            "payment_method": self.selection.payment_method.label,
            "customer": self.selection.customer.name if self.selection.customer else "Walk-in Customer",
            "timestamp": datetime.now().isoformat(timespec="seconds"),
        }

    def checkout(self):
        """
        Submit the cart as an order. On success the cart is cleared and the
        selection reset; on failure nothing changes so the user can retry.
        """
        if self._submitting:
            return self._fail("A checkout is already in progress")
        if not len(self.cart):
            return self._fail("Cart is empty")
        if self.selection.payment_method == PaymentMethod.CREDIT and not self.selection.customer:
            return self._fail("Select a customer for store credit sales")

        payload = self.order_payload()
        self._submitting = True
        try:
            order = self.api.create_order(payload)
        except (ApiError, DecodeError) as e:
            logger.error(f"Checkout failed: {e}")
            return self._fail(_failure_message(e, "Checkout failed. Please try again."))
        finally:
            self._submitting = False

        receipt = self.build_receipt(order)
        self.cart.clear_cart()
        self.selection.reset()
        message = f"Sale completed. Invoice {order.invoice_number}"
        logger.info(f"{message} ({len(payload['items'])} lines, total {receipt['total']})")
        self.notify("success", message)
        return ActionResult(True, message, value=order, receipt=receipt)

    def load_orders(self):
        try:
            orders = self.api.list_orders()
        except (ApiError, DecodeError) as e:
            logger.error(f"Loading orders failed: {e}")
            return self._fail(_failure_message(e, "Could not load orders."))
        return ActionResult(True, f"{len(orders)} orders", value=orders)

    def process_return(self, order: Order, quantities: dict, reason: str = ""):
        """
        Send items of `order` back to inventory. `quantities` maps variant id
        to the number of units returned; each is capped at what was sold.
        """
        sold = {}
        for item in order.items:
            sold[item.product_variant_id] = sold.get(item.product_variant_id, 0) + item.quantity
        items = []
        for variant_id, qty in quantities.items():
            variant_id = str(variant_id)
            try:
                qty = int(qty)
            except (TypeError, ValueError):
                qty = 0
            qty = min(max(0, qty), sold.get(variant_id, 0))
            if qty > 0:
                items.append({"variant_id": variant_id, "quantity": qty})
        if not items:
            return self._fail("Select items to return")

        try:
            self.api.create_return({"order_id": order.id, "items": items, "reason": reason})
        except (ApiError, DecodeError) as e:
            logger.error(f"Return for order {order.id} failed: {e}")
            return self._fail(_failure_message(e, "Error processing return."))
        logger.info(f"Return recorded for invoice {order.invoice_number}: {items}")
        self.notify("success", "Inventory and Ledger updated.")
        return ActionResult(True, "Inventory and Ledger updated.", value=items)

    # Inventory administration
    def save_product(self, data, product_id=None):
        """
        Create a product, or update `product_id` in place. `data` is a
        NewProduct or a dict of its fields.
        """
        try:
            product = data if isinstance(data, NewProduct) else NewProduct.model_validate(data)
        except ValidationError as e:
            err = e.errors()[0]
            field = ".".join(str(x) for x in err["loc"])
            return self._fail(f"Please check your inputs. {field}: {err['msg']}")
        try:
            if product_id is None:
                saved = self.api.create_product(product)
                message = "Inventory and financial records have been updated."
            else:
                saved = self.api.update_product(product_id, product)
                message = "Product Updated"
        except (ApiError, DecodeError) as e:
            logger.error(f"Saving product {product.name} failed: {e}")
            return self._fail(_failure_message(e, "Please check your inputs."))
        logger.info(f"Product saved: {saved.id} {saved.name}")
        self.notify("success", message)
        return ActionResult(True, message, value=saved)

    def product_history(self, product_id):
        try:
            history = self.api.product_history(product_id)
        except (ApiError, DecodeError) as e:
            logger.error(f"Loading history for product {product_id} failed: {e}")
            return self._fail(_failure_message(e, "Could not load product history."))
        return ActionResult(True, f"{len(history)} records", value=history)

    # User administration
    def load_users(self):
        try:
            self.users = self.api.list_users()
        except (ApiError, DecodeError) as e:
            logger.error(f"Loading users failed: {e}")
            return self._fail(_failure_message(e, "Could not load users."))
        return ActionResult(True, f"{len(self.users)} users", value=self.users)

    def add_user(self, name: str, email: str, password: str, role="cashier"):
        try:
            new = NewUser(name=(name or "").strip(), email=email or "", password=password or "", role=role)
        except ValidationError as e:
            err = e.errors()[0]
            return self._fail(f"{err['loc'][0]}: {err['msg'].removeprefix('Value error, ')}")
        try:
            user = self.api.create_user(new)
        except (ApiError, DecodeError) as e:
            logger.error(f"Creating user failed: {e}")
            return self._fail(_failure_message(e, "Error creating user"))
        self.users.append(user)
        self.notify("success", "User Created")
        logger.info(f"User created: {user.id} {user.email} ({user.role.value})")
        return ActionResult(True, "User Created", value=user)

    def remove_user(self, user: User):
        try:
            self.api.delete_user(user.id)
        except ApiError as e:
            logger.error(f"Deleting user {user.id} failed: {e}")
            return self._fail(_failure_message(e, "Error deleting user"))
        self.users = [u for u in self.users if u.id != user.id]
        self.notify("success", "User Deleted")
        logger.info(f"User deleted: {user.id} {user.email}")
        return ActionResult(True, "User Deleted", value=user)
