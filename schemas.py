# schemas.py
"""
Wire schemas for the bookkeeping API.

Every payload coming back from the server is parsed into one of these
models before the rest of the application touches it. A payload that does
not fit raises DecodeError instead of leaking half-filled dicts.
"""
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

T = TypeVar("T", bound=BaseModel)


class DecodeError(Exception):
    """Raised when an API payload does not match the expected shape."""
    def __init__(self, model_name: str, detail: str):
        self.model_name = model_name
        self.detail = detail
        super().__init__(f"Unexpected {model_name} payload: {detail}")


class ApiModel(BaseModel):
    # ids come back as ints or strings depending on the endpoint
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    CREDIT = "credit"

    @property
    def label(self):
        return {
            PaymentMethod.CASH: "Cash",
            PaymentMethod.CARD: "Card / Transfer",
            PaymentMethod.CREDIT: "Store Credit",
        }[self]


class UserRole(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    CASHIER = "cashier"


class Variant(ApiModel):
    id: str
    sku: str
    price: Decimal = Field(..., ge=0)
    cost_price: Decimal = Field(Decimal("0"), ge=0)
    stock_quantity: int = Field(0, ge=0)
    size: Optional[str] = None
    color: Optional[str] = None
    barcode: Optional[str] = None

    @property
    def label(self):
        parts = [p for p in (self.size, self.color) if p]
        return " / ".join(parts) if parts else self.sku


class Product(ApiModel):
    id: str
    name: str
    description: Optional[str] = None
    variants: List[Variant] = Field(..., min_length=1)


class Customer(ApiModel):
    id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    balance: Decimal = Decimal("0")
    created_at: Optional[str] = None


class OrderItemVariant(ApiModel):
    sku: str
    size: Optional[str] = None
    color: Optional[str] = None


class OrderItem(ApiModel):
    id: str
    product_variant_id: str
    quantity: int = Field(..., ge=1)
    price: Decimal = Field(..., ge=0)
    variant: Optional[OrderItemVariant] = None

    @property
    def line_total(self):
        return self.price * self.quantity


class OrderCustomer(ApiModel):
    name: str


class Order(ApiModel):
    id: str
    invoice_number: str
    total_amount: Decimal = Decimal("0")
    status: str = "completed"
    created_at: Optional[str] = None
    customer: Optional[OrderCustomer] = None
    items: List[OrderItem] = Field(default_factory=list)

    @property
    def customer_name(self):
        return self.customer.name if self.customer else "Walk-in Customer"


class User(ApiModel):
    id: str
    name: str
    email: str
    role: UserRole = UserRole.CASHIER

    @model_validator(mode="before")
    @classmethod
    def role_from_roles(cls, data):
        # role-based backends send roles: [{"name": "admin"}, ...]
        if isinstance(data, dict) and not data.get("role") and data.get("roles"):
            first = data["roles"][0]
            data = dict(data, role=first.get("name") if isinstance(first, dict) else first)
        return data


def _check_email(v):
    local, _, domain = v.partition("@")
    if not local or "." not in domain:
        raise ValueError("Invalid email address")
    return v


class NewCustomer(BaseModel):
    """Body for POST /customers."""
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, v):
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Name is required")
        return v

    @field_validator("email", "phone", "address")
    @classmethod
    def blank_to_none(cls, v):
        if v is None or not v.strip():
            return None
        return v.strip()

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return _check_email(v) if v is not None else v


class NewUser(BaseModel):
    """Body for POST /users."""
    name: str = Field(..., min_length=2)
    email: str
    password: str = Field(..., min_length=6)
    role: UserRole = UserRole.CASHIER

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return _check_email(v.strip())


class NewVariant(BaseModel):
    id: Optional[str] = None
    sku: str = Field(..., min_length=1)
    price: Decimal = Field(..., ge=0)
    cost_price: Decimal = Field(Decimal("0"), ge=0)
    stock_quantity: int = Field(0, ge=0)
    size: Optional[str] = None
    color: Optional[str] = None
    barcode: Optional[str] = None


class NewProduct(BaseModel):
    """Body for POST /products and PUT /products/{id}."""
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    variants: List[NewVariant] = Field(..., min_length=1)

    @classmethod
    def from_product(cls, product: Product):
        """Edit body for an existing product; variant ids are kept so the server updates in place."""
        return cls(
            name=product.name,
            description=product.description,
            variants=[NewVariant(**v.model_dump()) for v in product.variants],
        )


class HistoryUser(ApiModel):
    name: str


class ProductHistoryEntry(ApiModel):
    """One audit-trail record for a product (price, stock or detail change)."""
    id: Optional[str] = None
    action: str
    details: Optional[str] = None
    created_at: Optional[str] = None
    user: Optional[HistoryUser] = None

    @property
    def user_name(self):
        return self.user.name if self.user else "System"


class PLBreakdownRow(ApiModel):
    date: str
    revenue: Decimal = Decimal("0")
    expense: Decimal = Decimal("0")


class ProfitLossReport(ApiModel):
    revenue: Decimal
    expenses: Decimal
    net_profit: Decimal
    breakdown: List[PLBreakdownRow] = Field(default_factory=list)


class BalanceSheet(ApiModel):
    assets: Decimal
    liabilities: Decimal
    equity: Decimal


def parse(model: Type[T], payload) -> T:
    """Validate a single object payload into `model`."""
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise DecodeError(model.__name__, _summarize(e)) from e


def parse_list(model: Type[T], payload) -> List[T]:
    """
    Validate a collection payload. Paginated endpoints wrap the rows in
    {"data": [...]}; bare lists are accepted as well.
    """
    if isinstance(payload, dict) and "data" in payload:
        payload = payload["data"]
    if not isinstance(payload, list):
        raise DecodeError(model.__name__, f"expected a list, got {type(payload).__name__}")
    return [parse(model, row) for row in payload]


def unwrap(payload):
    """Single-resource responses may come wrapped in {"data": {...}}."""
    if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
        return payload["data"]
    return payload


def _summarize(error: ValidationError):
    parts = []
    for err in error.errors()[:3]:
        loc = ".".join(str(x) for x in err["loc"]) or "<root>"
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)
