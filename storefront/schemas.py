# storefront/schemas.py

"""
Pydantic schemas for the storefront API.
These define the data structures for incoming requests and outgoing responses,
ensuring data validation and clear API contracts. Field names travel as
camelCase on the wire; snake_case is accepted on input as well.
"""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import ClassVar, FrozenSet, List, Literal, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    HttpUrl,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

SERVICE_REQUEST_STATUSES = ("pending", "in_progress", "completed", "cancelled")
ServiceRequestStatus = Literal["pending", "in_progress", "completed", "cancelled"]

# Numeric(10, 2) holds at most 8 integer digits
MAX_AMOUNT = Decimal("99999999.99")
CENT = Decimal("0.01")
MAX_ORDER_QUANTITY = 10000

_http_url = TypeAdapter(HttpUrl)


def parse_amount(value, label: str = "Price") -> Decimal:
    """
    Normalise a positive money amount.

    Accepts numbers, or strings using either "." or "," as the decimal
    separator ("150,00" and "150.00" are the same amount). Returns a Decimal
    rounded to cents.
    """
    message = f"{label} must be a positive number"
    if isinstance(value, bool):
        raise ValueError(message)
    if isinstance(value, (int, float, Decimal)):
        text = str(value)
    elif isinstance(value, str):
        text = value.strip().replace(",", ".")
        if not text or text.count(".") > 1:
            raise ValueError(message)
    else:
        raise ValueError(message)
    try:
        amount = Decimal(text)
    except InvalidOperation:
        raise ValueError(message)
    if not amount.is_finite() or amount <= 0:
        raise ValueError(message)
    # Bound the magnitude before quantize, which fails on huge exponents
    if amount > MAX_AMOUNT:
        raise ValueError(f"{label} is too large")
    amount = amount.quantize(CENT, rounding=ROUND_HALF_UP)
    if amount <= 0:
        raise ValueError(message)
    return amount


def check_http_url(value: str) -> str:
    try:
        _http_url.validate_python(value)
    except ValidationError:
        raise ValueError("Must provide a valid image URL")
    return value


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


class PartialModel(CamelModel):
    """
    Base for partial updates: every field is optional, but a field that is
    sent explicitly as null must belong to `nullable_fields`.
    """

    nullable_fields: ClassVar[FrozenSet[str]] = frozenset()

    @model_validator(mode="after")
    def _reject_nulls(self):
        fields = type(self).model_fields
        for name in self.model_fields_set:
            if getattr(self, name) is None and name not in self.nullable_fields:
                raise ValueError(f"{fields[name].alias or name} cannot be null")
        return self

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)


# -----------------------------
# Users
# -----------------------------
class UserCreate(CamelModel):
    username: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=6, max_length=128)
    first_name: str = Field(..., min_length=2, max_length=255)
    last_name: str = Field(..., min_length=2, max_length=255)
    email: EmailStr
    phone: Optional[str] = Field(None, max_length=50)


class LoginRequest(CamelModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


# Never carries the password hash.
class UserResponse(CamelModel):
    id: int
    username: str
    first_name: str
    last_name: str
    email: str
    phone: Optional[str] = None
    is_admin: bool
    created_at: datetime


# -----------------------------
# Categories
# -----------------------------
class CategoryCreate(CamelModel):
    name: str = Field(..., min_length=3, max_length=255)
    description: Optional[str] = None


class CategoryUpdate(PartialModel):
    nullable_fields: ClassVar[FrozenSet[str]] = frozenset({"description"})

    name: Optional[str] = Field(None, min_length=3, max_length=255)
    description: Optional[str] = None


class CategoryResponse(CamelModel):
    id: int
    name: str
    description: Optional[str] = None
    created_at: datetime


# -----------------------------
# Products
# -----------------------------
class ProductCreate(CamelModel):
    name: str = Field(..., min_length=3, max_length=255)
    description: str = Field(..., min_length=10)
    price: Decimal = Field(..., description="Positive amount; '.' or ',' decimal separator.")
    image_url: str
    category_id: int
    in_stock: bool = True

    @field_validator("price", mode="before")
    @classmethod
    def _normalise_price(cls, value):
        return parse_amount(value)

    @field_validator("image_url")
    @classmethod
    def _check_image_url(cls, value):
        return check_http_url(value)


class ProductUpdate(PartialModel):
    name: Optional[str] = Field(None, min_length=3, max_length=255)
    description: Optional[str] = Field(None, min_length=10)
    price: Optional[Decimal] = None
    image_url: Optional[str] = None
    category_id: Optional[int] = None
    in_stock: Optional[bool] = None

    @field_validator("price", mode="before")
    @classmethod
    def _normalise_price(cls, value):
        if value is None:
            return None
        return parse_amount(value)

    @field_validator("image_url")
    @classmethod
    def _check_image_url(cls, value):
        if value is None:
            return None
        return check_http_url(value)


class ProductResponse(CamelModel):
    id: int
    name: str
    description: str
    price: Decimal
    image_url: str
    category_id: int
    in_stock: bool
    created_at: datetime


class ProductWithCategory(ProductResponse):
    category: Optional[CategoryResponse] = None


# -----------------------------
# Service requests
# -----------------------------
class ServiceRequestCreate(CamelModel):
    service_type: str = Field(..., min_length=3, max_length=255)
    description: str = Field(..., min_length=10)


class ServiceRequestStatusUpdate(CamelModel):
    status: ServiceRequestStatus


class ServiceRequestResponse(CamelModel):
    id: int
    user_id: int
    service_type: str
    description: str
    status: str
    created_at: datetime
    updated_at: datetime


class ServiceRequestWithUser(ServiceRequestResponse):
    user: UserResponse


# -----------------------------
# Orders
# -----------------------------
class OrderCreate(CamelModel):
    """Insert shape for an order row; the total is computed server-side."""

    user_id: int
    total: Decimal

    @field_validator("total", mode="before")
    @classmethod
    def _normalise_total(cls, value):
        return parse_amount(value, "Total")


class OrderItemCreate(CamelModel):
    order_id: int
    product_id: int
    quantity: int = Field(..., gt=0, le=MAX_ORDER_QUANTITY)
    price: Decimal

    @field_validator("price", mode="before")
    @classmethod
    def _normalise_price(cls, value):
        return parse_amount(value)


class CheckoutItem(CamelModel):
    product_id: int
    quantity: int = Field(..., gt=0, le=MAX_ORDER_QUANTITY)


class CheckoutRequest(CamelModel):
    items: List[CheckoutItem] = Field(..., min_length=1)


class OrderStatusUpdate(CamelModel):
    status: str = Field(..., min_length=1, max_length=30)


class OrderItemResponse(CamelModel):
    id: int
    order_id: int
    product_id: int
    quantity: int
    price: Decimal
    created_at: datetime
    product: Optional[ProductResponse] = None


class OrderResponse(CamelModel):
    id: int
    user_id: int
    status: str
    total: Decimal
    created_at: datetime
    updated_at: datetime
    items: List[OrderItemResponse] = []


class OrderWithUser(OrderResponse):
    user: UserResponse


# -----------------------------
# Testimonials
# -----------------------------
class TestimonialCreate(CamelModel):
    text: str = Field(..., min_length=10)
    rating: int = Field(..., ge=1, le=5)


class TestimonialResponse(CamelModel):
    id: int
    user_id: int
    text: str
    rating: int
    approved: bool
    created_at: datetime
    user: Optional[UserResponse] = None


# -----------------------------
# Messages
# -----------------------------
class MessageCreate(CamelModel):
    name: str = Field(..., min_length=2, max_length=255)
    email: EmailStr
    subject: str = Field(..., min_length=3, max_length=255)
    message: str = Field(..., min_length=10)


class MessageResponse(CamelModel):
    id: int
    name: str
    email: str
    subject: str
    message: str
    read: bool
    created_at: datetime


# -----------------------------
# Uploads
# -----------------------------
class UploadResponse(CamelModel):
    image_url: str
    filename: str
    originalname: str
