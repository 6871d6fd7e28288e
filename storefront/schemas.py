# storefront/schemas.py
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, List

from pydantic import BaseModel, EmailStr, Field, model_validator


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


class DiscountKind(str, Enum):
    PERCENT = "percent"
    AMOUNT = "amount"


# 👤 Пользователь
class UserCreate(BaseModel):
    username: str
    display_name: str
    password_hash: Optional[str] = None
    role: Role = Role.USER


class UserOut(UserCreate):
    id: int
    class Config:
        from_attributes = True


class RegisterForm(BaseModel):
    username: str = Field(min_length=3, max_length=255)
    display_name: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=8)


class LoginForm(BaseModel):
    username: str
    password: str


class GoogleProfile(BaseModel):
    email: EmailStr
    name: Optional[str] = None


# 🗂️ Категория
class CategoryOut(BaseModel):
    id: int
    name: str
    class Config:
        from_attributes = True


# 🛍️ Товар
class ProductForm(BaseModel):
    """Admin input; price in major units (e.g. 19.99)."""
    producer: str = ""
    name: str = Field(min_length=1)
    description: Optional[str] = None
    price: Decimal = Field(ge=0)
    quantity: int = Field(default=0, ge=0)
    category_id: Optional[int] = None
    image_url: Optional[str] = None


class ProductCreate(BaseModel):
    producer: str = ""
    name: str
    description: Optional[str] = None
    price: int = Field(ge=0)  # minor units
    quantity: int = Field(default=0, ge=0)
    category_id: Optional[int] = None
    image_url: Optional[str] = None


class ProductOut(ProductCreate):
    id: int
    created_at: datetime
    class Config:
        from_attributes = True


class ProductRef(BaseModel):
    product_id: int


class QuantityUpdate(BaseModel):
    product_id: int
    quantity: int = Field(ge=0)


# 🎟️ Промокод
class PromoCodeForm(BaseModel):
    """Admin input; ``discount_value`` is percent points or an amount in major units."""
    code: str = Field(min_length=1, max_length=64)
    discount_kind: DiscountKind = DiscountKind.PERCENT
    discount_value: Decimal = Field(ge=0)
    active: bool = True

    @model_validator(mode="after")
    def check_percent_range(self):
        if self.discount_kind is DiscountKind.PERCENT and self.discount_value > 100:
            raise ValueError("percent discount must be between 0 and 100")
        return self


class PromoCodeOut(BaseModel):
    code: str
    discount_kind: DiscountKind
    discount_value: int  # percent points or minor units
    active: bool = True
    class Config:
        from_attributes = True


class PromoApply(BaseModel):
    code: str


class PromoRef(BaseModel):
    code: str


# 🛒 Корзина
class CartLine(BaseModel):
    product: ProductOut
    quantity: int
    row_total: int


class CartSummary(BaseModel):
    items: List[CartLine]
    total: int

    @property
    def is_empty(self) -> bool:
        return not self.items


class PriceBreakdown(BaseModel):
    subtotal: int
    discount: int
    after_discount: int
    delivery: int
    total: int
    promo_code: Optional[str] = None


# 📦 Заказ
class OrderItemCreate(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)
    price: int = Field(ge=0)


class OrderItemOut(BaseModel):
    product_id: Optional[int]
    product_name: Optional[str]
    quantity: int
    price: int


class OrderOut(BaseModel):
    id: int
    user_id: Optional[int]
    total: int
    created_at: datetime
    item_count: int
    items: List[OrderItemOut]
