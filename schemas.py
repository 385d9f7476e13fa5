"""
Database Schemas for the E-commerce App

Each Pydantic model corresponds to one MongoDB collection.
Collection name is the lowercase of the class name.
"""
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator


class Role(str, Enum):
    CUSTOMER = "CUSTOMER"
    ADMIN = "ADMIN"
    RIDER = "RIDER"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            return cls.__members__.get(value.upper())
        return None


class OrderStatus(str, Enum):
    PAID = "PAID"
    SHIPPED = "SHIPPED"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"
    NOT_DELIVERED = "NOT_DELIVERED"
    CANCELLED = "CANCELLED"

    @classmethod
    def _missing_(cls, value):
        if not isinstance(value, str):
            return None
        name = value.upper()
        # older clients send UNDELIVERED
        if name == "UNDELIVERED":
            return cls.NOT_DELIVERED
        return cls.__members__.get(name)


class PaymentMethod(str, Enum):
    CARD = "CARD"
    COD = "COD"
    WALLET = "WALLET"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            return cls.__members__.get(value.upper())
        return None


class Document(BaseModel):
    model_config = ConfigDict(use_enum_values=True)


class User(Document):
    name: str = Field(..., description="Full name")
    email: EmailStr
    password_hash: str = Field(..., description="Salted password hash")
    role: Role = Role.CUSTOMER
    phone: Optional[str] = None
    google_id: Optional[str] = None
    profile_picture: Optional[str] = None


class ApprovedEmail(Document):
    """Emails allowed to receive a staff role on Google sign-up."""
    email: EmailStr
    role: Literal["ADMIN", "RIDER"]


class Variant(Document):
    color: str
    size: str
    price: float = Field(..., ge=0)
    stock: int = Field(..., ge=0)


class Product(Document):
    title: str = Field(..., min_length=1)
    description: str
    price: float = Field(..., ge=0, description="Base price")
    image: str
    category: str
    sizes: List[str] = Field(default_factory=list)
    colors: List[str] = Field(default_factory=list)
    variants: List[Variant] = Field(default_factory=list)
    rating: float = Field(0, ge=0, le=5)
    available_quantity: int = Field(0, ge=0, description="Sum of variant stock")

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        return v.strip()

    @model_validator(mode="after")
    def sync_from_variants(self):
        self.available_quantity = sum(v.stock for v in self.variants)
        if not self.sizes:
            self.sizes = list(dict.fromkeys(v.size for v in self.variants))
        if not self.colors:
            self.colors = list(dict.fromkeys(v.color for v in self.variants))
        return self


class OrderItem(Document):
    product_id: str
    product_name: str
    color: str
    size: str
    price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=1)
    image_url: Optional[str] = None


class Order(Document):
    customer_id: str
    customer_name: str
    customer_address: str
    customer_phone: str
    items: List[OrderItem] = Field(..., min_length=1)
    total_amount: float = Field(..., ge=0)
    status: OrderStatus = OrderStatus.PAID
    rider_id: Optional[str] = None
    rider_name: Optional[str] = None
    payment_method: PaymentMethod = PaymentMethod.CARD

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v):
        return OrderStatus(v) if isinstance(v, str) else v

    @field_validator("payment_method", mode="before")
    @classmethod
    def normalize_payment_method(cls, v):
        return PaymentMethod(v) if isinstance(v, str) else v


class Session(BaseModel):
    user_id: str
    expires_at: float = Field(..., description="Epoch seconds")
