"""
Database Schemas for Seratus Studio

Each Pydantic model represents a collection in MongoDB (users, artworks,
products, orders, backgrounds). Request bodies that modify an existing
record are explicit patch models: every field is optional and unknown
fields are rejected.
"""
from datetime import datetime
from typing import List, Optional, Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

ProductCategory = Literal[
    "Digital Art", "Illustrations", "Templates", "Mockups",
    "Icons", "Fonts", "Textures", "Brushes", "Other",
]
PaymentStatus = Literal["pending", "paid", "failed", "refunded"]
DeliveryStatus = Literal["pending", "processing", "delivered", "failed"]
Role = Literal["user", "admin"]


def _unique(values: List[str]) -> List[str]:
    seen = []
    for v in values:
        v = v.strip()
        if v and v not in seen:
            seen.append(v)
    return seen


class Patch(BaseModel):
    model_config = ConfigDict(extra="forbid")

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)


# -----------------------------
# Users
# -----------------------------

class Users(BaseModel):
    username: str = Field(..., min_length=3, max_length=30)
    email: EmailStr
    password: str  # werkzeug hash
    role: Role = "user"
    active: bool = True
    last_login: Optional[datetime] = None


class UserCreate(BaseModel):
    username: str = Field(..., min_length=3, max_length=30)
    email: EmailStr
    password: str = Field(..., min_length=6)
    role: Role = "user"

    @field_validator("username")
    @classmethod
    def strip_username(cls, v: str) -> str:
        return v.strip()


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


# -----------------------------
# Products
# -----------------------------

class Products(BaseModel):
    title: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=500)
    price: int = Field(..., ge=0)
    original_price: Optional[int] = Field(default=None, ge=0)
    discount: int = Field(default=0, ge=0, le=100)
    category: ProductCategory
    file_url: str = Field(..., min_length=1)
    watermark_url: str = Field(..., min_length=1)
    preview_images: List[str] = []
    tags: List[str] = []
    downloads: int = Field(default=0, ge=0)
    active: bool = True

    @field_validator("tags")
    @classmethod
    def dedupe_tags(cls, v: List[str]) -> List[str]:
        return _unique(v)

    @model_validator(mode="after")
    def check_prices(self):
        if self.original_price is None:
            self.original_price = self.price
        if self.price > self.original_price:
            raise ValueError("price cannot exceed original_price")
        return self


class ProductUpdate(Patch):
    title: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, min_length=1, max_length=500)
    price: Optional[int] = Field(default=None, ge=0)
    original_price: Optional[int] = Field(default=None, ge=0)
    discount: Optional[int] = Field(default=None, ge=0, le=100)
    category: Optional[ProductCategory] = None
    file_url: Optional[str] = Field(default=None, min_length=1)
    watermark_url: Optional[str] = Field(default=None, min_length=1)
    preview_images: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    active: Optional[bool] = None

    @field_validator("tags")
    @classmethod
    def dedupe_tags(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return _unique(v) if v is not None else v


# -----------------------------
# Artworks
# -----------------------------

class CreativeProcessImage(BaseModel):
    title: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=500)
    image_url: str = Field(..., min_length=1)


class Artworks(BaseModel):
    title: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=1000)
    images: List[str] = Field(..., min_length=1)
    tags: List[str] = Field(default=[], max_length=10)
    process_steps: List[str] = []
    creative_process_images: List[CreativeProcessImage] = Field(default=[], max_length=20)
    featured: bool = False

    @field_validator("tags")
    @classmethod
    def dedupe_tags(cls, v: List[str]) -> List[str]:
        return _unique(v)


class ArtworkUpdate(Patch):
    title: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, min_length=1, max_length=1000)
    images: Optional[List[str]] = Field(default=None, min_length=1)
    tags: Optional[List[str]] = Field(default=None, max_length=10)
    process_steps: Optional[List[str]] = None
    creative_process_images: Optional[List[CreativeProcessImage]] = Field(default=None, max_length=20)
    featured: Optional[bool] = None

    @field_validator("tags")
    @classmethod
    def dedupe_tags(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return _unique(v) if v is not None else v


# -----------------------------
# Orders
# -----------------------------

class Orders(BaseModel):
    customer_name: str = Field(..., min_length=1, max_length=100)
    customer_email: EmailStr
    customer_phone: str = Field(..., min_length=1)
    customer_address: str = Field(..., min_length=1)
    product_id: str
    quantity: int = Field(default=1, ge=1)
    total_amount: int = Field(..., ge=0)
    payment_status: PaymentStatus = "pending"
    delivery_status: DeliveryStatus = "pending"
    payment_proof: Optional[str] = None
    download_link: Optional[str] = None
    download_expires: Optional[datetime] = None
    downloads_counted: bool = False
    notes: Optional[str] = Field(default=None, max_length=500)


class OrderCreate(BaseModel):
    """Checkout submission. Any client supplied total is ignored."""
    customer_name: str = Field(..., min_length=1, max_length=100)
    customer_email: EmailStr
    customer_phone: str = Field(..., min_length=1)
    customer_address: str = Field(..., min_length=1)
    product_id: str = Field(..., min_length=1)
    quantity: int = Field(default=1, ge=1)
    notes: Optional[str] = Field(default=None, max_length=500)
    payment_proof: Optional[str] = None

    @field_validator("customer_name", "customer_phone", "customer_address")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class OrderStatusPatch(Patch):
    payment_status: Optional[PaymentStatus] = None
    delivery_status: Optional[DeliveryStatus] = None
    download_link: Optional[str] = Field(default=None, min_length=1)
    notes: Optional[str] = Field(default=None, max_length=500)


# -----------------------------
# Backgrounds
# -----------------------------

class Backgrounds(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    image_url: str
    file_size: int = Field(..., ge=0)
    file_type: Literal["image/jpeg", "image/jpg", "image/png", "image/webp", "image/svg+xml"] = "image/jpeg"


class BackgroundUpdate(Patch):
    is_active: Optional[bool] = None
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)


# -----------------------------
# Email
# -----------------------------

class SendEmailRequest(BaseModel):
    to: EmailStr
    subject: Optional[str] = None
    fileLink: Optional[str] = None
