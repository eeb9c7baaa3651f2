"""
Pydantic models for persisted records: cart items, chat messages, sessions.
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

CART_SCHEMA_VERSION = 2
CHAT_SCHEMA_VERSION = 2
SESSION_SCHEMA_VERSION = 2


class CategoryMetadata(BaseModel):
    """Display metadata of a course category"""
    name: str = Field(..., description="Category label")
    color_token: str = Field(..., description="Placeholder background colour")
    icon: str = Field(..., description="Category icon")
    level: str = Field(..., description="Level identifier")
    level_label: str = Field(..., description="Human readable level")
    rating: str = Field(..., description="Average rating, e.g. '4.5'")


class CartItem(BaseModel):
    """Cart item model"""
    id: str = Field(..., min_length=1, description="Stable product identifier")
    name: str = Field(..., description="Product name at time of add")
    unit_price: Decimal = Field(..., gt=0, description="Unit price at time of add")
    quantity: int = Field(..., ge=1, description="Item quantity")
    image: str = Field("", description="Image reference")
    author: str = Field("", description="Course author")
    category: Optional[CategoryMetadata] = Field(None, description="Category metadata")

    @field_validator("unit_price")
    @classmethod
    def validate_unit_price(cls, v: Decimal) -> Decimal:
        if not v.is_finite():
            raise ValueError("Price must be a finite number")
        return v


class CartRecord(BaseModel):
    """Persisted shape of the cart key"""
    schema_version: int = CART_SCHEMA_VERSION
    items: List[CartItem] = Field(default_factory=list)


class Direction(str, Enum):
    OUTBOUND = "outbound"
    INBOUND = "inbound"


class Author(BaseModel):
    """Author of a chat message"""
    model_config = ConfigDict(frozen=True)

    display_name: str
    avatar_token: str
    author_id: str


class ChatMessage(BaseModel):
    """Chat message model"""
    id: int = Field(..., description="Time based, strictly increasing id")
    content: str = Field(..., min_length=1)
    timestamp: datetime = Field(..., description="UTC instant the message was created")
    author: Author
    direction: Direction

    @field_validator("content")
    @classmethod
    def validate_content(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Message content cannot be blank")
        return v


class ChatRecord(BaseModel):
    """Persisted shape of the chat key"""
    schema_version: int = CHAT_SCHEMA_VERSION
    messages: List[ChatMessage] = Field(default_factory=list)


class Session(BaseModel):
    """Logged-in user; absence of a session means guest"""
    schema_version: int = SESSION_SCHEMA_VERSION
    email: str
    username: str
    display_name: str
    login_instant: datetime


class CartTotals(BaseModel):
    """Unrounded cart totals"""
    subtotal: Decimal
    tax: Decimal
    total: Decimal


GUEST_AUTHOR = Author(display_name="Invité", avatar_token="👤", author_id="guest")
BOT_AUTHOR = Author(display_name="Assistant ESTIA", avatar_token="🤖", author_id="bot")
