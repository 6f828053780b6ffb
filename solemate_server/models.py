"""Data models for SoleMate storefront entities."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

ACCESS_TOKEN_LIFETIME = timedelta(hours=1)
REFRESH_TOKEN_LIFETIME = timedelta(days=7)

PLACEHOLDER_TITLE = "Loading..."


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ApiModel(BaseModel):
    """Base model accepting both the API's camelCase keys and field names."""

    model_config = ConfigDict(populate_by_name=True)


class User(ApiModel):
    """Represents the authenticated identity."""

    id: str = Field(description="User ID")
    email: str = Field(description="User email address")
    name: str = Field(default="", description="Display name")
    role: Literal["user", "admin"] = Field(default="user", description="User role")


class AuthCredentials(BaseModel):
    """Authentication credentials."""

    email: str
    password: str


class Registration(AuthCredentials):
    """Registration payload."""

    name: str


class TokenPair(ApiModel):
    """Access/refresh token pair returned by the auth endpoints."""

    access_token: str = Field(alias="accessToken")
    refresh_token: str = Field(alias="refreshToken")


class AuthResponse(TokenPair):
    """Login/register response."""

    user: User


class SessionData(BaseModel):
    """Session data for the authenticated user, persisted by the client."""

    access_token: Optional[str] = Field(None, description="Bearer token for API requests")
    refresh_token: Optional[str] = Field(None, description="Token used to rotate the pair")
    access_expires_at: Optional[datetime] = Field(None, description="Access token expiry")
    refresh_expires_at: Optional[datetime] = Field(None, description="Refresh token expiry")
    user: Optional[User] = Field(None, description="Identity of the session owner")

    @classmethod
    def from_tokens(cls, tokens: TokenPair, user: Optional[User] = None) -> "SessionData":
        now = utcnow()
        return cls(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            access_expires_at=now + ACCESS_TOKEN_LIFETIME,
            refresh_expires_at=now + REFRESH_TOKEN_LIFETIME,
            user=user,
        )

    @property
    def has_tokens(self) -> bool:
        return bool(self.access_token and self.refresh_token)

    @property
    def access_expired(self) -> bool:
        return self.access_expires_at is None or self.access_expires_at <= utcnow()

    @property
    def refresh_expired(self) -> bool:
        return self.refresh_expires_at is None or self.refresh_expires_at <= utcnow()


class AuthEvent(str, Enum):
    """Session transitions broadcast by the auth manager."""

    LOGIN = "login"
    REGISTER = "register"
    REFRESH = "refresh"
    RESTORE = "restore"
    LOGOUT = "logout"
    EXPIRED = "expired"


class CartProduct(ApiModel):
    """Product summary embedded in a cart line."""

    id: str = ""
    title: str = PLACEHOLDER_TITLE
    slug: str = ""
    images: list[str] = Field(default_factory=list)


class CartVariant(ApiModel):
    """Variant summary embedded in a cart line."""

    id: str
    size: str = ""
    color: str = ""
    price: Decimal = Field(default=Decimal("0"), description="Unit price snapshot")


class CartLine(ApiModel):
    """Represents a line in the shopping cart."""

    id: str = Field(description="Line ID")
    product_variant_id: str = Field(alias="productVariantId", description="Variant reference")
    product: CartProduct = Field(default_factory=CartProduct)
    variant: CartVariant
    quantity: int = Field(ge=1, description="Quantity of the variant")

    @property
    def unit_price(self) -> Decimal:
        return self.variant.price

    @property
    def subtotal(self) -> Decimal:
        return self.variant.price * self.quantity

    @property
    def is_placeholder(self) -> bool:
        return not self.product.id


class Cart(ApiModel):
    """Represents the shopping cart."""

    items: list[CartLine] = Field(default_factory=list, description="Cart lines")

    @computed_field(alias="totalItems")
    @property
    def total_items(self) -> int:
        return sum(line.quantity for line in self.items)

    @computed_field(alias="totalPrice")
    @property
    def total_price(self) -> Decimal:
        return sum((line.subtotal for line in self.items), Decimal("0"))


class ProductVariant(ApiModel):
    """A purchasable SKU-level configuration of a product."""

    id: str
    product_id: str = Field(alias="productId")
    sku: str
    size: str = ""
    color: str = ""
    price: Decimal
    inventory_count: int = Field(default=0, alias="inventoryCount")
    is_active: bool = Field(default=True, alias="isActive")
    product: CartProduct

    def to_cart_variant(self) -> CartVariant:
        return CartVariant(id=self.id, size=self.size, color=self.color, price=self.price)


class MergeResult(BaseModel):
    """Outcome of merging the guest cart into the server cart."""

    merged: list[CartLine] = Field(default_factory=list)
    failed: list[CartLine] = Field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failed
