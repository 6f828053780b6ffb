"""Reference SoleMate storefront API with in-memory storage."""

import logging
import secrets
import time
import uuid
from datetime import datetime
from decimal import Decimal
from typing import NamedTuple, Optional

import bcrypt
from fastapi import APIRouter, Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse
from pydantic import Field

from .errors import ApiError, AuthorizationError, NotFound, ValidationError
from .models import (
    ACCESS_TOKEN_LIFETIME,
    REFRESH_TOKEN_LIFETIME,
    ApiModel,
    AuthCredentials,
    AuthResponse,
    Cart,
    CartLine,
    CartProduct,
    ProductVariant,
    Registration,
    TokenPair,
    User,
    utcnow,
)

logger = logging.getLogger("solemate-storefront-api")

# bcrypt only looks at the first 72 bytes
MAX_PASSWORD_BYTES = 72


def _product(product_id: str, title: str, slug: str) -> CartProduct:
    return CartProduct(id=product_id, title=title, slug=slug, images=[f"/images/{slug}.jpg"])


def default_catalog() -> list[ProductVariant]:
    """Seed catalog for the reference API."""
    runner = _product("prod-runner", "SoleMate Runner", "solemate-runner")
    trail = _product("prod-trail", "Trail Blazer", "trail-blazer")
    loafer = _product("prod-loafer", "Classic Loafer", "classic-loafer")
    return [
        ProductVariant(id="var-runner-42-black", product_id=runner.id, sku="RUN-42-BLK", size="42",
                       color="black", price=Decimal("129.99"), inventory_count=25, product=runner),
        ProductVariant(id="var-runner-43-black", product_id=runner.id, sku="RUN-43-BLK", size="43",
                       color="black", price=Decimal("129.99"), inventory_count=18, product=runner),
        ProductVariant(id="var-runner-42-white", product_id=runner.id, sku="RUN-42-WHT", size="42",
                       color="white", price=Decimal("134.99"), inventory_count=9, product=runner),
        ProductVariant(id="var-trail-44-green", product_id=trail.id, sku="TRL-44-GRN", size="44",
                       color="green", price=Decimal("149.00"), inventory_count=12, product=trail),
        ProductVariant(id="var-loafer-41-brown", product_id=loafer.id, sku="LOF-41-BRN", size="41",
                       color="brown", price=Decimal("89.50"), inventory_count=30, product=loafer),
    ]


class Grant(NamedTuple):
    """An issued token. Tokens rotated from one login share its session_id."""

    user_id: str
    expires_at: datetime
    session_id: str


class Account(NamedTuple):
    user: User
    password_hash: bytes


class StorefrontStore:
    """In-memory users, tokens, catalog and carts."""

    def __init__(self, catalog: Optional[list[ProductVariant]] = None, bcrypt_rounds: int = 12) -> None:
        self.accounts: dict[str, Account] = {}
        self.access_tokens: dict[str, Grant] = {}
        self.refresh_tokens: dict[str, Grant] = {}
        self.variants: dict[str, ProductVariant] = {
            variant.id: variant for variant in (catalog if catalog is not None else default_catalog())
        }
        self.carts: dict[str, list[CartLine]] = {}
        self.bcrypt_rounds = bcrypt_rounds
        self.started_at = time.monotonic()

    # Auth

    def _issue_tokens(self, user_id: str, session_id: Optional[str] = None) -> TokenPair:
        now = utcnow()
        session_id = session_id or uuid.uuid4().hex
        access_token = secrets.token_urlsafe(32)
        refresh_token = secrets.token_urlsafe(48)
        self.access_tokens[access_token] = Grant(user_id, now + ACCESS_TOKEN_LIFETIME, session_id)
        self.refresh_tokens[refresh_token] = Grant(user_id, now + REFRESH_TOKEN_LIFETIME, session_id)
        return TokenPair(access_token=access_token, refresh_token=refresh_token)

    def _find_user(self, user_id: str) -> Optional[User]:
        for account in self.accounts.values():
            if account.user.id == user_id:
                return account.user
        return None

    def register(self, registration: Registration) -> AuthResponse:
        email = registration.email.strip().lower()
        if not email or "@" not in email:
            raise ValidationError("A valid email is required")
        if len(registration.password) < 8:
            raise ValidationError("Password must be at least 8 characters")
        if len(registration.password.encode()) > MAX_PASSWORD_BYTES:
            raise ValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
        if email in self.accounts:
            raise ValidationError("Email already registered", status_code=409)

        password_hash = bcrypt.hashpw(registration.password.encode(), bcrypt.gensalt(self.bcrypt_rounds))
        user = User(id=str(uuid.uuid4()), email=email, name=registration.name)
        self.accounts[email] = Account(user, password_hash)
        logger.info(f"Registered user {user.id}")
        tokens = self._issue_tokens(user.id)
        return AuthResponse(access_token=tokens.access_token, refresh_token=tokens.refresh_token, user=user)

    def login(self, credentials: AuthCredentials) -> AuthResponse:
        account = self.accounts.get(credentials.email.strip().lower())
        password = credentials.password.encode()
        if (
            account is None
            or len(password) > MAX_PASSWORD_BYTES
            or not bcrypt.checkpw(password, account.password_hash)
        ):
            raise AuthorizationError(401, "Invalid credentials")

        tokens = self._issue_tokens(account.user.id)
        logger.info(f"User {account.user.id} logged in")
        return AuthResponse(
            access_token=tokens.access_token, refresh_token=tokens.refresh_token, user=account.user
        )

    def refresh(self, refresh_token: str) -> TokenPair:
        """Rotate a token pair; the presented refresh token is revoked."""
        grant = self.refresh_tokens.pop(refresh_token, None)
        if grant is None or grant.expires_at <= utcnow() or self._find_user(grant.user_id) is None:
            raise AuthorizationError(401, "Invalid refresh token")
        return self._issue_tokens(grant.user_id, grant.session_id)

    def authenticate(self, access_token: Optional[str]) -> User:
        grant = self.access_tokens.get(access_token) if access_token else None
        if grant is None or grant.expires_at <= utcnow():
            raise AuthorizationError(401, "Unauthorized")
        user = self._find_user(grant.user_id)
        if user is None:
            raise AuthorizationError(401, "Unauthorized")
        return user

    def logout(self, access_token: str) -> None:
        """Revoke the tokens of the session the access token belongs to."""
        grant = self.access_tokens.get(access_token)
        if grant is None:
            return
        for tokens in (self.access_tokens, self.refresh_tokens):
            for token in [t for t, g in tokens.items() if g.session_id == grant.session_id]:
                del tokens[token]

    # Catalog

    def get_variant(self, variant_id: str) -> ProductVariant:
        variant = self.variants.get(variant_id)
        if variant is None or not variant.is_active:
            raise NotFound(404, f"Product variant {variant_id} not found")
        return variant

    # Cart

    def get_cart(self, user_id: str) -> Cart:
        return Cart(items=[line.model_copy() for line in self.carts.get(user_id, [])])

    def add_item(self, user_id: str, variant_id: str, quantity: int) -> Cart:
        variant = self.get_variant(variant_id)
        lines = self.carts.setdefault(user_id, [])
        for line in lines:
            if line.product_variant_id == variant_id:
                line.quantity += quantity
                break
        else:
            lines.append(
                CartLine(
                    id=str(uuid.uuid4()),
                    product_variant_id=variant_id,
                    product=variant.product,
                    variant=variant.to_cart_variant(),
                    quantity=quantity,
                )
            )
        return self.get_cart(user_id)

    def _find_line(self, user_id: str, item_id: str) -> CartLine:
        for line in self.carts.get(user_id, []):
            if line.id == item_id:
                return line
        raise NotFound(404, f"Cart item {item_id} not found")

    def update_item(self, user_id: str, item_id: str, quantity: int) -> Cart:
        self._find_line(user_id, item_id).quantity = quantity
        return self.get_cart(user_id)

    def remove_item(self, user_id: str, item_id: str) -> Cart:
        line = self._find_line(user_id, item_id)
        self.carts[user_id].remove(line)
        return self.get_cart(user_id)

    def clear_cart(self, user_id: str) -> Cart:
        self.carts.pop(user_id, None)
        return Cart()

    def stats(self) -> dict[str, int]:
        return {
            "users": len(self.accounts),
            "carts": sum(1 for lines in self.carts.values() if lines),
            "variants": len(self.variants),
            "activeSessions": len(self.refresh_tokens),
        }


# Request models
class RefreshRequest(ApiModel):
    refresh_token: str = Field(alias="refreshToken")


class AddItemRequest(ApiModel):
    product_variant_id: str = Field(alias="productVariantId")
    quantity: int = Field(default=1, ge=1)


class UpdateItemRequest(ApiModel):
    quantity: int = Field(ge=1)


def get_store(request: Request) -> StorefrontStore:
    return request.app.state.store


def bearer_token(authorization: Optional[str] = Header(None)) -> Optional[str]:
    if authorization and authorization.lower().startswith("bearer "):
        return authorization[7:].strip()
    return None


def current_user(
    token: Optional[str] = Depends(bearer_token), store: StorefrontStore = Depends(get_store)
) -> User:
    return store.authenticate(token)


def _dump(model: ApiModel) -> dict:
    return model.model_dump(mode="json", by_alias=True)


router = APIRouter(prefix="/api")


@router.post("/auth/register", status_code=201)
async def register(request: Registration, store: StorefrontStore = Depends(get_store)):
    """Create an account and return a token pair."""
    return _dump(store.register(request))


@router.post("/auth/login")
async def login(request: AuthCredentials, store: StorefrontStore = Depends(get_store)):
    """Exchange credentials for a token pair."""
    return _dump(store.login(request))


@router.post("/auth/refresh")
async def refresh(request: RefreshRequest, store: StorefrontStore = Depends(get_store)):
    """Rotate the token pair."""
    return _dump(store.refresh(request.refresh_token))


@router.post("/auth/logout")
async def logout(
    user: User = Depends(current_user),
    token: str = Depends(bearer_token),
    store: StorefrontStore = Depends(get_store),
):
    """Revoke the calling session."""
    store.logout(token)
    return {"success": True}


@router.get("/auth/me")
async def me(user: User = Depends(current_user)):
    return _dump(user)


@router.get("/products/variants/{variant_id}")
async def get_variant(variant_id: str, store: StorefrontStore = Depends(get_store)):
    return _dump(store.get_variant(variant_id))


@router.get("/cart")
async def get_cart(user: User = Depends(current_user), store: StorefrontStore = Depends(get_store)):
    """Get user cart."""
    return _dump(store.get_cart(user.id))


@router.post("/cart/items", status_code=201)
async def add_cart_item(
    request: AddItemRequest,
    user: User = Depends(current_user),
    store: StorefrontStore = Depends(get_store),
):
    """Add item to cart."""
    return _dump(store.add_item(user.id, request.product_variant_id, request.quantity))


@router.put("/cart/items/{item_id}")
async def update_cart_item(
    item_id: str,
    request: UpdateItemRequest,
    user: User = Depends(current_user),
    store: StorefrontStore = Depends(get_store),
):
    """Update cart item quantity."""
    return _dump(store.update_item(user.id, item_id, request.quantity))


@router.delete("/cart/items/{item_id}")
async def remove_cart_item(
    item_id: str, user: User = Depends(current_user), store: StorefrontStore = Depends(get_store)
):
    """Remove item from cart."""
    return _dump(store.remove_item(user.id, item_id))


@router.delete("/cart")
async def clear_cart(user: User = Depends(current_user), store: StorefrontStore = Depends(get_store)):
    """Clear cart."""
    return _dump(store.clear_cart(user.id))


@router.get("/health")
async def health_check(request: Request):
    """Health check endpoint."""
    store = get_store(request)
    return {
        "status": "ok",
        "timestamp": utcnow().isoformat(),
        "uptime": round(time.monotonic() - store.started_at, 3),
        "environment": request.app.state.environment,
    }


@router.get("/health/detailed")
async def detailed_health_check(request: Request):
    """Detailed health check."""
    store = get_store(request)
    start = time.perf_counter()
    stats = store.stats()
    response_ms = (time.perf_counter() - start) * 1000
    return {
        "status": "ok",
        "timestamp": utcnow().isoformat(),
        "uptime": round(time.monotonic() - store.started_at, 3),
        "environment": request.app.state.environment,
        "services": {
            "store": {"status": "ok", "responseTime": f"{response_ms:.2f}ms", **stats},
        },
    }


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=headers)


def create_storefront_api(
    store: Optional[StorefrontStore] = None, environment: str = "development"
) -> FastAPI:
    """Build the reference API around a store."""
    app = FastAPI(
        title="SoleMate Storefront API",
        description="Reference storefront API: auth, cart and variant lookup",
        version="0.1.0",
    )
    app.state.store = store if store is not None else StorefrontStore()
    app.state.environment = environment
    app.add_exception_handler(ApiError, api_error_handler)
    app.include_router(router)
    return app


def run_storefront_api(host: str = "0.0.0.0", port: int = 3001, environment: str = "development"):
    """Run the reference API."""
    import uvicorn

    uvicorn.run(create_storefront_api(environment=environment), host=host, port=port, log_level="info")
