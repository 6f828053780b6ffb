"""HTTP server exposing the SoleMate client as a local REST API."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel

from .config import Settings
from .errors import (
    ApiError,
    AuthorizationError,
    InvalidCredentials,
    NetworkError,
    NotFound,
    RefreshFailed,
    SoleMateError,
    ValidationError,
)
from .models import AuthCredentials, Registration
from .storefront import Storefront

logger = logging.getLogger("solemate-http-server")


# Request/Response Models
class LoginRequest(BaseModel):
    email: str
    password: str


class RegisterRequest(LoginRequest):
    name: str


class LoginResponse(BaseModel):
    success: bool
    message: str
    unmerged: int = 0


class AddToCartRequest(BaseModel):
    variant_id: str
    quantity: int = 1


class UpdateCartRequest(BaseModel):
    line_id: str
    quantity: int


class RemoveFromCartRequest(BaseModel):
    line_id: str


def to_http_exception(error: SoleMateError) -> HTTPException:
    """Translate a client error into an HTTP error for the caller."""
    if isinstance(error, (InvalidCredentials, AuthorizationError, RefreshFailed)):
        return HTTPException(status_code=401, detail=str(error))
    if isinstance(error, NotFound):
        return HTTPException(status_code=404, detail=error.detail)
    if isinstance(error, ValidationError):
        return HTTPException(status_code=400, detail=error.detail)
    if isinstance(error, NetworkError):
        return HTTPException(status_code=502, detail=str(error))
    if isinstance(error, ApiError):
        return HTTPException(status_code=502, detail=f"Storefront API error: {error}")
    return HTTPException(status_code=500, detail=str(error))


def _cart_payload(storefront: Storefront) -> dict:
    return storefront.cart.cart.model_dump(mode="json", by_alias=True)


def _login_response(storefront: Storefront, message: str) -> LoginResponse:
    unmerged = storefront.cart.unmerged_count
    if unmerged:
        message += f" ({unmerged} line(s) could not be merged and were kept in the guest cart)"
    return LoginResponse(success=True, message=message, unmerged=unmerged)


def create_app(storefront: Optional[Storefront] = None) -> FastAPI:
    """
    Build the HTTP app.

    Handlers run on the threadpool; each holds the storefront lock so session
    and cart state only change one operation at a time.

    Args:
        storefront: Application state to serve. Created from the environment
            on startup when omitted.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan context manager for startup and shutdown."""
        owned = app.state.storefront is None
        if owned:
            logger.info("Starting SoleMate HTTP Server...")
            app.state.storefront = Storefront(Settings.from_env())
            app.state.storefront.start()

        yield

        if owned:
            logger.info("Shutting down SoleMate HTTP Server...")
            app.state.storefront.close()

    app = FastAPI(
        title="SoleMate MCP Server",
        description="HTTP API for the SoleMate storefront session and cart",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.storefront = storefront

    def get_storefront(request: Request) -> Storefront:
        return request.app.state.storefront

    @app.get("/")
    async def root(request: Request):
        """Root endpoint with API information."""
        storefront = get_storefront(request)
        return {
            "name": "SoleMate MCP Server",
            "version": "0.1.0",
            "description": "HTTP API for the SoleMate storefront session and cart",
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "auth": {
                    "login": "POST /auth/login",
                    "register": "POST /auth/register",
                    "logout": "POST /auth/logout",
                    "status": "GET /auth/status",
                },
                "cart": {
                    "get": "GET /cart",
                    "add": "POST /cart/add",
                    "update": "POST /cart/update",
                    "remove": "POST /cart/remove",
                    "clear": "POST /cart/clear",
                },
            },
            "authenticated": storefront.auth_manager.is_authenticated() if storefront else False,
        }

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint."""
        storefront = get_storefront(request)
        return {
            "status": "healthy",
            "authenticated": storefront.auth_manager.is_authenticated() if storefront else False,
        }

    # Authentication endpoints
    @app.post("/auth/login", response_model=LoginResponse)
    def login(body: LoginRequest, request: Request):
        """Login to the storefront. Guest cart lines are merged into the account cart."""
        storefront = get_storefront(request)
        with storefront.lock:
            storefront.cart.last_merge = None
            try:
                user = storefront.client.login(AuthCredentials(email=body.email, password=body.password))
            except InvalidCredentials:
                return LoginResponse(success=False, message="Login failed. Check your credentials.")
            except SoleMateError as e:
                logger.error(f"Login error: {e}", exc_info=True)
                raise to_http_exception(e)
            return _login_response(storefront, f"Successfully logged in as {user.email}")

    @app.post("/auth/register", response_model=LoginResponse)
    def register(body: RegisterRequest, request: Request):
        """Create an account and log in."""
        storefront = get_storefront(request)
        with storefront.lock:
            storefront.cart.last_merge = None
            try:
                user = storefront.client.register(
                    Registration(email=body.email, password=body.password, name=body.name)
                )
            except ValidationError as e:
                return LoginResponse(success=False, message=f"Registration failed: {e.detail}")
            except SoleMateError as e:
                logger.error(f"Register error: {e}", exc_info=True)
                raise to_http_exception(e)
            return _login_response(storefront, f"Registered and logged in as {user.email}")

    @app.post("/auth/logout")
    def logout(request: Request):
        """Logout and clear the session."""
        storefront = get_storefront(request)
        with storefront.lock:
            storefront.client.logout()
        return {"success": True, "message": "Successfully logged out"}

    @app.get("/auth/status")
    def auth_status(request: Request):
        """Get authentication status."""
        storefront = get_storefront(request)
        with storefront.lock:
            auth_manager = storefront.auth_manager
            user = auth_manager.user if auth_manager.is_authenticated() else None
            return {
                "authenticated": user is not None,
                "email": user.email if user else None,
                "role": user.role if user else None,
            }

    # Cart endpoints
    @app.get("/cart")
    def get_cart(request: Request):
        """Get the active cart (server cart when logged in, guest cart otherwise)."""
        storefront = get_storefront(request)
        with storefront.lock:
            try:
                storefront.cart.load()
                storefront.cart.resolve_placeholders()
            except SoleMateError as e:
                logger.error(f"Get cart error: {e}", exc_info=True)
                raise to_http_exception(e)
            return _cart_payload(storefront)

    @app.post("/cart/add")
    def add_to_cart(body: AddToCartRequest, request: Request):
        """Add a variant to the cart."""
        storefront = get_storefront(request)
        with storefront.lock:
            try:
                storefront.cart.add_item(body.variant_id, body.quantity)
            except SoleMateError as e:
                logger.error(f"Add to cart error: {e}")
                raise to_http_exception(e)
            return _cart_payload(storefront)

    @app.post("/cart/update")
    def update_cart(body: UpdateCartRequest, request: Request):
        """Set a line's quantity; zero or less removes it."""
        storefront = get_storefront(request)
        with storefront.lock:
            try:
                storefront.cart.update_quantity(body.line_id, body.quantity)
            except SoleMateError as e:
                logger.error(f"Update cart error: {e}")
                raise to_http_exception(e)
            return _cart_payload(storefront)

    @app.post("/cart/remove")
    def remove_from_cart(body: RemoveFromCartRequest, request: Request):
        """Remove a line from the cart."""
        storefront = get_storefront(request)
        with storefront.lock:
            try:
                storefront.cart.remove_item(body.line_id)
            except SoleMateError as e:
                logger.error(f"Remove from cart error: {e}")
                raise to_http_exception(e)
            return _cart_payload(storefront)

    @app.post("/cart/clear")
    def clear_cart(request: Request):
        """Empty the cart."""
        storefront = get_storefront(request)
        with storefront.lock:
            try:
                storefront.cart.clear()
            except SoleMateError as e:
                logger.error(f"Clear cart error: {e}")
                raise to_http_exception(e)
            return _cart_payload(storefront)

    return app


def run_http_server(host: str = "0.0.0.0", port: int = 8000):
    """Run the HTTP server."""
    import uvicorn

    uvicorn.run(create_app(), host=host, port=port, log_level="info")
