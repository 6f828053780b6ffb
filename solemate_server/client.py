"""SoleMate storefront API client."""

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from .auth import AuthManager
from .config import DEFAULT_API_URL
from .errors import (
    AuthorizationError,
    InvalidCredentials,
    NetworkError,
    RefreshFailed,
    SoleMateError,
    ValidationError,
    error_for_status,
)
from .models import (
    AuthCredentials,
    AuthEvent,
    AuthResponse,
    Cart,
    ProductVariant,
    Registration,
    TokenPair,
    User,
)

logger = logging.getLogger(__name__)


class SoleMateClient:
    """Client for the SoleMate storefront API."""

    BASE_URL = DEFAULT_API_URL

    def __init__(
        self,
        auth_manager: AuthManager,
        base_url: Optional[str] = None,
        timeout: float = 10.0,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        """
        Initialize the SoleMate client.

        Args:
            auth_manager: Authentication manager instance
            base_url: API base URL, including the /api prefix
            timeout: Fixed per-request timeout in seconds
            http_client: Preconfigured httpx client (base URL already set)
        """
        self.auth_manager = auth_manager
        if http_client is None:
            http_client = httpx.Client(
                base_url=base_url or self.BASE_URL,
                timeout=timeout,
                headers={"Accept": "application/json"},
            )
        self.client = http_client

    def _send(self, method: str, path: str, json_body: Any = None, authorize: bool = True) -> httpx.Response:
        """Send one request, attaching the current access token."""
        headers = {}
        if authorize:
            token = self.auth_manager.get_access_token()
            if token:
                headers["Authorization"] = f"Bearer {token}"

        try:
            return self.client.request(method, path, json=json_body, headers=headers)
        except httpx.TransportError as e:
            # Timeouts are transport errors too
            logger.warning(f"{method} {path} failed: {e!r}")
            raise NetworkError(f"{method} {path} failed: {e}") from e

    def _request(
        self,
        method: str,
        path: str,
        json_body: Any = None,
        authorize: bool = True,
        retry_auth: bool = True,
    ) -> Any:
        """
        Perform an API request and decode the JSON body.

        A 401 on an authorized request triggers exactly one token refresh and
        one retry. A failed refresh clears the session.

        Raises:
            NetworkError: On timeouts and transport failures
            RefreshFailed: If the token could not be refreshed
            ApiError: For any other error status (see errors.error_for_status)
        """
        response = self._send(method, path, json_body, authorize)

        if (
            response.status_code == 401
            and authorize
            and retry_auth
            and self.auth_manager.is_authenticated()
        ):
            logger.info(f"{method} {path} unauthorized, refreshing access token")
            try:
                self.refresh()
            except RefreshFailed:
                self.auth_manager.clear_session(AuthEvent.EXPIRED)
                raise
            response = self._send(method, path, json_body, authorize)

        return self._handle_response(response)

    def _handle_response(self, response: httpx.Response) -> Any:
        if response.is_success:
            if not response.content:
                return None
            return response.json()

        detail: Any = None
        try:
            body = response.json()
            if isinstance(body, dict):
                detail = body.get("detail", body.get("message"))
            else:
                detail = body
        except ValueError:
            detail = response.text[:200] or None

        logger.debug(f"API error: status={response.status_code}, detail={detail}")
        raise error_for_status(response.status_code, detail)

    # Session lifecycle

    def login(self, credentials: AuthCredentials) -> User:
        """
        Authenticate with email and password.

        Args:
            credentials: User credentials (email and password)

        Returns:
            The authenticated user

        Raises:
            InvalidCredentials: If the API rejects the credentials
        """
        logger.info(f"=== LOGIN: email={credentials.email} ===")
        try:
            data = self._request(
                "POST", "/auth/login", json_body=credentials.model_dump(), authorize=False
            )
        except AuthorizationError as e:
            raise InvalidCredentials(e.status_code, e.detail or "Login failed") from e
        except ValidationError as e:
            if e.status_code == 400:
                raise InvalidCredentials(e.status_code, e.detail or "Login failed") from e
            raise

        auth = AuthResponse.model_validate(data)
        self.auth_manager.save_tokens(auth, auth.user, AuthEvent.LOGIN)
        logger.info(f"Login successful for {auth.user.email}")
        return auth.user

    def register(self, registration: Registration) -> User:
        """
        Create an account and start a session for it.

        Raises:
            ValidationError: If the email is taken or the input is malformed
        """
        logger.info(f"=== REGISTER: email={registration.email} ===")
        data = self._request(
            "POST", "/auth/register", json_body=registration.model_dump(), authorize=False
        )
        auth = AuthResponse.model_validate(data)
        self.auth_manager.save_tokens(auth, auth.user, AuthEvent.REGISTER)
        logger.info(f"Registered {auth.user.email}")
        return auth.user

    def refresh(self) -> None:
        """
        Exchange the refresh token for a new token pair.

        Raises:
            RefreshFailed: If the refresh token is absent, expired or rejected.
                Callers treat this as a forced logout.
        """
        session = self.auth_manager.get_session()
        if not session.refresh_token:
            raise RefreshFailed("No refresh token")
        if session.refresh_expired:
            raise RefreshFailed("Refresh token expired")

        try:
            data = self._request(
                "POST",
                "/auth/refresh",
                json_body={"refreshToken": session.refresh_token},
                authorize=False,
            )
            tokens = TokenPair.model_validate(data)
        except (SoleMateError, PydanticValidationError) as e:
            logger.warning(f"Token refresh failed: {e}")
            raise RefreshFailed(f"Token refresh failed: {e}") from e

        self.auth_manager.save_tokens(tokens, event=AuthEvent.REFRESH)
        logger.info("Access token refreshed")

    def me(self, retry_auth: bool = True) -> User:
        """Get the identity behind the current access token."""
        return User.model_validate(self._request("GET", "/auth/me", retry_auth=retry_auth))

    def restore_session(self) -> bool:
        """
        Validate a stored session on start.

        Checks the stored access token against the API. If that fails, tries
        exactly one refresh; if the refresh fails too, all stored tokens are
        cleared.

        Returns:
            True if a session is live afterwards
        """
        session = self.auth_manager.get_session()
        if not session.has_tokens:
            logger.debug("No stored session to restore")
            return False

        if not session.access_expired:
            try:
                user = self.me(retry_auth=False)
                self.auth_manager.update_user(user, AuthEvent.RESTORE)
                logger.info(f"Restored session for {user.email}")
                return True
            except SoleMateError as e:
                logger.info(f"Stored access token rejected: {e}")
        else:
            logger.info("Stored access token expired")

        try:
            self.refresh()
            user = self.me(retry_auth=False)
        except SoleMateError as e:
            logger.warning(f"Could not restore session: {e}")
            self.auth_manager.clear_session(AuthEvent.EXPIRED)
            return False

        self.auth_manager.update_user(user, AuthEvent.RESTORE)
        logger.info(f"Restored session for {user.email} after refresh")
        return True

    def logout(self) -> None:
        """Logout and clear session. Idempotent."""
        if self.auth_manager.is_authenticated():
            try:
                self._request("POST", "/auth/logout", retry_auth=False)
            except SoleMateError as e:
                logger.debug(f"Remote logout failed, clearing local session anyway: {e}")

        self.auth_manager.clear_session(AuthEvent.LOGOUT)

    # Cart

    def get_cart(self) -> Cart:
        """Get the canonical server cart."""
        return Cart.model_validate(self._request("GET", "/cart"))

    def add_cart_item(self, variant_id: str, quantity: int = 1) -> Cart:
        """
        Add a variant to the server cart.

        The server increments an existing line for the same variant.

        Returns:
            The canonical cart after the change
        """
        logger.info(f"=== ADD TO CART: variant={variant_id}, quantity={quantity} ===")
        data = self._request(
            "POST", "/cart/items", json_body={"productVariantId": variant_id, "quantity": quantity}
        )
        return Cart.model_validate(data)

    def update_cart_item(self, item_id: str, quantity: int) -> Cart:
        """Set the quantity of a server cart line."""
        logger.info(f"=== UPDATE CART: item={item_id}, quantity={quantity} ===")
        data = self._request("PUT", f"/cart/items/{item_id}", json_body={"quantity": quantity})
        return Cart.model_validate(data)

    def remove_cart_item(self, item_id: str) -> Cart:
        """Remove a line from the server cart."""
        logger.info(f"=== REMOVE FROM CART: item={item_id} ===")
        return Cart.model_validate(self._request("DELETE", f"/cart/items/{item_id}"))

    def clear_cart(self) -> Cart:
        """Empty the server cart."""
        data = self._request("DELETE", "/cart")
        return Cart.model_validate(data) if data else Cart()

    # Catalog

    def get_variant(self, variant_id: str) -> ProductVariant:
        """Fetch variant and product display data."""
        return ProductVariant.model_validate(
            self._request("GET", f"/products/variants/{variant_id}", authorize=False)
        )

    def health(self, detailed: bool = False) -> dict[str, Any]:
        """Check API health."""
        return self._request("GET", "/health/detailed" if detailed else "/health", authorize=False)

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()
