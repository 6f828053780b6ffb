"""Application state shared by the MCP and HTTP front ends."""

import logging
import threading
from typing import Optional

import httpx

from .auth import AuthManager
from .cart import CartReconciler
from .client import SoleMateClient
from .config import Settings
from .errors import InvalidCredentials, SoleMateError
from .storage import LocalStorage

logger = logging.getLogger(__name__)


class Storefront:
    """
    Wires the session store, API client and cart together.

    One instance is created per process and handed to whichever front end
    needs it. Front ends that serve requests from several threads hold
    `lock` for the whole of each operation.
    """

    def __init__(self, settings: Settings, http_client: Optional[httpx.Client] = None) -> None:
        self.settings = settings
        self.lock = threading.RLock()
        self.auth_manager = AuthManager(session_file=settings.session_file)
        self.client = SoleMateClient(
            self.auth_manager,
            base_url=settings.api_url,
            timeout=settings.timeout,
            http_client=http_client,
        )
        self.cart = CartReconciler(self.client, LocalStorage(settings.storage_file))

    def start(self) -> None:
        """Restore a stored session, or auto-login with configured credentials."""
        try:
            self.client.restore_session()
        except SoleMateError as e:
            logger.error(f"Session restore error: {e}")

        if not self.auth_manager.is_authenticated() and self.settings.credentials:
            self.ensure_authenticated()

    def ensure_authenticated(self) -> bool:
        """Ensure there is a session, auto-login if credentials are configured."""
        if self.auth_manager.is_authenticated():
            return True

        credentials = self.settings.credentials
        if credentials:
            try:
                logger.info("Auto-logging in with configured credentials...")
                self.client.login(credentials)
                logger.info("Auto-login successful")
                return True
            except InvalidCredentials as e:
                logger.warning(f"Auto-login failed: {e}")
            except SoleMateError as e:
                logger.error(f"Auto-login error: {e}")

        return False

    def close(self) -> None:
        self.cart.close()
        self.client.close()
