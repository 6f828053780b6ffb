"""Authentication state and session persistence for the SoleMate API."""

import json
import logging
import os
from pathlib import Path
from typing import Callable, Optional

from .models import AuthEvent, SessionData, TokenPair, User

logger = logging.getLogger(__name__)

AuthListener = Callable[[AuthEvent], None]


class AuthManager:
    """Manages the token pair, the derived identity and session persistence."""

    def __init__(self, session_file: Optional[str] = None) -> None:
        """
        Initialize the authentication manager.

        Args:
            session_file: Path to store session data. Defaults to ~/.solemate_session.json
        """
        if session_file is None:
            session_file = str(Path.home() / ".solemate_session.json")
        self.session_file = session_file
        self._listeners: list[AuthListener] = []
        self.session: SessionData = self._load_session()

    def _load_session(self) -> SessionData:
        """Load session data from file if it exists."""
        if not os.path.exists(self.session_file):
            return SessionData()

        try:
            with open(self.session_file, "r") as f:
                session = SessionData(**json.load(f))
        except (OSError, json.JSONDecodeError, TypeError, ValueError) as e:
            # If file is corrupted, start fresh
            logger.warning(f"Could not load session from {self.session_file}: {e}")
            self._remove_session_file()
            return SessionData()

        if not session.has_tokens or session.refresh_expired:
            logger.info("Stored session is incomplete or expired, discarding it")
            self._remove_session_file()
            return SessionData()

        logger.info(f"Loaded existing session from {self.session_file}")
        return session

    def _save_session(self) -> None:
        """Save session data to file."""
        with open(self.session_file, "w") as f:
            json.dump(self.session.model_dump(mode="json"), f, indent=2)
        # Set restrictive permissions on session file
        os.chmod(self.session_file, 0o600)

    def _remove_session_file(self) -> None:
        if os.path.exists(self.session_file):
            try:
                os.remove(self.session_file)
            except OSError as e:
                logger.warning(f"Could not delete session file: {e}")

    def subscribe(self, listener: AuthListener) -> Callable[[], None]:
        """
        Register a callback for session transitions.

        Returns:
            A function that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, event: AuthEvent) -> None:
        logger.debug(f"Auth event: {event.value}")
        for listener in list(self._listeners):
            listener(event)

    def save_tokens(
        self, tokens: TokenPair, user: Optional[User] = None, event: AuthEvent = AuthEvent.LOGIN
    ) -> None:
        """
        Store a new token pair, replacing the previous one.

        Args:
            tokens: Token pair issued by the API
            user: Identity; keeps the current one when omitted
            event: Transition reported to listeners
        """
        if user is None:
            user = self.session.user
        self.session = SessionData.from_tokens(tokens, user)
        self._save_session()
        logger.info(f"Session saved ({event.value})")
        self._notify(event)

    def update_user(self, user: User, event: AuthEvent = AuthEvent.RESTORE) -> None:
        """Attach the identity returned by the API to the current session."""
        self.session.user = user
        self._save_session()
        self._notify(event)

    def clear_session(self, event: AuthEvent = AuthEvent.LOGOUT) -> None:
        """Clear tokens and identity. Safe to call repeatedly."""
        was_authenticated = self.is_authenticated()
        self.session = SessionData()
        self._remove_session_file()
        if was_authenticated:
            logger.info(f"Session cleared ({event.value})")
            self._notify(event)

    def get_session(self) -> SessionData:
        """Get current session data."""
        return self.session

    def is_authenticated(self) -> bool:
        """Check if there's an active authenticated session."""
        return self.session.has_tokens

    def get_access_token(self) -> Optional[str]:
        return self.session.access_token

    def get_refresh_token(self) -> Optional[str]:
        return self.session.refresh_token

    @property
    def user(self) -> Optional[User]:
        return self.session.user
