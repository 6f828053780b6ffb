"""Runtime configuration loaded from environment variables."""

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from .models import AuthCredentials

DEFAULT_API_URL = "http://localhost:3001/api"


class Settings(BaseModel):
    """Client settings."""

    api_url: str = Field(default=DEFAULT_API_URL, description="Storefront API base URL")
    timeout: float = Field(default=10.0, gt=0, description="Per-request timeout in seconds")
    session_file: str = Field(
        default_factory=lambda: str(Path.home() / ".solemate_session.json"),
        description="Where the token pair is persisted",
    )
    storage_file: str = Field(
        default_factory=lambda: str(Path.home() / ".solemate_storage.json"),
        description="Client-local storage holding the guest cart",
    )
    email: Optional[str] = Field(None, description="Email for auto-login")
    password: Optional[str] = Field(None, description="Password for auto-login")
    log_level: str = Field(default="INFO")
    environment: str = Field(default="development")

    @property
    def credentials(self) -> Optional[AuthCredentials]:
        if self.email and self.password:
            return AuthCredentials(email=self.email, password=self.password)
        return None

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Build settings from SOLEMATE_* environment variables.

        Unset variables keep their defaults.
        """
        env_map = {
            "api_url": "SOLEMATE_API_URL",
            "timeout": "SOLEMATE_TIMEOUT",
            "session_file": "SOLEMATE_SESSION_FILE",
            "storage_file": "SOLEMATE_STORAGE_FILE",
            "email": "SOLEMATE_EMAIL",
            "password": "SOLEMATE_PASSWORD",
            "log_level": "SOLEMATE_LOG_LEVEL",
            "environment": "SOLEMATE_ENV",
        }
        values = {}
        for field_name, env_name in env_map.items():
            value = os.environ.get(env_name)
            if value:
                values[field_name] = value
        return cls(**values)
