"""Runtime settings read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from crmkit.errors import ConfigurationError

# Required at startup; presence-checked only.
REQUIRED_VARIABLES = ("CRMKIT_BACKEND_URL", "CRMKIT_API_KEY", "CRMKIT_SERVICE_ACCOUNT")


@dataclass
class Settings:
    """Process-wide settings.

    The backend endpoint, public API key and storage service-account
    credentials are opaque strings passed through unvalidated beyond
    presence checks.
    """

    backend_url: str
    api_key: str
    service_account: str
    metadata_path: Path
    jwt_secret: str = "dev-secret-key-change-in-production"
    auth_enabled: bool = True
    log_level: str = "info"

    @classmethod
    def from_env(cls, base_path: Path | None = None) -> Settings:
        """Create settings from environment variables.

        Resolution order for the backend endpoint:
        1. CRMKIT_BACKEND_URL
        2. DATABASE_URL (standard)

        Raises:
            ConfigurationError: If any required variable is missing or empty.
        """
        backend_url = os.environ.get("CRMKIT_BACKEND_URL") or os.environ.get("DATABASE_URL")
        api_key = os.environ.get("CRMKIT_API_KEY")
        service_account = os.environ.get("CRMKIT_SERVICE_ACCOUNT")

        missing = [
            name
            for name, value in zip(REQUIRED_VARIABLES, (backend_url, api_key, service_account))
            if not value
        ]
        if missing:
            raise ConfigurationError(
                f"Missing required environment variable(s): {', '.join(missing)}"
            )

        metadata_env = os.environ.get("CRMKIT_METADATA_PATH")
        if metadata_env:
            metadata_path = Path(metadata_env)
        else:
            metadata_path = (base_path or Path.cwd()) / "metadata"

        return cls(
            backend_url=backend_url,  # type: ignore[arg-type]
            api_key=api_key,  # type: ignore[arg-type]
            service_account=service_account,  # type: ignore[arg-type]
            metadata_path=metadata_path,
            jwt_secret=os.environ.get("CRMKIT_JWT_SECRET", "dev-secret-key-change-in-production"),
            auth_enabled=os.environ.get("CRMKIT_DISABLE_AUTH", "").lower()
            not in ("1", "true", "yes"),
            log_level=os.environ.get("CRMKIT_LOG_LEVEL", "info"),
        )
