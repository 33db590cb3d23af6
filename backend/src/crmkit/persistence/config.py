"""Database configuration and record-store factory."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from crmkit.errors import ConfigurationError

if TYPE_CHECKING:
    from crmkit.metadata.registry import CollectionRegistry
    from crmkit.persistence.sql import SqlDataSource


@dataclass
class DatabaseConfig:
    """Database connection configuration.

    Supports sqlite:/// and postgresql:// URL schemes.
    """

    url: str

    @classmethod
    def from_env(cls, base_path: Path | None = None) -> DatabaseConfig:
        """Create config from environment variables.

        Resolution order:
        1. CRMKIT_BACKEND_URL
        2. DATABASE_URL env var (standard)
        3. Default: sqlite:///{base_path}/data/crmkit.db
        """
        url = os.environ.get("CRMKIT_BACKEND_URL") or os.environ.get("DATABASE_URL")
        if url:
            return cls(url=url)

        if base_path:
            return cls(url=f"sqlite:///{base_path / 'data' / 'crmkit.db'}")

        return cls(url="sqlite:///crmkit.db")

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    @property
    def is_postgresql(self) -> bool:
        return self.url.startswith("postgresql")

    @property
    def sqlite_path(self) -> Path | None:
        """Filesystem path of a file-backed SQLite database."""
        if not self.is_sqlite:
            return None
        path = self.url.replace("sqlite:///", "", 1)
        if not path or path == ":memory:" or path.startswith("sqlite:"):
            return None
        return Path(path)

    @property
    def sqlalchemy_url(self) -> str:
        """URL suitable for SQLAlchemy engine creation.

        Ensures postgresql:// URLs use the psycopg (v3) driver since
        the project depends on psycopg[binary], not psycopg2.
        """
        if self.url.startswith("postgresql://"):
            return self.url.replace("postgresql://", "postgresql+psycopg://", 1)
        return self.url


def create_data_source(config: DatabaseConfig, registry: CollectionRegistry) -> SqlDataSource:
    """Create a record store for the configured database.

    Returns:
        A SqlDataSource whose tables have been created.

    Raises:
        ConfigurationError: For unsupported URL schemes.
    """
    if not (config.is_sqlite or config.is_postgresql):
        raise ConfigurationError(f"Unsupported database URL scheme: {config.url}")

    from crmkit.persistence.sql import SqlDataSource

    db_path = config.sqlite_path
    if db_path is not None:
        db_path.parent.mkdir(parents=True, exist_ok=True)

    source = SqlDataSource(config.sqlalchemy_url, registry)
    source.initialize()
    return source
