"""Persistence layer - record-store contract and SQL implementation."""

from crmkit.persistence.config import DatabaseConfig, create_data_source
from crmkit.persistence.source import DataSource, eq_filter, in_filter
from crmkit.persistence.sql import SqlDataSource

__all__ = [
    "DataSource",
    "DatabaseConfig",
    "SqlDataSource",
    "create_data_source",
    "eq_filter",
    "in_filter",
]
