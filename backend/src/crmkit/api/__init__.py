"""HTTP surface for crmkit."""

from crmkit.api.app import app

__all__ = ["app"]
