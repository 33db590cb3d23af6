"""crmkit - collection-driven records for small business management."""
