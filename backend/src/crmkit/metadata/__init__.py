"""Collection metadata - loading, registry and validation."""
